"""
Event bus for invoicing domain events.

Synchronous in-process pub/sub. Handlers execute immediately in the same
thread as the publisher. Handler errors are logged but never propagate:
the primary operation (store write + audit) has already committed.
"""

import logging
from typing import Callable, Dict, List

from core.events import InvoicingEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process event bus for invoicing domain events.

    Subscribe by event class or class name, publish by event instance.
    Subscribing to a base class (e.g. BidEvent) receives every subclass.
    Handlers are called synchronously, most specific class first, then in
    subscription order.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: type | str, callback: Callable):
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event class, or its name (e.g. 'BidRejected')
            callback: Function to call when event is published
        """
        name = event_type if isinstance(event_type, str) else event_type.__name__
        self._subscribers.setdefault(name, []).append(callback)

    def unsubscribe(self, event_type: type | str, callback: Callable):
        """Remove a callback. Unknown callbacks are ignored."""
        name = event_type if isinstance(event_type, str) else event_type.__name__
        callbacks = self._subscribers.get(name, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def publish(self, event: InvoicingEvent):
        """
        Publish an event to subscribers of its class and of its bases.

        Args:
            event: InvoicingEvent instance to publish
        """
        for cls in type(event).__mro__:
            for callback in self._subscribers.get(cls.__name__, []):
                try:
                    callback(event)
                except Exception:
                    logger.exception(
                        "Handler %s failed for %s (event_id=%s)",
                        getattr(callback, "__name__", repr(callback)),
                        type(event).__name__,
                        event.event_id,
                    )
