"""UTC-everywhere time handling for invoice timestamps and due dates."""

from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Every created_at/updated_at stamp on invoices and bids comes from here.
    """
    return datetime.now(timezone.utc)


def today_utc() -> date:
    """Current calendar date in UTC. Used for invoice dates and overdue checks."""
    return now_utc().date()
