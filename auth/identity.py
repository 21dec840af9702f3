"""
Identity and role lookup for the authenticated user.

The auth middleware (or a script, via utils.user_context.user_context)
puts a user ID in context. Invoicing code never trusts a role sent by the
client; it asks an IdentityProvider who that user is.
"""

import logging
from typing import Iterable, Protocol
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.exceptions import NotAuthenticatedError
from core.models import Actor
from utils.user_context import find_current_user_id

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """Resolves the current context to an Actor."""

    def current_actor(self) -> Actor:
        """
        Raises:
            NotAuthenticatedError: No user in context, or user has no profile
        """
        ...


def _require_user_id() -> UUID:
    user_id = find_current_user_id()
    if user_id is None:
        raise NotAuthenticatedError("Authentication required")
    return user_id


class ProfileIdentityProvider:
    """Reads id, role, email and display name from the profiles table."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def get_actor(self, user_id: UUID) -> Actor | None:
        row = self._db.execute_single(
            """SELECT id, role, email, display_name
               FROM profiles WHERE id = %s""",
            (user_id,),
        )
        if row is None:
            return None
        return Actor.model_validate(row)

    def current_actor(self) -> Actor:
        user_id = _require_user_id()
        actor = self.get_actor(user_id)
        if actor is None:
            logger.warning("Authenticated user %s has no profile", user_id)
            raise NotAuthenticatedError("No profile found for the authenticated user")
        return actor


class DirectoryIdentityProvider:
    """
    Fixed set of actors held in memory.

    For tests and local tooling where there is no profiles table.
    """

    def __init__(self, actors: Iterable[Actor] = ()):
        self._actors: dict[UUID, Actor] = {actor.id: actor for actor in actors}

    def add(self, actor: Actor) -> None:
        self._actors[actor.id] = actor

    def get_actor(self, user_id: UUID) -> Actor | None:
        return self._actors.get(user_id)

    def current_actor(self) -> Actor:
        user_id = _require_user_id()
        actor = self._actors.get(user_id)
        if actor is None:
            raise NotAuthenticatedError("No profile found for the authenticated user")
        return actor
