"""
Append-only audit trail for invoices and bids.

Every successful mutation is logged here after the store write commits:
- Append-only (entries never modified or deleted)
- User-attributed (who made the change)
- Detailed (captures old and new values)

Factoring disputes are settled from this table, so it records the status
pair before and after every transition, not just the fields a user typed.
"""

from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc
from utils.user_context import get_current_user_id


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditEntity(str, Enum):
    """Entity types that appear in the audit trail."""

    INVOICE = "invoice"
    BID = "factoring_bid"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    for key in set(old.keys()) | set(new.keys()):
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Audit trail writer and reader.

    Pass JSON-ready dicts (model_dump(mode="json")) so UUIDs, dates and
    Decimals serialize cleanly.

    Usage:
        audit = AuditLogger(postgres)

        audit.log_change(
            entity_type=AuditEntity.INVOICE,
            entity_id=invoice.id,
            action=AuditAction.UPDATE,
            changes=compute_changes(old_snapshot, new_snapshot),
            user_id=actor.id,
        )

        history = audit.get_entity_history(AuditEntity.INVOICE, invoice.id)
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_change(
        self,
        entity_type: AuditEntity | str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        user_id: UUID | None = None
    ) -> None:
        """
        Log an entity change.

        Args:
            entity_type: AuditEntity (or its string value)
            entity_id: ID of the entity
            action: The action performed (CREATE, UPDATE, DELETE)
            changes: The changes made (format depends on action)
            user_id: User who made change (defaults to current context)

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        """
        if user_id is None:
            user_id = get_current_user_id()

        self.postgres.execute(
            """
            INSERT INTO audit_log (id, user_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                uuid4(),
                user_id,
                AuditEntity(entity_type).value,
                entity_id,
                action.value,
                Json(changes),
                now_utc()
            )
        )

    def get_entity_history(
        self,
        entity_type: AuditEntity | str,
        entity_id: UUID
    ) -> list[dict[str, Any]]:
        """
        Get full audit history for an entity, newest first.
        """
        return self.postgres.execute(
            """
            SELECT id, user_id, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (AuditEntity(entity_type).value, entity_id)
        )

    def get_user_activity(
        self,
        user_id: UUID | None = None,
        limit: int = 100
    ) -> list[dict[str, Any]]:
        """
        Get recent activity by user, newest first.

        Args:
            user_id: User to get activity for (defaults to current context)
            limit: Maximum entries to return
        """
        if user_id is None:
            user_id = get_current_user_id()

        return self.postgres.execute(
            """
            SELECT id, user_id, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE user_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (user_id, limit)
        )
