import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.db.models.audit import AuditLog


async def record(
    db: AsyncSession,
    entity_type: str,
    entity_id: uuid.UUID,
    action: str,
    actor_id: uuid.UUID | None = None,
    diff: dict[str, Any] | None = None,
) -> None:
    """Append an audit entry in the caller's transaction."""
    db.add(
        AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            diff=diff,
        )
    )
