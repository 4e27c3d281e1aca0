"""Role-level views over the requests of one project."""

import uuid

from sqlalchemy import not_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.common.identity import Caller
from eventhub.common.logging import get_logger
from eventhub.core.negotiation.ledger import RequestLedger, parse_role
from eventhub.db.models.project import Project
from eventhub.db.models.vendor import VendorRequest

logger = get_logger("projects.aggregator")

ledger = RequestLedger()


async def _roles(db: AsyncSession, project: Project, accepted: bool) -> list[str]:
    condition = VendorRequest.is_doubly_accepted
    if not accepted:
        condition = not_(condition)
    result = await db.execute(
        select(VendorRequest.role)
        .where(
            VendorRequest.user_id == project.owner_id,
            VendorRequest.project_id == project.id,
            condition,
        )
        .distinct()
    )
    return sorted(result.scalars().all())


async def ongoing_roles(db: AsyncSession, project: Project) -> list[str]:
    """Roles with at least one request still under negotiation."""
    return await _roles(db, project, accepted=False)


async def accepted_roles(db: AsyncSession, project: Project) -> list[str]:
    """Roles that already have a booked vendor."""
    return await _roles(db, project, accepted=True)


async def purge_unaccepted(
    db: AsyncSession, caller: Caller, project: Project, role: str
) -> int:
    """Delete every request of ``role`` in the project that is not booked.

    Returns the number of requests removed. A request that fails to delete
    is logged and left in place.
    """
    role = parse_role(role).value
    project_id = project.id
    result = await db.execute(
        select(VendorRequest.id).where(
            VendorRequest.project_id == project_id,
            VendorRequest.role == role,
            not_(VendorRequest.is_doubly_accepted),
        )
    )
    request_ids: list[uuid.UUID] = list(result.scalars().all())

    removed = 0
    for request_id in request_ids:
        try:
            async with db.begin_nested():
                removed += await ledger.delete(
                    db, request_id, actor_id=caller.id, reason="purged"
                )
        except SQLAlchemyError:
            logger.exception("Could not purge request %s of project %s", request_id, project_id)

    logger.info(
        "Purged %d of %d pending %s request(s) from project %s",
        removed, len(request_ids), role, project_id,
    )
    return removed
