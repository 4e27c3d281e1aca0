"""Post-booking checklist shared by the user and the vendor."""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.common.exceptions import NotFoundError
from eventhub.common.identity import Caller
from eventhub.common.logging import get_logger
from eventhub.core import audit
from eventhub.core.negotiation.ledger import ENTITY, RequestLedger

logger = get_logger("tracking.progress")

ledger = RequestLedger()


async def get_progress(db: AsyncSession, caller: Caller, request_id: uuid.UUID) -> list[dict]:
    request = await ledger.get_for_party(db, caller, request_id, allow_admin=True)
    return list(request.progress or [])


async def set_progress_step(
    db: AsyncSession,
    caller: Caller,
    request_id: uuid.UUID,
    step: str,
    done: bool,
) -> list[dict]:
    """Tick or untick one checklist step; the step name must match exactly."""
    request = await ledger.get_for_party(db, caller, request_id)

    progress = [dict(entry) for entry in (request.progress or [])]
    for entry in progress:
        if entry["step"] == step:
            entry["done"] = done
            break
    else:
        raise NotFoundError("Progress step", step)

    request.progress = progress
    await audit.record(
        db, ENTITY, request.id, "progress_updated", actor_id=caller.id,
        diff={"step": step, "done": done},
    )
    await db.flush()

    logger.info("Request %s: step '%s' set to %s by %s", request.id, step, done, caller.id)
    return progress
