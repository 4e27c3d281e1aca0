from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.api.deps import get_db, require_capability
from eventhub.common.enums import Capability
from eventhub.common.identity import Caller
from eventhub.common.logging import get_logger
from eventhub.core.negotiation.engine import OfferNegotiationEngine
from eventhub.core.negotiation.mirrors import reconcile_all

logger = get_logger("api.admin")

router = APIRouter(prefix="/admin", tags=["Admin"])


# ---------- Schemas ----------


class ReconcileResponse(BaseModel):
    repaired_mirrors: int


class RetractionRunResponse(BaseModel):
    processed: int
    pending: int
    abandoned: int


# ---------- Endpoints ----------


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_mirrors(
    caller: Caller = Depends(require_capability(Capability.ADMINISTER)),
    db: AsyncSession = Depends(get_db),
):
    repaired = await reconcile_all(db)
    logger.info("Admin %s reconciled mirrors: %d repaired", caller.id, repaired)
    return ReconcileResponse(repaired_mirrors=repaired)


@router.post("/retractions/process", response_model=RetractionRunResponse)
async def process_retractions(
    caller: Caller = Depends(require_capability(Capability.ADMINISTER)),
    db: AsyncSession = Depends(get_db),
):
    counts = await OfferNegotiationEngine().process_pending_intents(db)
    return RetractionRunResponse(**counts)
