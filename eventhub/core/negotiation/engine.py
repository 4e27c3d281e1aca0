"""Offer negotiation between a user and the vendors they requested.

A request becomes a booking when both sides have accepted it. At that moment
every other open request for the same (user, project, role) is retracted.
The retraction is recorded as a ``RetractionIntent`` first, so work left over
after a partial failure is picked up again by the background worker.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.common.enums import Capability, NegotiationStatus, RetractionStatus, VendorAction
from eventhub.common.exceptions import BadRequestError, ConflictError, PermissionDeniedError
from eventhub.common.identity import Caller
from eventhub.common.logging import get_logger
from eventhub.config import settings
from eventhub.core import audit
from eventhub.core.negotiation.ledger import ENTITY, RequestLedger
from eventhub.core.negotiation.mirrors import lock_row
from eventhub.core.negotiation.schemas import RetractionReport, TransitionOutcome
from eventhub.core.negotiation.state import NegotiationState, populate_progress
from eventhub.db.models.project import Project
from eventhub.db.models.retraction import RetractionIntent
from eventhub.db.models.vendor import VendorRequest

logger = get_logger("negotiation.engine")


class OfferNegotiationEngine:
    def __init__(
        self,
        ledger: RequestLedger | None = None,
        across_projects: bool | None = None,
        max_attempts: int | None = None,
    ):
        self.ledger = ledger or RequestLedger()
        self.across_projects = (
            settings.RETRACT_ACROSS_PROJECTS if across_projects is None else across_projects
        )
        self.max_attempts = max_attempts or settings.RETRACTION_MAX_ATTEMPTS

    # ---------- Transitions ----------

    async def respond(
        self,
        db: AsyncSession,
        caller: Caller,
        request_id: uuid.UUID,
        action: VendorAction | str,
        budget: Decimal | None = None,
        additional_details: str | None = None,
    ) -> TransitionOutcome:
        """Vendor side: accept (optionally quoting a budget) or reject."""
        caller.require(Capability.ACT_AS_VENDOR)
        try:
            action = VendorAction(action)
        except ValueError:
            raise BadRequestError(f"Unknown action '{action}'. Expected 'accept' or 'reject'")
        if budget is not None and budget < 0:
            raise BadRequestError("Budget must not be negative")

        request = await self.ledger.get(db, request_id)
        if request.vendor_id != caller.id:
            raise PermissionDeniedError("Only the requested vendor can respond to this request")

        request = await self._lock(db, request)
        state = NegotiationState.of(request)
        if state.is_doubly_accepted:
            raise ConflictError("Request has already been accepted by both parties")
        if await self.ledger.has_accepted_sibling(db, request, self.across_projects):
            raise ConflictError(f"Another {request.role} has already been booked")

        if action == VendorAction.REJECT:
            await self.ledger.delete(db, request, actor_id=caller.id, reason="rejected_by_vendor")
            return TransitionOutcome(request_id=request_id, deleted=True)

        state.with_vendor(NegotiationStatus.ACCEPTED).apply(request)
        if budget is not None:
            request.budget = budget
        if additional_details is not None:
            request.additional_details = additional_details
        await audit.record(
            db, ENTITY, request.id, "vendor_accepted", actor_id=caller.id,
            diff={"budget": str(budget) if budget is not None else None},
        )
        logger.info("Vendor %s accepted request %s", caller.id, request.id)
        return await self._after_transition(db, request, caller.id)

    async def accept_offer(
        self,
        db: AsyncSession,
        caller: Caller,
        request_id: uuid.UUID,
        accept: bool,
    ) -> TransitionOutcome:
        """User side: take or decline the vendor's offer."""
        caller.require(Capability.ACT_AS_USER)

        request = await self.ledger.get(db, request_id)
        if request.user_id != caller.id:
            raise PermissionDeniedError("Only the requesting user can answer this offer")

        request = await self._lock(db, request)
        state = NegotiationState.of(request)

        if not accept:
            if state.is_doubly_accepted:
                raise ConflictError("A booked request cannot be declined")
            await self.ledger.delete(db, request, actor_id=caller.id, reason="rejected_by_user")
            return TransitionOutcome(request_id=request_id, deleted=True)

        if state.is_doubly_accepted:
            # Already booked; repeating the accept must not cascade again.
            return TransitionOutcome(
                request_id=request.id,
                deleted=False,
                request=request,
                retraction=RetractionReport(request_id=request.id),
            )
        if await self.ledger.has_accepted_sibling(db, request, self.across_projects):
            raise ConflictError(f"Another {request.role} has already been booked")

        state.with_user(NegotiationStatus.ACCEPTED).apply(request)
        await audit.record(db, ENTITY, request.id, "user_accepted", actor_id=caller.id)
        logger.info("User %s accepted offer on request %s", caller.id, request.id)
        return await self._after_transition(db, request, caller.id)

    async def _lock(self, db: AsyncSession, request: VendorRequest) -> VendorRequest:
        """Serialize transitions within the project, then re-read the request."""
        await lock_row(db, Project, request.project_id)
        locked = await lock_row(db, VendorRequest, request.id)
        return locked if locked is not None else request

    async def _after_transition(
        self, db: AsyncSession, request: VendorRequest, actor_id: uuid.UUID
    ) -> TransitionOutcome:
        role = request.role
        try:
            await db.flush()
        except IntegrityError:
            # Lost a race with a concurrent booking of the same role
            raise ConflictError(f"Another {role} has already been booked")
        if not NegotiationState.of(request).is_doubly_accepted:
            return TransitionOutcome(request_id=request.id, deleted=False, request=request)

        request_id = request.id
        populate_progress(request)
        intent = RetractionIntent(request_id=request_id, attempts=0, retracted_count=0)
        db.add(intent)
        await db.flush()
        logger.info("Request %s booked; retracting competing requests", request_id)

        report = await self.retract_siblings(db, request, actor_id)
        self._settle(intent, report)
        await db.flush()
        return TransitionOutcome(
            request_id=request_id, deleted=False, request=request, retraction=report
        )

    # ---------- Retraction ----------

    async def retract_siblings(
        self,
        db: AsyncSession,
        request: VendorRequest,
        actor_id: uuid.UUID | None = None,
    ) -> RetractionReport:
        """Delete every open request competing with ``request``.

        Each sibling goes in its own savepoint: one failure is logged and
        reported without undoing the others or the booking itself.
        """
        request_id = request.id
        report = RetractionReport(request_id=request_id)
        siblings = await self.ledger.open_siblings(db, request, self.across_projects)
        sibling_ids = [s.id for s in siblings]

        for sibling_id in sibling_ids:
            try:
                async with db.begin_nested():
                    removed = await self.ledger.delete(
                        db, sibling_id, actor_id=actor_id, reason="retracted"
                    )
            except SQLAlchemyError:
                logger.exception(
                    "Could not retract request %s competing with %s", sibling_id, request_id
                )
                report.failed.append(sibling_id)
            else:
                if removed:
                    report.retracted.append(sibling_id)

        logger.info(
            "Retraction for %s: %d removed, %d failed",
            request_id, len(report.retracted), len(report.failed),
        )
        return report

    def _settle(self, intent: RetractionIntent, report: RetractionReport) -> None:
        intent.attempts = (intent.attempts or 0) + 1
        intent.retracted_count = (intent.retracted_count or 0) + len(report.retracted)

        if report.complete:
            intent.status = RetractionStatus.PROCESSED.value
            intent.processed_at = datetime.now(timezone.utc)
            intent.last_error = None
            return

        intent.last_error = f"{len(report.failed)} request(s) could not be retracted"
        if intent.attempts >= self.max_attempts:
            intent.status = RetractionStatus.ABANDONED.value
            logger.error(
                "Giving up retraction for request %s after %d attempts; mirrors need reconciling",
                intent.request_id, intent.attempts,
            )
        else:
            logger.warning(
                "Retraction for request %s incomplete (attempt %d of %d)",
                intent.request_id, intent.attempts, self.max_attempts,
            )

    async def process_intent(self, db: AsyncSession, intent: RetractionIntent) -> str:
        request = await self.ledger.find(db, intent.request_id)
        if request is None or not NegotiationState.of(request).is_doubly_accepted:
            intent.status = RetractionStatus.PROCESSED.value
            intent.processed_at = datetime.now(timezone.utc)
            intent.last_error = "booking no longer present"
            return intent.status

        request = await self._lock(db, request)
        report = await self.retract_siblings(db, request)
        self._settle(intent, report)
        return intent.status

    async def process_pending_intents(
        self,
        db: AsyncSession,
        request_id: uuid.UUID | None = None,
        limit: int = 100,
    ) -> dict[str, int]:
        """Retry retractions still owed, oldest first."""
        query = (
            select(RetractionIntent)
            .where(RetractionIntent.status == RetractionStatus.PENDING.value)
            .order_by(RetractionIntent.created_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        if request_id is not None:
            query = query.where(RetractionIntent.request_id == request_id)
        intents = (await db.execute(query)).scalars().all()

        counts = {status.value: 0 for status in RetractionStatus}
        for intent in intents:
            counts[await self.process_intent(db, intent)] += 1
        await db.flush()

        if intents:
            logger.info("Processed %d retraction intent(s): %s", len(intents), counts)
        return counts
