"""Ratings left by users once a booking is in place."""

import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.common.enums import Capability
from eventhub.common.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from eventhub.common.identity import Caller
from eventhub.common.logging import get_logger
from eventhub.core import audit
from eventhub.core.negotiation.ledger import ENTITY, RequestLedger
from eventhub.core.negotiation.mirrors import lock_row
from eventhub.db.models.vendor import Vendor, VendorRequest

logger = get_logger("tracking.reviews")

ledger = RequestLedger()

MIN_RATING = 1
MAX_RATING = 5


def aggregate_rating(ratings: list[int]) -> float:
    """Mean rating rounded half-up to one decimal; 0.0 with no ratings."""
    if not ratings:
        return 0.0
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


async def submit_review(
    db: AsyncSession,
    caller: Caller,
    request_id: uuid.UUID,
    rating: int,
    message: str,
) -> VendorRequest:
    caller.require(Capability.ACT_AS_USER)
    if not MIN_RATING <= rating <= MAX_RATING:
        raise BadRequestError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    message = message.strip()
    if not message:
        raise BadRequestError("Review message must not be empty")

    request = await ledger.get(db, request_id)
    if request.user_id != caller.id:
        raise PermissionDeniedError("Only the requesting user can review this booking")
    if not request.is_doubly_accepted:
        raise BadRequestError("Only a booked request can be reviewed")
    if request.rating is not None:
        raise ConflictError("This booking has already been reviewed")

    request.rating = rating
    request.rating_message = message
    request.reviewed_at = datetime.now(timezone.utc)
    await db.flush()

    vendor = await lock_row(db, Vendor, request.vendor_id)
    result = await db.execute(
        select(VendorRequest.rating).where(
            VendorRequest.vendor_id == request.vendor_id,
            VendorRequest.rating.is_not(None),
        )
    )
    vendor.rating = aggregate_rating(list(result.scalars().all()))

    await audit.record(
        db, ENTITY, request.id, "reviewed", actor_id=caller.id, diff={"rating": rating}
    )
    await db.flush()

    logger.info(
        "Request %s reviewed with %d; vendor %s now rated %.1f",
        request.id, rating, vendor.id, vendor.rating,
    )
    return request


async def review_status(db: AsyncSession, caller: Caller, request_id: uuid.UUID) -> bool:
    request = await ledger.get_for_party(db, caller, request_id, allow_admin=True)
    return request.rating is not None and bool(request.rating_message)


async def list_vendor_reviews(db: AsyncSession, vendor_id: uuid.UUID) -> list[VendorRequest]:
    vendor = await db.get(Vendor, vendor_id)
    if vendor is None or vendor.is_deleted:
        raise NotFoundError("Vendor", str(vendor_id))

    result = await db.execute(
        select(VendorRequest)
        .where(VendorRequest.vendor_id == vendor_id, VendorRequest.rating.is_not(None))
        .order_by(VendorRequest.reviewed_at.desc(), VendorRequest.id)
    )
    return list(result.scalars().all())
