"""Profiles of the identities that use the service.

Credentials live with the identity provider; a profile is keyed by the
``sub`` of the caller's token so ownership checks can compare ids directly.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.common.enums import Capability
from eventhub.common.exceptions import ConflictError, NotFoundError
from eventhub.common.identity import Caller
from eventhub.common.logging import get_logger
from eventhub.core.negotiation.ledger import parse_role
from eventhub.core.negotiation.schemas import GeoPoint
from eventhub.db.models.user import User
from eventhub.db.models.vendor import Vendor

logger = get_logger("accounts")


async def _ensure_unique(db: AsyncSession, model, caller: Caller, email: str) -> None:
    if await db.get(model, caller.id) is not None:
        raise ConflictError("A profile already exists for this account")
    result = await db.execute(select(model.id).where(model.email == email))
    if result.first() is not None:
        raise ConflictError("An account with this email already exists")


async def register_user(
    db: AsyncSession,
    caller: Caller,
    *,
    email: str,
    full_name: str,
    phone: str | None = None,
    profile_image_url: str | None = None,
) -> User:
    caller.require(Capability.ACT_AS_USER)
    email = email.strip().lower()
    await _ensure_unique(db, User, caller, email)

    user = User(
        id=caller.id,
        email=email,
        full_name=full_name.strip(),
        phone=phone,
        profile_image_url=profile_image_url,
    )
    db.add(user)
    await db.flush()
    logger.info("Registered user profile %s", user.id)
    return user


async def register_vendor(
    db: AsyncSession,
    caller: Caller,
    *,
    name: str,
    email: str,
    phone: str,
    role: str,
    description: str,
    location: GeoPoint,
    profile_image_url: str | None = None,
    work_image_urls: list[str] | None = None,
) -> Vendor:
    caller.require(Capability.ACT_AS_VENDOR)
    vendor_role = parse_role(role)
    location.ensure_valid()
    email = email.strip().lower()
    await _ensure_unique(db, Vendor, caller, email)

    vendor = Vendor(
        id=caller.id,
        name=name.strip(),
        email=email,
        phone=phone,
        role=vendor_role.value,
        description=description,
        location_lat=location.lat,
        location_lng=location.lng,
        profile_image_url=profile_image_url,
        work_image_urls=list(work_image_urls or []),
        rating=0.0,
        received_requests=[],
    )
    db.add(vendor)
    await db.flush()
    logger.info("Registered %s vendor profile %s", vendor.role, vendor.id)
    return vendor


async def get_vendor(db: AsyncSession, vendor_id: uuid.UUID) -> Vendor:
    result = await db.execute(
        select(Vendor).where(Vendor.id == vendor_id, Vendor.is_deleted.is_(False))
    )
    vendor = result.scalar_one_or_none()
    if vendor is None:
        raise NotFoundError("Vendor", str(vendor_id))
    return vendor
