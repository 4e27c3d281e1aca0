import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.common.exceptions import BadRequestError
from eventhub.common.logging import get_logger
from eventhub.config import settings
from eventhub.core.discovery.geo import haversine_km
from eventhub.core.discovery.schemas import CandidateMatch, CandidateSearch
from eventhub.core.negotiation.ledger import parse_role
from eventhub.core.negotiation.schemas import GeoPoint
from eventhub.db.models.vendor import Vendor, VendorRequest

logger = get_logger("discovery.service")


def _validate(criteria: CandidateSearch) -> str:
    role = parse_role(criteria.role).value
    GeoPoint(lng=criteria.lng, lat=criteria.lat).ensure_valid()
    if criteria.radius_km <= 0:
        raise BadRequestError("Search radius must be positive")
    if criteria.radius_km > settings.MAX_SEARCH_RADIUS_KM:
        raise BadRequestError(
            f"Search radius must not exceed {settings.MAX_SEARCH_RADIUS_KM:g} km"
        )
    return role


async def find_candidates(
    criteria: CandidateSearch,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
    db: AsyncSession,
) -> list[CandidateMatch]:
    """Vendors of the wanted role within the radius, nearest first.

    Vendors this user already asked for the role in this project are left
    out, as are vendors that never registered a location.
    """
    role = _validate(criteria)

    requested = await db.execute(
        select(VendorRequest.vendor_id).where(
            VendorRequest.user_id == user_id,
            VendorRequest.project_id == project_id,
            VendorRequest.role == role,
        )
    )
    already_requested = set(requested.scalars().all())

    result = await db.execute(
        select(Vendor).where(
            Vendor.is_deleted.is_(False),
            func.lower(Vendor.role) == role,
            Vendor.location_lat.is_not(None),
            Vendor.location_lng.is_not(None),
        )
    )

    matches: list[tuple[float, CandidateMatch]] = []
    for vendor in result.scalars().all():
        if vendor.id in already_requested:
            continue

        distance = haversine_km(criteria.lat, criteria.lng, vendor.location_lat, vendor.location_lng)
        if distance > criteria.radius_km:
            continue

        matches.append(
            (
                distance,
                CandidateMatch(
                    vendor_id=str(vendor.id),
                    name=vendor.name,
                    role=vendor.role,
                    distance_km=round(distance, 3),
                    rating=vendor.rating,
                    location_lat=vendor.location_lat,
                    location_lng=vendor.location_lng,
                    profile_image_url=vendor.profile_image_url,
                ),
            )
        )

    matches.sort(key=lambda m: (m[0], m[1].name, m[1].vendor_id))

    logger.info(
        "Found %d %s candidate(s) within %.1f km for project %s",
        len(matches), role, criteria.radius_km, project_id,
    )
    return [match for _, match in matches]
