import uuid
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.api.deps import get_caller, get_db, require_capability
from eventhub.api.v1.requests import VendorRequestResponse
from eventhub.common.enums import Capability
from eventhub.common.identity import Caller
from eventhub.common.pagination import PaginatedResponse, PaginationParams, paginate
from eventhub.core import accounts
from eventhub.core.negotiation.ledger import RequestLedger
from eventhub.core.negotiation.schemas import GeoPoint
from eventhub.core.tracking.reviews import list_vendor_reviews
from eventhub.db.models.vendor import Vendor

router = APIRouter(prefix="/vendors", tags=["Vendors"])

ledger = RequestLedger()


# ---------- Schemas ----------


class RegisterVendorRequest(BaseModel):
    name: str
    email: EmailStr
    phone: str
    role: str
    description: str
    lng: float
    lat: float
    profile_image_url: str | None = None
    work_image_urls: list[str] = []


class VendorResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    phone: str
    role: str
    description: str
    lng: float | None
    lat: float | None
    profile_image_url: str | None
    work_image_urls: list[str]
    rating: float

    @classmethod
    def from_orm_instance(cls, vendor: Vendor) -> "VendorResponse":
        return cls(
            id=vendor.id,
            name=vendor.name,
            email=vendor.email,
            phone=vendor.phone,
            role=vendor.role,
            description=vendor.description,
            lng=vendor.location_lng,
            lat=vendor.location_lat,
            profile_image_url=vendor.profile_image_url,
            work_image_urls=vendor.work_image_urls or [],
            rating=vendor.rating,
        )


class VendorReviewResponse(BaseModel):
    request_id: uuid.UUID
    role: str
    rating: int
    message: str | None
    reviewed_at: datetime | None


class VendorReviewListResponse(BaseModel):
    vendor_id: uuid.UUID
    rating: float
    reviews: list[VendorReviewResponse]
    total: int


# ---------- Endpoints ----------


@router.post("", response_model=VendorResponse, status_code=201)
async def register_vendor(
    body: RegisterVendorRequest,
    caller: Caller = Depends(require_capability(Capability.ACT_AS_VENDOR)),
    db: AsyncSession = Depends(get_db),
):
    vendor = await accounts.register_vendor(
        db,
        caller,
        name=body.name,
        email=body.email,
        phone=body.phone,
        role=body.role,
        description=body.description,
        location=GeoPoint(lng=body.lng, lat=body.lat),
        profile_image_url=body.profile_image_url,
        work_image_urls=body.work_image_urls,
    )
    await db.refresh(vendor)
    return VendorResponse.from_orm_instance(vendor)


@router.get("/me/requests", response_model=PaginatedResponse[VendorRequestResponse])
async def vendor_inbox(
    caller: Caller = Depends(require_capability(Capability.ACT_AS_VENDOR)),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    vendor = await accounts.get_vendor(db, caller.id)
    items, total = await paginate(db, ledger.inbox_query(vendor), pagination)
    return PaginatedResponse(
        items=[VendorRequestResponse.from_orm_instance(r) for r in items],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
        total_pages=pagination.total_pages(total),
    )


@router.get("/{vendor_id}", response_model=VendorResponse)
async def get_vendor(
    vendor_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    vendor = await accounts.get_vendor(db, vendor_id)
    return VendorResponse.from_orm_instance(vendor)


@router.get("/{vendor_id}/reviews", response_model=VendorReviewListResponse)
async def get_vendor_reviews(
    vendor_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    vendor = await accounts.get_vendor(db, vendor_id)
    rated = await list_vendor_reviews(db, vendor_id)
    return VendorReviewListResponse(
        vendor_id=vendor.id,
        rating=vendor.rating,
        reviews=[
            VendorReviewResponse(
                request_id=r.id,
                role=r.role,
                rating=r.rating,
                message=r.rating_message,
                reviewed_at=r.reviewed_at,
            )
            for r in rated
        ],
        total=len(rated),
    )
