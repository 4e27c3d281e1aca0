import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.api.deps import get_caller, get_db, require_capability
from eventhub.common.enums import Capability, VendorAction
from eventhub.common.identity import Caller
from eventhub.common.logging import get_logger
from eventhub.common.pagination import PaginatedResponse, PaginationParams, paginate
from eventhub.core.negotiation.engine import OfferNegotiationEngine
from eventhub.core.negotiation.ledger import RequestLedger
from eventhub.core.negotiation.schemas import GeoPoint, TimeWindow, TransitionOutcome
from eventhub.core.tracking import progress as progress_tracker
from eventhub.core.tracking import reviews
from eventhub.db.models.vendor import VendorRequest

logger = get_logger("api.requests")

router = APIRouter(prefix="/requests", tags=["Requests"])

ledger = RequestLedger()


# ---------- Schemas ----------


class CreateRequestsRequest(BaseModel):
    project_id: uuid.UUID
    vendor_ids: list[uuid.UUID] = Field(..., min_length=1)
    role: str
    description: str
    lng: float
    lat: float
    start_at: datetime
    end_at: datetime


class RespondRequest(BaseModel):
    action: VendorAction
    budget: Decimal | None = None
    additional_details: str | None = None


class AcceptOfferRequest(BaseModel):
    accept: bool


class ProgressUpdateRequest(BaseModel):
    step: str
    done: bool


class ReviewRequest(BaseModel):
    rating: int
    message: str


class ProgressStepResponse(BaseModel):
    step: str
    done: bool


class VendorRequestResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    vendor_id: uuid.UUID
    project_id: uuid.UUID
    role: str
    description: str
    lng: float
    lat: float
    start_at: datetime
    end_at: datetime
    vendor_status: str
    user_status: str
    is_doubly_accepted: bool
    budget: Decimal | None
    additional_details: str | None
    progress: list[ProgressStepResponse]
    rating: int | None
    rating_message: str | None
    created_at: str

    @classmethod
    def from_orm_instance(cls, request: VendorRequest) -> "VendorRequestResponse":
        return cls(
            id=request.id,
            user_id=request.user_id,
            vendor_id=request.vendor_id,
            project_id=request.project_id,
            role=request.role,
            description=request.description,
            lng=request.location_lng,
            lat=request.location_lat,
            start_at=request.start_at,
            end_at=request.end_at,
            vendor_status=request.vendor_status,
            user_status=request.user_status,
            is_doubly_accepted=request.is_doubly_accepted,
            budget=request.budget,
            additional_details=request.additional_details,
            progress=[ProgressStepResponse(**entry) for entry in request.progress or []],
            rating=request.rating,
            rating_message=request.rating_message,
            created_at=request.created_at.isoformat(),
        )


class RequestListResponse(BaseModel):
    requests: list[VendorRequestResponse]
    total: int


class TransitionResponse(BaseModel):
    request_id: uuid.UUID
    deleted: bool
    request: VendorRequestResponse | None = None
    deleted_requests_count: int = 0
    failed_requests_count: int = 0


class ProgressResponse(BaseModel):
    request_id: uuid.UUID
    steps: list[ProgressStepResponse]


class ReviewResponse(BaseModel):
    request_id: uuid.UUID
    rating: int
    message: str
    reviewed_at: datetime


class ReviewStatusResponse(BaseModel):
    request_id: uuid.UUID
    reviewed: bool


# ---------- Helpers ----------


async def _transition_response(db: AsyncSession, outcome: TransitionOutcome) -> TransitionResponse:
    if outcome.retraction is not None and not outcome.retraction.complete:
        from eventhub.tasks.negotiation_tasks import retract_siblings_for_request

        # The worker looks the intent up in its own session
        await db.commit()
        retract_siblings_for_request.delay(str(outcome.request_id))

    body = None
    if outcome.request is not None:
        await db.refresh(outcome.request)
        body = VendorRequestResponse.from_orm_instance(outcome.request)

    return TransitionResponse(
        request_id=outcome.request_id,
        deleted=outcome.deleted,
        request=body,
        deleted_requests_count=outcome.deleted_requests_count,
        failed_requests_count=outcome.failed_requests_count,
    )


# ---------- Endpoints ----------


@router.post("", response_model=RequestListResponse, status_code=201)
async def create_requests(
    body: CreateRequestsRequest,
    caller: Caller = Depends(require_capability(Capability.ACT_AS_USER)),
    db: AsyncSession = Depends(get_db),
):
    created = await ledger.create_many(
        db,
        user_id=caller.id,
        vendor_ids=body.vendor_ids,
        project_id=body.project_id,
        role=body.role,
        point=GeoPoint(lng=body.lng, lat=body.lat),
        window=TimeWindow(start_at=body.start_at, end_at=body.end_at),
        description=body.description,
    )
    for request in created:
        await db.refresh(request)
    return RequestListResponse(
        requests=[VendorRequestResponse.from_orm_instance(r) for r in created],
        total=len(created),
    )


@router.get("", response_model=PaginatedResponse[VendorRequestResponse])
async def list_my_requests(
    caller: Caller = Depends(require_capability(Capability.ACT_AS_USER)),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    items, total = await paginate(db, ledger.user_requests_query(caller.id), pagination)
    return PaginatedResponse(
        items=[VendorRequestResponse.from_orm_instance(r) for r in items],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
        total_pages=pagination.total_pages(total),
    )


@router.get("/{request_id}", response_model=VendorRequestResponse)
async def get_request(
    request_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    request = await ledger.get_for_party(db, caller, request_id, allow_admin=True)
    return VendorRequestResponse.from_orm_instance(request)


@router.post("/{request_id}/respond", response_model=TransitionResponse)
async def respond_as_vendor(
    request_id: uuid.UUID,
    body: RespondRequest,
    caller: Caller = Depends(require_capability(Capability.ACT_AS_VENDOR)),
    db: AsyncSession = Depends(get_db),
):
    outcome = await OfferNegotiationEngine().respond(
        db,
        caller,
        request_id,
        body.action,
        budget=body.budget,
        additional_details=body.additional_details,
    )
    return await _transition_response(db, outcome)


@router.post("/{request_id}/accept-offer", response_model=TransitionResponse)
async def respond_as_user(
    request_id: uuid.UUID,
    body: AcceptOfferRequest,
    caller: Caller = Depends(require_capability(Capability.ACT_AS_USER)),
    db: AsyncSession = Depends(get_db),
):
    outcome = await OfferNegotiationEngine().accept_offer(db, caller, request_id, body.accept)
    return await _transition_response(db, outcome)


@router.get("/{request_id}/progress", response_model=ProgressResponse)
async def get_progress(
    request_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    steps = await progress_tracker.get_progress(db, caller, request_id)
    return ProgressResponse(
        request_id=request_id, steps=[ProgressStepResponse(**s) for s in steps]
    )


@router.patch("/{request_id}/progress", response_model=ProgressResponse)
async def update_progress(
    request_id: uuid.UUID,
    body: ProgressUpdateRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    steps = await progress_tracker.set_progress_step(db, caller, request_id, body.step, body.done)
    return ProgressResponse(
        request_id=request_id, steps=[ProgressStepResponse(**s) for s in steps]
    )


@router.post("/{request_id}/review", response_model=ReviewResponse, status_code=201)
async def submit_review(
    request_id: uuid.UUID,
    body: ReviewRequest,
    caller: Caller = Depends(require_capability(Capability.ACT_AS_USER)),
    db: AsyncSession = Depends(get_db),
):
    request = await reviews.submit_review(db, caller, request_id, body.rating, body.message)
    return ReviewResponse(
        request_id=request.id,
        rating=request.rating,
        message=request.rating_message,
        reviewed_at=request.reviewed_at,
    )


@router.get("/{request_id}/review", response_model=ReviewStatusResponse)
async def review_status(
    request_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    reviewed = await reviews.review_status(db, caller, request_id)
    return ReviewStatusResponse(request_id=request_id, reviewed=reviewed)
