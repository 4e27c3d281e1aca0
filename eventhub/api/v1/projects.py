import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.api.deps import get_caller, get_db, require_capability
from eventhub.api.v1.requests import RequestListResponse, VendorRequestResponse
from eventhub.common.enums import Capability, RequestFilter
from eventhub.common.identity import Caller
from eventhub.config import settings
from eventhub.core.discovery.schemas import CandidateMatch, CandidateSearch
from eventhub.core.discovery.service import find_candidates
from eventhub.core.negotiation.ledger import RequestLedger
from eventhub.core.projects import aggregator
from eventhub.core.projects.service import create_project, get_project_for_caller, list_projects
from eventhub.db.models.project import Project

router = APIRouter(prefix="/projects", tags=["Projects"])

ledger = RequestLedger()


# ---------- Schemas ----------


class ProjectCreateRequest(BaseModel):
    name: str


class SentRequestEntry(BaseModel):
    request_id: uuid.UUID
    role: str


class ProjectResponse(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    name: str
    sent_requests: list[SentRequestEntry]
    created_at: str

    @classmethod
    def from_orm_instance(cls, project: Project) -> "ProjectResponse":
        return cls(
            id=project.id,
            owner_id=project.owner_id,
            name=project.name,
            sent_requests=[SentRequestEntry(**e) for e in project.sent_requests or []],
            created_at=project.created_at.isoformat(),
        )


class ProjectListResponse(BaseModel):
    projects: list[ProjectResponse]
    total: int


class CandidateListResponse(BaseModel):
    role: str
    radius_km: float
    candidates: list[CandidateMatch]
    total: int


class RoleListResponse(BaseModel):
    project_id: uuid.UUID
    roles: list[str]


class PurgeResponse(BaseModel):
    project_id: uuid.UUID
    role: str
    deleted_requests_count: int


# ---------- Endpoints ----------


@router.post("", response_model=ProjectResponse, status_code=201)
async def create(
    body: ProjectCreateRequest,
    caller: Caller = Depends(require_capability(Capability.ACT_AS_USER)),
    db: AsyncSession = Depends(get_db),
):
    project = await create_project(db, caller, body.name)
    await db.refresh(project)
    return ProjectResponse.from_orm_instance(project)


@router.get("", response_model=ProjectListResponse)
async def list_all(
    caller: Caller = Depends(require_capability(Capability.ACT_AS_USER)),
    db: AsyncSession = Depends(get_db),
):
    projects = await list_projects(db, caller)
    return ProjectListResponse(
        projects=[ProjectResponse.from_orm_instance(p) for p in projects],
        total=len(projects),
    )


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_caller(db, caller, project_id)
    return ProjectResponse.from_orm_instance(project)


@router.get("/{project_id}/candidates", response_model=CandidateListResponse)
async def list_candidates(
    project_id: uuid.UUID,
    role: str,
    lat: float,
    lng: float,
    radius_km: float = Query(default=settings.DEFAULT_SEARCH_RADIUS_KM),
    caller: Caller = Depends(require_capability(Capability.ACT_AS_USER)),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_caller(db, caller, project_id, allow_admin=False)
    criteria = CandidateSearch(role=role, lat=lat, lng=lng, radius_km=radius_km)
    candidates = await find_candidates(criteria, caller.id, project.id, db)
    return CandidateListResponse(
        role=role.strip().lower(),
        radius_km=radius_km,
        candidates=candidates,
        total=len(candidates),
    )


@router.get("/{project_id}/requests", response_model=RequestListResponse)
async def list_project_requests(
    project_id: uuid.UUID,
    status: RequestFilter = RequestFilter.ALL,
    role: str | None = None,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_caller(db, caller, project_id)
    requests = await ledger.list_by_user_project(
        db, project.owner_id, project.id, request_filter=status, role=role
    )
    return RequestListResponse(
        requests=[VendorRequestResponse.from_orm_instance(r) for r in requests],
        total=len(requests),
    )


@router.get("/{project_id}/roles/ongoing", response_model=RoleListResponse)
async def ongoing_roles(
    project_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_caller(db, caller, project_id)
    roles = await aggregator.ongoing_roles(db, project)
    return RoleListResponse(project_id=project.id, roles=roles)


@router.get("/{project_id}/roles/accepted", response_model=RoleListResponse)
async def accepted_roles(
    project_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_caller(db, caller, project_id)
    roles = await aggregator.accepted_roles(db, project)
    return RoleListResponse(project_id=project.id, roles=roles)


@router.delete("/{project_id}/roles/{role}/pending", response_model=PurgeResponse)
async def purge_unaccepted(
    project_id: uuid.UUID,
    role: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_for_caller(db, caller, project_id)
    deleted = await aggregator.purge_unaccepted(db, caller, project, role)
    return PurgeResponse(
        project_id=project_id, role=role.strip().lower(), deleted_requests_count=deleted
    )
