import uuid

import pytest
from conftest import as_user, as_vendor
from sqlalchemy.exc import IntegrityError

from eventhub.common.enums import CallerRole
from eventhub.common.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from eventhub.common.identity import Caller
from eventhub.core.negotiation.engine import OfferNegotiationEngine
from eventhub.core.negotiation.ledger import RequestLedger
from eventhub.core.projects import aggregator
from eventhub.core.projects.service import create_project, get_project_for_caller, list_projects


@pytest.mark.asyncio
async def test_project_names_are_unique_per_owner_in_storage(db_session, organizer, make_project):
    await make_project(organizer, name="Winter Ball")

    with pytest.raises(IntegrityError):
        await make_project(organizer, name="WINTER BALL")


@pytest.mark.asyncio
async def test_soft_deleted_project_name_can_be_reused(db_session, organizer, make_project):
    retired = await make_project(organizer, name="Winter Ball")
    retired.is_deleted = True
    await db_session.flush()

    reused = await make_project(organizer, name="Winter Ball")
    assert reused.id != retired.id


@pytest.mark.asyncio
async def test_create_project_trims_name(db_session, organizer):
    project = await create_project(db_session, as_user(organizer), "  Summer Gala  ")
    assert project.name == "Summer Gala"
    assert project.owner_id == organizer.id
    assert project.sent_requests == []


@pytest.mark.asyncio
async def test_duplicate_project_name_is_case_insensitive(db_session, organizer, make_user):
    await create_project(db_session, as_user(organizer), "Summer Gala")
    with pytest.raises(ConflictError):
        await create_project(db_session, as_user(organizer), "summer gala")

    # Another user may reuse the name
    other = await make_user("Other Organizer")
    project = await create_project(db_session, as_user(other), "Summer Gala")
    assert project.owner_id == other.id


@pytest.mark.asyncio
async def test_create_project_rejects_blank_name(db_session, organizer):
    with pytest.raises(BadRequestError):
        await create_project(db_session, as_user(organizer), "   ")


@pytest.mark.asyncio
async def test_vendors_cannot_create_projects(db_session, make_vendor):
    vendor = await make_vendor()
    with pytest.raises(PermissionDeniedError):
        await create_project(db_session, as_vendor(vendor), "Side hustle")


@pytest.mark.asyncio
async def test_project_access(db_session, organizer, project, make_user):
    stranger = await make_user("Stranger")
    admin = Caller(id=uuid.uuid4(), role=CallerRole.ADMIN)

    assert (await get_project_for_caller(db_session, as_user(organizer), project.id)).id == project.id
    assert (await get_project_for_caller(db_session, admin, project.id)).id == project.id
    with pytest.raises(PermissionDeniedError):
        await get_project_for_caller(db_session, as_user(stranger), project.id)
    with pytest.raises(PermissionDeniedError):
        await get_project_for_caller(db_session, admin, project.id, allow_admin=False)
    with pytest.raises(NotFoundError):
        await get_project_for_caller(db_session, as_user(organizer), uuid.uuid4())


@pytest.mark.asyncio
async def test_list_projects_only_returns_own(db_session, organizer, project, make_user, make_project):
    stranger = await make_user("Stranger")
    await make_project(stranger)

    projects = await list_projects(db_session, as_user(organizer))
    assert [p.id for p in projects] == [project.id]


@pytest.mark.asyncio
async def test_ongoing_and_accepted_roles(db_session, organizer, project, make_vendor, make_request):
    engine = OfferNegotiationEngine(across_projects=False)
    caterer = await make_vendor("caterer")
    booked = await make_request(organizer, caterer, project)
    await make_request(organizer, await make_vendor("dj"), project)
    await make_request(organizer, await make_vendor("decorator"), project)
    await make_request(organizer, await make_vendor("decorator"), project)

    assert await aggregator.ongoing_roles(db_session, project) == ["caterer", "decorator", "dj"]
    assert await aggregator.accepted_roles(db_session, project) == []

    await engine.respond(db_session, as_vendor(caterer), booked.id, "accept")
    await engine.accept_offer(db_session, as_user(organizer), booked.id, True)

    assert await aggregator.ongoing_roles(db_session, project) == ["decorator", "dj"]
    assert await aggregator.accepted_roles(db_session, project) == ["caterer"]


@pytest.mark.asyncio
async def test_purge_unaccepted_keeps_booking(db_session, organizer, project, make_vendor, make_request):
    engine = OfferNegotiationEngine(across_projects=False)
    ledger = RequestLedger()
    vendor = await make_vendor("musician")
    booked = await make_request(organizer, vendor, project)
    await engine.respond(db_session, as_vendor(vendor), booked.id, "accept")
    await engine.accept_offer(db_session, as_user(organizer), booked.id, True)
    dj_request_id = (await make_request(organizer, await make_vendor("dj"), project)).id
    await make_request(organizer, await make_vendor("dj"), project)

    removed = await aggregator.purge_unaccepted(db_session, as_user(organizer), project, "musician")
    assert removed == 0
    assert await ledger.find(db_session, booked.id) is not None

    removed = await aggregator.purge_unaccepted(db_session, as_user(organizer), project, "DJ")
    assert removed == 2
    assert await ledger.find(db_session, dj_request_id) is None
    assert project.sent_requests == [{"request_id": str(booked.id), "role": "musician"}]


@pytest.mark.asyncio
async def test_purge_rejects_unknown_role(db_session, organizer, project):
    with pytest.raises(BadRequestError):
        await aggregator.purge_unaccepted(db_session, as_user(organizer), project, "clown")
