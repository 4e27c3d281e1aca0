import math

import pytest
from conftest import ORIGIN

from eventhub.common.exceptions import BadRequestError
from eventhub.core.discovery.schemas import CandidateSearch
from eventhub.core.discovery.service import find_candidates


def _north_of_origin(km: float) -> float:
    return ORIGIN.lat + math.degrees(km / 6371.0)


def _search(role="caterer", radius_km=10.0) -> CandidateSearch:
    return CandidateSearch(role=role, lat=ORIGIN.lat, lng=ORIGIN.lng, radius_km=radius_km)


@pytest.mark.asyncio
async def test_radius_boundary(db_session, organizer, project, make_vendor):
    inside = await make_vendor("caterer", lat=_north_of_origin(9.9999))
    await make_vendor("caterer", lat=_north_of_origin(10.0001))

    matches = await find_candidates(_search(), organizer.id, project.id, db_session)

    assert [m.vendor_id for m in matches] == [str(inside.id)]
    assert matches[0].distance_km == pytest.approx(9.9999, abs=1e-3)


@pytest.mark.asyncio
async def test_role_match_is_case_insensitive(db_session, organizer, project, make_vendor):
    await make_vendor("Caterer", lat=_north_of_origin(1))
    await make_vendor("decorator", lat=_north_of_origin(1))

    matches = await find_candidates(_search(role="CATERER"), organizer.id, project.id, db_session)

    assert len(matches) == 1
    assert matches[0].role == "Caterer"


@pytest.mark.asyncio
async def test_vendors_already_requested_in_triple_are_excluded(
    db_session, organizer, project, make_project, make_vendor, make_request
):
    requested = await make_vendor("caterer", lat=_north_of_origin(2))
    fresh = await make_vendor("caterer", lat=_north_of_origin(3))
    await make_request(organizer, requested, project)

    matches = await find_candidates(_search(), organizer.id, project.id, db_session)
    assert [m.vendor_id for m in matches] == [str(fresh.id)]

    # A different project of the same user is a different triple
    other_project = await make_project(organizer)
    matches = await find_candidates(_search(), organizer.id, other_project.id, db_session)
    assert {m.vendor_id for m in matches} == {str(requested.id), str(fresh.id)}


@pytest.mark.asyncio
async def test_results_sorted_by_distance_then_name(db_session, organizer, project, make_vendor):
    far = await make_vendor("dj", name="Aardvark Beats", lat=_north_of_origin(8))
    near_b = await make_vendor("dj", name="Bravo Sound", lat=_north_of_origin(2))
    near_a = await make_vendor("dj", name="Alpha Sound", lat=_north_of_origin(2))

    matches = await find_candidates(_search(role="dj"), organizer.id, project.id, db_session)

    assert [m.vendor_id for m in matches] == [str(near_a.id), str(near_b.id), str(far.id)]


@pytest.mark.asyncio
async def test_vendors_without_location_are_skipped(db_session, organizer, project, make_vendor):
    await make_vendor("musician", lat=None, lng=None)
    matches = await find_candidates(_search(role="musician"), organizer.id, project.id, db_session)
    assert matches == []


@pytest.mark.asyncio
@pytest.mark.parametrize("radius_km", [0, -5, 10_000])
async def test_radius_must_be_positive_and_bounded(db_session, organizer, project, radius_km):
    with pytest.raises(BadRequestError):
        await find_candidates(_search(radius_km=radius_km), organizer.id, project.id, db_session)


@pytest.mark.asyncio
async def test_unknown_role_is_rejected(db_session, organizer, project):
    with pytest.raises(BadRequestError):
        await find_candidates(_search(role="astronaut"), organizer.id, project.id, db_session)
