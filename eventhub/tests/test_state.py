from datetime import datetime, timedelta, timezone

import pytest

from eventhub.common.enums import NegotiationStatus
from eventhub.common.exceptions import BadRequestError
from eventhub.core.discovery.geo import haversine_km
from eventhub.core.negotiation.schemas import GeoPoint, TimeWindow
from eventhub.core.negotiation.state import NegotiationState, initial_progress, populate_progress
from eventhub.core.tracking.reviews import aggregate_rating
from eventhub.db.models.vendor import VendorRequest


def test_state_starts_pending_on_both_sides():
    state = NegotiationState()
    assert state.vendor == NegotiationStatus.PENDING
    assert state.user == NegotiationStatus.PENDING
    assert not state.is_doubly_accepted


def test_doubly_accepted_needs_both_sides():
    vendor_only = NegotiationState().with_vendor(NegotiationStatus.ACCEPTED)
    assert not vendor_only.is_doubly_accepted
    both = vendor_only.with_user(NegotiationStatus.ACCEPTED)
    assert both.is_doubly_accepted
    assert not both.is_rejected


def test_rejection_on_either_side():
    assert NegotiationState().with_user(NegotiationStatus.REJECTED).is_rejected
    assert NegotiationState().with_vendor(NegotiationStatus.REJECTED).is_rejected


def test_initial_progress_has_three_steps_first_done():
    steps = initial_progress()
    assert [s["step"] for s in steps] == ["Vendor booked", "Vendor arrived", "Vendor departed"]
    assert [s["done"] for s in steps] == [True, False, False]


def test_populate_progress_only_once():
    request = VendorRequest(vendor_status="accepted", user_status="accepted", progress=[])
    assert populate_progress(request) is True
    request.progress[1]["done"] = True
    assert populate_progress(request) is False
    assert request.progress[1]["done"] is True


def test_populate_progress_skips_unbooked_request():
    request = VendorRequest(vendor_status="accepted", user_status="pending", progress=[])
    assert populate_progress(request) is False
    assert request.progress == []


def test_time_window_rejects_end_before_start():
    start = datetime(2026, 6, 1, 18, 0, tzinfo=timezone.utc)
    with pytest.raises(BadRequestError):
        TimeWindow(start_at=start, end_at=start).ensure_valid()
    with pytest.raises(BadRequestError):
        TimeWindow(start_at=start, end_at=start - timedelta(minutes=1)).ensure_valid()


def test_time_window_rejects_mixed_timezones():
    start = datetime(2026, 6, 1, 18, 0, tzinfo=timezone.utc)
    with pytest.raises(BadRequestError):
        TimeWindow(start_at=start, end_at=datetime(2026, 6, 1, 22, 0)).ensure_valid()


@pytest.mark.parametrize("lng,lat", [(181, 0), (-180.5, 0), (0, 90.1), (0, -91)])
def test_geo_point_bounds(lng, lat):
    with pytest.raises(BadRequestError):
        GeoPoint(lng=lng, lat=lat).ensure_valid()


def test_haversine_known_distance():
    # Austin to Dallas is roughly 293 km as the crow flies
    distance = haversine_km(30.2672, -97.7431, 32.7767, -96.7970)
    assert 290 < distance < 296
    assert haversine_km(10.0, 20.0, 10.0, 20.0) == 0.0


@pytest.mark.parametrize(
    "ratings,expected",
    [([], 0.0), ([3], 3.0), ([3, 5], 4.0), ([4, 4, 5], 4.3), ([1, 2], 1.5), ([4, 5, 5, 5], 4.8)],
)
def test_aggregate_rating_rounds_half_up(ratings, expected):
    assert aggregate_rating(ratings) == expected
