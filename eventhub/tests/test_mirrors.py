import uuid

import pytest

from eventhub.core.negotiation import mirrors


@pytest.mark.asyncio
async def test_mirror_writes_are_idempotent(db_session, project, make_vendor):
    vendor = await make_vendor()
    request_id = uuid.uuid4()

    await mirrors.add_inbox_entry(db_session, vendor.id, request_id)
    await mirrors.add_inbox_entry(db_session, vendor.id, request_id)
    await mirrors.add_sent_request(db_session, project.id, request_id, "caterer")
    await mirrors.add_sent_request(db_session, project.id, request_id, "caterer")

    assert vendor.received_requests == [str(request_id)]
    assert project.sent_requests == [{"request_id": str(request_id), "role": "caterer"}]

    assert await mirrors.remove_inbox_entry(db_session, vendor.id, request_id) is True
    assert await mirrors.remove_inbox_entry(db_session, vendor.id, request_id) is False
    assert await mirrors.remove_sent_request(db_session, project.id, request_id) is True
    assert await mirrors.remove_sent_request(db_session, project.id, request_id) is False


@pytest.mark.asyncio
async def test_reconcile_repairs_drifted_mirrors(
    db_session, organizer, project, make_vendor, make_request
):
    vendor = await make_vendor("decorator")
    request = await make_request(organizer, vendor, project)
    stale_id = str(uuid.uuid4())

    # Simulate an interrupted cleanup: a stale entry and a lost one
    vendor.received_requests = [stale_id]
    project.sent_requests = [
        {"request_id": str(request.id), "role": "decorator"},
        {"request_id": stale_id, "role": "decorator"},
    ]
    await db_session.flush()

    repaired = await mirrors.reconcile_all(db_session)

    assert repaired == 2
    assert vendor.received_requests == [str(request.id)]
    assert project.sent_requests == [{"request_id": str(request.id), "role": "decorator"}]


@pytest.mark.asyncio
async def test_reconcile_is_noop_when_consistent(
    db_session, organizer, project, make_vendor, make_request
):
    await make_request(organizer, await make_vendor(), project)
    assert await mirrors.reconcile_all(db_session) == 0
