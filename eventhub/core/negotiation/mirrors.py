"""Denormalized views of the request ledger.

``Project.sent_requests`` backs the "my projects and their outstanding
requests" read path and ``Vendor.received_requests`` backs the vendor inbox.
The ledger is authoritative: every write here is an idempotent set operation,
and ``reconcile_*`` rebuilds a mirror from the ledger when they drift.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.common.logging import get_logger
from eventhub.db.models.project import Project
from eventhub.db.models.vendor import Vendor, VendorRequest

logger = get_logger("negotiation.mirrors")


async def lock_row(db: AsyncSession, model, entity_id: uuid.UUID):
    """SELECT ... FOR UPDATE, refreshing any copy already in the identity map."""
    result = await db.execute(
        select(model)
        .where(model.id == entity_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def add_sent_request(
    db: AsyncSession, project_id: uuid.UUID, request_id: uuid.UUID, role: str
) -> None:
    project = await lock_row(db, Project, project_id)
    if project is None:
        logger.warning("Project %s missing while mirroring request %s", project_id, request_id)
        return
    entries = project.sent_requests or []
    if any(e["request_id"] == str(request_id) for e in entries):
        return
    project.sent_requests = [*entries, {"request_id": str(request_id), "role": role}]


async def remove_sent_request(
    db: AsyncSession, project_id: uuid.UUID, request_id: uuid.UUID
) -> bool:
    project = await lock_row(db, Project, project_id)
    if project is None:
        return False
    entries = project.sent_requests or []
    kept = [e for e in entries if e["request_id"] != str(request_id)]
    if len(kept) == len(entries):
        return False
    project.sent_requests = kept
    return True


async def add_inbox_entry(db: AsyncSession, vendor_id: uuid.UUID, request_id: uuid.UUID) -> None:
    vendor = await lock_row(db, Vendor, vendor_id)
    if vendor is None:
        logger.warning("Vendor %s missing while mirroring request %s", vendor_id, request_id)
        return
    inbox = vendor.received_requests or []
    if str(request_id) in inbox:
        return
    vendor.received_requests = [*inbox, str(request_id)]


async def remove_inbox_entry(
    db: AsyncSession, vendor_id: uuid.UUID, request_id: uuid.UUID
) -> bool:
    vendor = await lock_row(db, Vendor, vendor_id)
    if vendor is None:
        return False
    inbox = vendor.received_requests or []
    kept = [rid for rid in inbox if rid != str(request_id)]
    if len(kept) == len(inbox):
        return False
    vendor.received_requests = kept
    return True


# ---------- Reconciliation ----------


def _entry_keys(entries: list[dict]) -> set[tuple[str, str]]:
    return {(e["request_id"], e["role"]) for e in entries}


async def reconcile_project(db: AsyncSession, project: Project) -> bool:
    result = await db.execute(
        select(VendorRequest.id, VendorRequest.role)
        .where(VendorRequest.project_id == project.id)
        .order_by(VendorRequest.created_at, VendorRequest.id)
    )
    expected = [{"request_id": str(rid), "role": role} for rid, role in result.all()]
    current = project.sent_requests or []

    if _entry_keys(current) == _entry_keys(expected) and len(current) == len(expected):
        return False

    logger.info(
        "Repairing sent-request mirror of project %s (%d -> %d entries)",
        project.id, len(current), len(expected),
    )
    project.sent_requests = expected
    return True


async def reconcile_vendor(db: AsyncSession, vendor: Vendor) -> bool:
    result = await db.execute(
        select(VendorRequest.id)
        .where(VendorRequest.vendor_id == vendor.id)
        .order_by(VendorRequest.created_at, VendorRequest.id)
    )
    expected = [str(rid) for rid in result.scalars().all()]
    current = vendor.received_requests or []

    if set(current) == set(expected) and len(current) == len(expected):
        return False

    logger.info(
        "Repairing inbox mirror of vendor %s (%d -> %d entries)",
        vendor.id, len(current), len(expected),
    )
    vendor.received_requests = expected
    return True


async def reconcile_all(db: AsyncSession) -> int:
    """Rebuild every drifted mirror; returns the number repaired."""
    repaired = 0

    projects = (
        await db.execute(
            select(Project).with_for_update().execution_options(populate_existing=True)
        )
    ).scalars().all()
    for project in projects:
        repaired += await reconcile_project(db, project)

    vendors = (
        await db.execute(
            select(Vendor).with_for_update().execution_options(populate_existing=True)
        )
    ).scalars().all()
    for vendor in vendors:
        repaired += await reconcile_vendor(db, vendor)

    if repaired:
        await db.flush()
    logger.info("Mirror reconciliation finished: %d repaired", repaired)
    return repaired
