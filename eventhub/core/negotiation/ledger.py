"""Request ledger: authoritative store of vendor requests and their mirrors."""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from sqlalchemy import Select, not_, select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.common.enums import RequestFilter, VendorRole
from eventhub.common.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from eventhub.common.identity import Caller
from eventhub.common.logging import get_logger
from eventhub.core import audit
from eventhub.core.negotiation import mirrors
from eventhub.core.negotiation.schemas import GeoPoint, TimeWindow
from eventhub.db.models.project import Project
from eventhub.db.models.user import User
from eventhub.db.models.vendor import Vendor, VendorRequest

logger = get_logger("negotiation.ledger")

ENTITY = "vendor_request"


def parse_role(role: str) -> VendorRole:
    try:
        return VendorRole.parse(role)
    except ValueError:
        allowed = ", ".join(r.value for r in VendorRole)
        raise BadRequestError(f"Unknown vendor role '{role}'. Expected one of: {allowed}")


class RequestLedger:
    # ---------- Creation ----------

    async def create(
        self,
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        vendor_id: uuid.UUID,
        project_id: uuid.UUID,
        role: str,
        point: GeoPoint,
        window: TimeWindow,
        description: str,
    ) -> VendorRequest:
        created = await self.create_many(
            db,
            user_id=user_id,
            vendor_ids=[vendor_id],
            project_id=project_id,
            role=role,
            point=point,
            window=window,
            description=description,
        )
        return created[0]

    async def create_many(
        self,
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        vendor_ids: Sequence[uuid.UUID],
        project_id: uuid.UUID,
        role: str,
        point: GeoPoint,
        window: TimeWindow,
        description: str,
    ) -> list[VendorRequest]:
        """Dispatch one request per vendor for the same event details.

        Every vendor is validated before anything is written, so the batch
        either fails as a whole or is created as a whole.
        """
        vendor_role = parse_role(role)
        point.ensure_valid()
        window.ensure_valid()
        description = description.strip()
        if not description:
            raise BadRequestError("Event description must not be empty")
        if not vendor_ids:
            raise BadRequestError("At least one vendor is required")
        if len(set(vendor_ids)) != len(vendor_ids):
            raise BadRequestError("Each vendor may only be requested once per dispatch")

        user = await db.get(User, user_id)
        if user is None or user.is_deleted:
            raise NotFoundError("User", str(user_id))

        project = await db.get(Project, project_id)
        if project is None or project.is_deleted:
            raise NotFoundError("Project", str(project_id))
        if project.owner_id != user_id:
            raise PermissionDeniedError("Project does not belong to this user")

        result = await db.execute(
            select(Vendor).where(Vendor.id.in_(vendor_ids), Vendor.is_deleted.is_(False))
        )
        vendors = {v.id: v for v in result.scalars().all()}
        for vendor_id in vendor_ids:
            vendor = vendors.get(vendor_id)
            if vendor is None:
                raise NotFoundError("Vendor", str(vendor_id))
            if vendor.role.lower() != vendor_role.value:
                raise ConflictError(
                    f"Vendor '{vendor_id}' is registered as '{vendor.role}', not '{vendor_role.value}'"
                )

        existing = await self.list_by_user_project(db, user_id, project_id, role=vendor_role.value)
        if any(r.is_doubly_accepted for r in existing):
            raise ConflictError(
                f"A {vendor_role.value} has already been booked for this project"
            )
        already_requested = {r.vendor_id for r in existing} & set(vendor_ids)
        if already_requested:
            ids = ", ".join(sorted(str(v) for v in already_requested))
            raise ConflictError(f"Vendors already requested for this role: {ids}")

        created: list[VendorRequest] = []
        for vendor_id in vendor_ids:
            request = VendorRequest(
                id=uuid.uuid4(),
                user_id=user_id,
                vendor_id=vendor_id,
                project_id=project_id,
                role=vendor_role.value,
                description=description,
                location_lng=point.lng,
                location_lat=point.lat,
                start_at=window.start_at,
                end_at=window.end_at,
                progress=[],
            )
            db.add(request)
            created.append(request)
        await db.flush()

        for request in created:
            await mirrors.add_inbox_entry(db, request.vendor_id, request.id)
            await mirrors.add_sent_request(db, project_id, request.id, request.role)
            await audit.record(
                db, ENTITY, request.id, "created", actor_id=user_id,
                diff={"vendor_id": str(request.vendor_id), "role": request.role},
            )
        await db.flush()

        logger.info(
            "User %s dispatched %d %s request(s) for project %s",
            user_id, len(created), vendor_role.value, project_id,
        )
        return created

    # ---------- Reads ----------

    async def find(self, db: AsyncSession, request_id: uuid.UUID) -> VendorRequest | None:
        result = await db.execute(select(VendorRequest).where(VendorRequest.id == request_id))
        return result.scalar_one_or_none()

    async def get(self, db: AsyncSession, request_id: uuid.UUID) -> VendorRequest:
        request = await self.find(db, request_id)
        if request is None:
            raise NotFoundError("Request", str(request_id))
        return request

    async def get_for_party(
        self,
        db: AsyncSession,
        caller: Caller,
        request_id: uuid.UUID,
        allow_admin: bool = False,
    ) -> VendorRequest:
        """Load a request the caller is the user or the vendor of."""
        request = await self.get(db, request_id)
        if caller.id in (request.user_id, request.vendor_id):
            return request
        if allow_admin and caller.is_admin:
            return request
        raise PermissionDeniedError("You are not a party to this request")

    async def list_by_user_project(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        request_filter: RequestFilter = RequestFilter.ALL,
        role: str | None = None,
    ) -> list[VendorRequest]:
        query = select(VendorRequest).where(
            VendorRequest.user_id == user_id,
            VendorRequest.project_id == project_id,
        )
        if request_filter == RequestFilter.OPEN:
            query = query.where(not_(VendorRequest.is_doubly_accepted))
        elif request_filter == RequestFilter.ACCEPTED:
            query = query.where(VendorRequest.is_doubly_accepted)
        if role is not None:
            query = query.where(VendorRequest.role == parse_role(role).value)

        result = await db.execute(query.order_by(VendorRequest.created_at, VendorRequest.id))
        return list(result.scalars().all())

    def user_requests_query(self, user_id: uuid.UUID) -> Select:
        return (
            select(VendorRequest)
            .where(VendorRequest.user_id == user_id)
            .order_by(VendorRequest.created_at.desc(), VendorRequest.id)
        )

    def inbox_query(self, vendor: Vendor) -> Select:
        """Resolve the vendor's inbox mirror against the ledger.

        Ids left behind by an interrupted cleanup simply do not match a row.
        """
        ids = [uuid.UUID(rid) for rid in (vendor.received_requests or [])]
        return (
            select(VendorRequest)
            .where(VendorRequest.id.in_(ids), VendorRequest.vendor_id == vendor.id)
            .order_by(VendorRequest.created_at.desc(), VendorRequest.id)
        )

    def sibling_query(self, request: VendorRequest, across_projects: bool = False) -> Select:
        """Other requests competing with ``request`` for the same role."""
        query = select(VendorRequest).where(
            VendorRequest.user_id == request.user_id,
            VendorRequest.role == request.role,
            VendorRequest.id != request.id,
        )
        if not across_projects:
            query = query.where(VendorRequest.project_id == request.project_id)
        return query

    async def open_siblings(
        self, db: AsyncSession, request: VendorRequest, across_projects: bool = False
    ) -> list[VendorRequest]:
        query = self.sibling_query(request, across_projects).where(
            not_(VendorRequest.is_doubly_accepted)
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def has_accepted_sibling(
        self, db: AsyncSession, request: VendorRequest, across_projects: bool = False
    ) -> bool:
        query = self.sibling_query(request, across_projects).where(
            VendorRequest.is_doubly_accepted
        )
        result = await db.execute(query.limit(1))
        return result.scalar_one_or_none() is not None

    # ---------- Deletion ----------

    async def delete(
        self,
        db: AsyncSession,
        request: VendorRequest | uuid.UUID,
        actor_id: uuid.UUID | None = None,
        reason: str = "deleted",
    ) -> bool:
        """Remove a request and both of its mirror entries.

        Deleting an id that is no longer in the ledger is a no-op.
        """
        if isinstance(request, uuid.UUID):
            found = await self.find(db, request)
            if found is None:
                logger.debug("Request %s already gone", request)
                return False
            request = found

        request_id = request.id
        await mirrors.remove_sent_request(db, request.project_id, request_id)
        await mirrors.remove_inbox_entry(db, request.vendor_id, request_id)
        await audit.record(
            db, ENTITY, request_id, reason, actor_id=actor_id,
            diff={
                "vendor_id": str(request.vendor_id),
                "project_id": str(request.project_id),
                "role": request.role,
            },
        )
        await db.delete(request)
        await db.flush()

        logger.info("Request %s removed (%s)", request_id, reason)
        return True
