import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    and_,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column

from eventhub.common.enums import NegotiationStatus
from eventhub.db.base import BaseModel, LedgerModel

_BOOKED = "vendor_status = 'accepted' AND user_status = 'accepted'"


class Vendor(BaseModel):
    __tablename__ = "vendors"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    role: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    profile_image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    work_image_urls: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)
    rating: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    # Mirror of the ledger: [request_id, ...]
    received_requests: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)


class VendorRequest(LedgerModel):
    __tablename__ = "vendor_requests"
    __table_args__ = (
        Index("ix_vendor_requests_triple", "user_id", "project_id", "role"),
        # At most one booking per (user, project, role)
        Index(
            "uq_vendor_requests_booked_triple",
            "user_id",
            "project_id",
            "role",
            unique=True,
            postgresql_where=text(_BOOKED),
            sqlite_where=text(_BOOKED),
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False, index=True
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location_lng: Mapped[float] = mapped_column(Float, nullable=False)
    location_lat: Mapped[float] = mapped_column(Float, nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    vendor_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=NegotiationStatus.PENDING.value
    )
    user_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=NegotiationStatus.PENDING.value
    )
    budget: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    additional_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    progress: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rating_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @hybrid_property
    def is_doubly_accepted(self) -> bool:
        return (
            self.vendor_status == NegotiationStatus.ACCEPTED.value
            and self.user_status == NegotiationStatus.ACCEPTED.value
        )

    @is_doubly_accepted.inplace.expression
    @classmethod
    def _is_doubly_accepted_expression(cls):
        return and_(
            cls.vendor_status == NegotiationStatus.ACCEPTED.value,
            cls.user_status == NegotiationStatus.ACCEPTED.value,
        )
