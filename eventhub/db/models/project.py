import uuid

from sqlalchemy import ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from eventhub.db.base import BaseModel


class Project(BaseModel):
    __tablename__ = "projects"
    __table_args__ = (
        Index(
            "uq_projects_owner_lower_name",
            "owner_id",
            text("lower(name)"),
            unique=True,
            postgresql_where=text("NOT is_deleted"),
            sqlite_where=text("NOT is_deleted"),
        ),
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Mirror of the ledger: [{"request_id": str, "role": str}, ...]
    sent_requests: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
