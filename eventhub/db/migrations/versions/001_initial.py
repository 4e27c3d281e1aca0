"""Initial schema: profiles, projects, request ledger, outbox and audit log

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def _soft_delete() -> list[sa.Column]:
    return [
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("profile_image_url", sa.String(1000), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        *_soft_delete(),
        *_timestamps(),
    )

    # Vendors
    op.create_table(
        "vendors",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("phone", sa.String(50), nullable=False),
        sa.Column("role", sa.String(30), nullable=False, index=True),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("location_lat", sa.Float, nullable=True),
        sa.Column("location_lng", sa.Float, nullable=True),
        sa.Column("profile_image_url", sa.String(1000), nullable=True),
        sa.Column("work_image_urls", postgresql.JSONB, nullable=True),
        sa.Column("rating", sa.Float, nullable=False, server_default=sa.text("0.0")),
        sa.Column(
            "received_requests",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        *_soft_delete(),
        *_timestamps(),
    )

    # Projects
    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "owner_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "sent_requests",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        *_soft_delete(),
        *_timestamps(),
    )
    op.create_index(
        "uq_projects_owner_lower_name",
        "projects",
        ["owner_id", sa.text("lower(name)")],
        unique=True,
        postgresql_where=sa.text("NOT is_deleted"),
    )

    # Request ledger
    op.create_table(
        "vendor_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "vendor_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("vendors.id"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("projects.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("role", sa.String(30), nullable=False, index=True),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("location_lng", sa.Float, nullable=False),
        sa.Column("location_lat", sa.Float, nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("vendor_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("user_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("budget", sa.Numeric(14, 2), nullable=True),
        sa.Column("additional_details", sa.Text, nullable=True),
        sa.Column(
            "progress",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("rating", sa.Integer, nullable=True),
        sa.Column("rating_message", sa.Text, nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_at > start_at", name="ck_vendor_requests_window"),
        sa.CheckConstraint(
            "rating IS NULL OR rating BETWEEN 1 AND 5", name="ck_vendor_requests_rating"
        ),
    )
    op.create_index(
        "ix_vendor_requests_triple",
        "vendor_requests",
        ["user_id", "project_id", "role"],
    )
    # At most one booking per (user, project, role)
    op.create_index(
        "uq_vendor_requests_booked_triple",
        "vendor_requests",
        ["user_id", "project_id", "role"],
        unique=True,
        postgresql_where=sa.text("vendor_status = 'accepted' AND user_status = 'accepted'"),
    )

    # Retraction outbox
    op.create_table(
        "retraction_intents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("vendor_requests.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("retracted_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    # Audit log
    op.create_table(
        "audit_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_type", sa.String(100), nullable=False, index=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("diff", postgresql.JSONB, nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("retraction_intents")
    op.drop_index("uq_vendor_requests_booked_triple", table_name="vendor_requests")
    op.drop_index("ix_vendor_requests_triple", table_name="vendor_requests")
    op.drop_table("vendor_requests")
    op.drop_index("uq_projects_owner_lower_name", table_name="projects")
    op.drop_table("projects")
    op.drop_table("vendors")
    op.drop_table("users")
