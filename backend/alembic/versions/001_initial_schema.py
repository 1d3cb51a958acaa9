"""Initial schema: accounts, leads, services, bookings, assignments, audit log.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _crm_columns() -> list:
    return [
        sa.Column("crm_tag", sa.String(50), nullable=True),
        sa.Column("crm_tag_note", sa.Text(), nullable=True),
        sa.Column("crm_tag_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("crm_tag_updated_by_user_id", sa.BigInteger(), nullable=True),
    ]


def _contact_columns() -> list:
    return [
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("account_type", sa.String(20), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
    ]


def upgrade() -> None:
    # btree_gist lets the exclusion constraint mix range overlap with plain columns
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("public_id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        *_contact_columns(),
        *_crm_columns(),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "account_type IS NULL OR account_type IN ('residential', 'business')",
            name="ck_users_account_type",
        ),
    )
    op.create_index("ix_users_public_id", "users", ["public_id"], unique=True)

    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role", sa.String(20), primary_key=True),
        sa.CheckConstraint("role IN ('customer', 'worker', 'admin', 'superuser')", name="ck_user_roles_role"),
    )
    # "which users are workers" is the lookup behind every assign call
    op.create_index("ix_user_roles_role", "user_roles", ["role"])

    op.create_table(
        "leads",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("public_id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        *_contact_columns(),
        *_crm_columns(),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_leads_email"),
        sa.CheckConstraint(
            "account_type IS NULL OR account_type IN ('residential', 'business')",
            name="ck_leads_account_type",
        ),
    )
    op.create_index("ix_leads_public_id", "leads", ["public_id"], unique=True)

    op.create_table(
        "lead_conversions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("lead_public_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("bookings_moved", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_lead_conversions_user_id", "lead_conversions", ["user_id"])
    op.create_index("ix_lead_conversions_converted_at", "lead_conversions", ["converted_at"])

    op.create_table(
        "services",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("public_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("base_price_cents", sa.Integer(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_services_public_id", "services", ["public_id"], unique=True)
    op.create_index("ix_services_active_sort", "services", ["is_active", "sort_order", "title"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("public_id", sa.Uuid(), nullable=False),
        sa.Column("customer_user_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("lead_id", sa.BigInteger(), sa.ForeignKey("leads.id"), nullable=True),
        sa.Column("service_id", sa.BigInteger(), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("(customer_user_id IS NULL) <> (lead_id IS NULL)", name="ck_bookings_owner_xor"),
        sa.CheckConstraint("ends_at > starts_at", name="ck_bookings_time_order"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'assigned', 'completed', 'cancelled')",
            name="ck_bookings_status",
        ),
    )
    op.create_index("ix_bookings_public_id", "bookings", ["public_id"], unique=True)
    op.create_index("ix_bookings_customer_user_id", "bookings", ["customer_user_id"])
    op.create_index("ix_bookings_lead_id", "bookings", ["lead_id"])
    # Availability and the worker queue both filter on status, then order by start
    op.create_index("ix_bookings_status_starts", "bookings", ["status", "starts_at"])
    # OVERLAP GUARD: two active bookings may never share any instant.
    # Half-open ranges, so back-to-back slots (10:00-11:00, 11:00-12:00) are fine.
    op.execute(
        """
        ALTER TABLE bookings
        ADD CONSTRAINT bookings_no_overlap
        EXCLUDE USING gist (tstzrange(starts_at, ends_at, '[)') WITH &&)
        WHERE (status IN ('pending', 'accepted', 'assigned'))
        """
    )

    op.create_table(
        "booking_assignments",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.BigInteger(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("worker_user_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assigned_by_user_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_booking_assignments_booking_time", "booking_assignments", ["booking_id", "assigned_at"])
    op.create_index("ix_booking_assignments_worker_time", "booking_assignments", ["worker_user_id", "assigned_at"])

    op.create_table(
        "booking_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.BigInteger(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("actor_user_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_booking_events_booking_time", "booking_events", ["booking_id", "created_at"])

    op.create_table(
        "customer_tags",
        sa.Column("kind", sa.String(20), primary_key=True),
        sa.Column("entity_id", sa.BigInteger(), primary_key=True),
        sa.Column("tag", sa.String(50), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("updated_by_user_id", sa.BigInteger(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("kind IN ('registered', 'lead')", name="ck_customer_tags_kind"),
    )


def downgrade() -> None:
    op.drop_table("customer_tags")
    op.drop_table("booking_events")
    op.drop_table("booking_assignments")
    op.drop_table("bookings")
    op.drop_table("services")
    op.drop_table("lead_conversions")
    op.drop_table("leads")
    op.drop_table("user_roles")
    op.drop_table("users")
