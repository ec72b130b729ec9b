"""payment reminders

Revision ID: 7f3c2a1e8b54
Revises: 4e1b7c9a2d30
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "7f3c2a1e8b54"
down_revision = "4e1b7c9a2d30"
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if not insp.has_table("reminder_settings"):
        op.create_table(
            "reminder_settings",
            sa.Column("id", sa.String(length=20), primary_key=True, nullable=False),
            sa.Column("enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
            sa.Column("reminder1_delay", sa.Integer(), server_default="24", nullable=False),
            sa.Column("reminder2_delay", sa.Integer(), server_default="72", nullable=False),
            sa.Column("reminder3_delay", sa.Integer(), server_default="120", nullable=False),
            sa.Column("reminder1_enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
            sa.Column("reminder2_enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
            sa.Column("reminder3_enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    if not insp.has_table("reminder_events"):
        op.create_table(
            "reminder_events",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("order_id", sa.String(length=100), nullable=False),
            sa.Column("customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("customers.id"), nullable=True),
            sa.Column("slot_number", sa.Integer(), nullable=False),
            sa.Column("trigger", sa.String(length=50), nullable=False),
            sa.Column("scheduled_at", sa.TIMESTAMP(), nullable=False),
            sa.Column("status", sa.String(length=20), server_default="PENDING", nullable=False),
            sa.Column("template_data", sa.JSON(), nullable=True),
            sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
            sa.Column("last_error", sa.String(length=2000), nullable=True),
            sa.Column("locked_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("locked_by", sa.String(length=100), nullable=True),
            sa.Column("sent_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("cancelled_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.UniqueConstraint("order_id", "slot_number", name="uq_reminder_events_order_slot"),
            sa.CheckConstraint("slot_number IN (1, 2, 3)", name="ck_reminder_events_slot_number"),
        )

    existing_indexes = {ix["name"] for ix in insp.get_indexes("reminder_events")}
    if "ix_reminder_events_order_id" not in existing_indexes:
        op.create_index("ix_reminder_events_order_id", "reminder_events", ["order_id"], unique=False)
    if "ix_reminder_events_status_scheduled_at" not in existing_indexes:
        op.create_index(
            "ix_reminder_events_status_scheduled_at",
            "reminder_events",
            ["status", "scheduled_at"],
            unique=False,
        )


def downgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if insp.has_table("reminder_events"):
        existing_indexes = {ix["name"] for ix in insp.get_indexes("reminder_events")}
        if "ix_reminder_events_status_scheduled_at" in existing_indexes:
            op.drop_index("ix_reminder_events_status_scheduled_at", table_name="reminder_events")
        if "ix_reminder_events_order_id" in existing_indexes:
            op.drop_index("ix_reminder_events_order_id", table_name="reminder_events")
        op.drop_table("reminder_events")

    if insp.has_table("reminder_settings"):
        op.drop_table("reminder_settings")
