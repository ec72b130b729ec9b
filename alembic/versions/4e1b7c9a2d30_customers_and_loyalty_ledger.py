"""customers and loyalty ledger

Revision ID: 4e1b7c9a2d30
Revises: 
Create Date: 2026-10-18 09:12:41.203117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4e1b7c9a2d30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("customers"):
        op.create_table(
            "customers",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.Column("phone", sa.String(length=30), nullable=True),
            sa.Column("whatsapp_number", sa.String(length=30), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    if not inspector.has_table("loyalty_tiers"):
        op.create_table(
            "loyalty_tiers",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("key", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("min_lifetime_points", sa.Integer(), nullable=False),
            sa.Column("rank", sa.Integer(), nullable=False),
            sa.Column("active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.UniqueConstraint("key", name="uq_loyalty_tiers_key"),
            sa.UniqueConstraint("rank", name="uq_loyalty_tiers_rank"),
            sa.UniqueConstraint("min_lifetime_points", name="uq_loyalty_tiers_min_lifetime_points"),
            sa.CheckConstraint("rank >= 0", name="ck_loyalty_tiers_rank_nonnegative"),
            sa.CheckConstraint("min_lifetime_points >= 0", name="ck_loyalty_tiers_min_nonnegative"),
        )

    if not inspector.has_table("loyalty_accounts"):
        op.create_table(
            "loyalty_accounts",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("customers.id"), nullable=False),
            sa.Column("points", sa.Integer(), server_default="0", nullable=False),
            sa.Column("lifetime_points", sa.Integer(), server_default="0", nullable=False),
            sa.Column("total_redeemed", sa.Integer(), server_default="0", nullable=False),
            sa.Column("tier", sa.String(length=50), server_default="BRONZE", nullable=False),
            sa.Column("version", sa.Integer(), server_default="1", nullable=False),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.UniqueConstraint("customer_id", name="uq_loyalty_accounts_customer_id"),
            sa.CheckConstraint("points >= 0", name="ck_loyalty_accounts_points_nonnegative"),
            sa.CheckConstraint("lifetime_points >= 0", name="ck_loyalty_accounts_lifetime_nonnegative"),
        )

    if not inspector.has_table("loyalty_transactions"):
        op.create_table(
            "loyalty_transactions",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column(
                "loyalty_account_id",
                postgresql.UUID(as_uuid=True),
                sa.ForeignKey("loyalty_accounts.id"),
                nullable=False,
            ),
            sa.Column("points", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("order_id", sa.String(length=100), nullable=True),
            sa.Column("balance_after", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.TIMESTAMP(), nullable=False),
            sa.CheckConstraint("points <> 0", name="ck_loyalty_transactions_points_nonzero"),
        )

    existing_indexes = {ix["name"] for ix in inspector.get_indexes("loyalty_transactions")}
    if "ix_loyalty_transactions_account_created" not in existing_indexes:
        op.create_index(
            "ix_loyalty_transactions_account_created",
            "loyalty_transactions",
            ["loyalty_account_id", "created_at"],
        )


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if inspector.has_table("loyalty_transactions"):
        existing_indexes = {ix["name"] for ix in inspector.get_indexes("loyalty_transactions")}
        if "ix_loyalty_transactions_account_created" in existing_indexes:
            op.drop_index("ix_loyalty_transactions_account_created", table_name="loyalty_transactions")
        op.drop_table("loyalty_transactions")

    if inspector.has_table("loyalty_accounts"):
        op.drop_table("loyalty_accounts")
    if inspector.has_table("loyalty_tiers"):
        op.drop_table("loyalty_tiers")
    if inspector.has_table("customers"):
        op.drop_table("customers")
