"""Create identities and orders tables.

Revision ID: 7c2e9a41d5b3
Revises: None
Create Date: 2026-10-19 12:00:00 UTC

Migration naming convention:
- Filename: YYYYMMDD_HHMMSS_slug.py (chronological sorting)
- Revision ID: Random hash (collision-proof for parallel branches)

Identifiers are stored as text (canonical UUID strings for identities,
10-character ``[0-9a-z]`` ids for orders).
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "7c2e9a41d5b3"
down_revision = None
branch_labels = None
depends_on = None

ROLES = ("owner", "merchant", "member")
ORDER_STATUSES = ("PENDING", "SUBMITTED", "VERIFIED", "EXPIRED", "INVALIDATED", "CANCELLED")


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


def upgrade() -> None:
    op.create_table(
        "identities",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("handle", sa.String(length=64), nullable=False, unique=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column(
            "parent_id",
            sa.Text(),
            sa.ForeignKey("identities.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.Text(), nullable=True),
        sa.CheckConstraint(_in_list("role", ROLES), name="ck_identities_role"),
        # members have a parent, merchants and owners never do
        sa.CheckConstraint(
            "(role = 'member') = (parent_id IS NOT NULL)", name="ck_identities_role_parent"
        ),
        sa.CheckConstraint("parent_id IS NULL OR parent_id <> id", name="ck_identities_not_self"),
    )
    op.create_index("ix_identities_role_active", "identities", ["role", "is_active"])
    op.create_index("ix_identities_parent_active", "identities", ["parent_id", "is_active"])

    op.create_table(
        "orders",
        sa.Column("order_id", sa.String(length=20), primary_key=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("target_address", sa.String(length=330), nullable=False),
        sa.Column(
            "display_name", sa.String(length=100), nullable=False, server_default="Merchant"
        ),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("payment_link", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("reference", sa.String(length=32), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_id", sa.Text(), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("created_by", sa.Text(), nullable=False),
        sa.Column("merchant_id", sa.Text(), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("invalidated_by", sa.Text(), nullable=True),
        sa.Column("invalidated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invalidation_reason", sa.String(length=500), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.Text(), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint("amount > 0", name="ck_orders_amount_positive"),
        sa.CheckConstraint(_in_list("status", ORDER_STATUSES), name="ck_orders_status"),
    )
    op.create_index(
        "ix_orders_merchant_status_created",
        "orders",
        ["merchant_id", "status", sa.text("created_at DESC")],
    )
    op.create_index(
        "ix_orders_user_status_created",
        "orders",
        ["user_id", "status", sa.text("created_at DESC")],
    )
    op.create_index("ix_orders_expires_status", "orders", ["expires_at", "status"])


def downgrade() -> None:
    op.drop_index("ix_orders_expires_status", table_name="orders")
    op.drop_index("ix_orders_user_status_created", table_name="orders")
    op.drop_index("ix_orders_merchant_status_created", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_identities_parent_active", table_name="identities")
    op.drop_index("ix_identities_role_active", table_name="identities")
    op.drop_table("identities")
