"""Create purchases and user_profiles tables.

Revision ID: 001_access_tables
Revises:
Create Date: 2026-10-19

Startup runs create_all before migrations, so each table is only created when missing.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_access_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    existing = set(sa.inspect(op.get_bind()).get_table_names())

    if "purchases" not in existing:
        op.create_table(
            "purchases",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(), nullable=False),
            sa.Column("provider", sa.String(), nullable=False, server_default="stripe"),
            sa.Column("provider_session_id", sa.String(), nullable=False),
            sa.Column("provider_payment_id", sa.String(), nullable=True),
            sa.Column("provider_event_id", sa.String(), nullable=True),
            sa.Column("mode", sa.String(), nullable=False, server_default="live"),
            sa.Column("product_id", sa.String(), nullable=False),
            sa.Column("product_name", sa.String(), nullable=True),
            sa.Column("tier", sa.String(), nullable=True),
            sa.Column("bundle_id", sa.String(), nullable=True),
            sa.Column("amount_paid", sa.Numeric(12, 2), nullable=True),
            sa.Column("currency", sa.String(), nullable=True),
            sa.Column("status", sa.String(), nullable=False, server_default="completed"),
            sa.Column("license_key", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("refunded_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_purchases_id", "purchases", ["id"])
        op.create_index("ix_purchases_email", "purchases", ["email"])
        op.create_index("ix_purchases_provider_session_id", "purchases", ["provider_session_id"], unique=True)
        op.create_index("ix_purchases_provider_payment_id", "purchases", ["provider_payment_id"])
        op.create_index("ix_purchases_license_key", "purchases", ["license_key"])

    if "user_profiles" not in existing:
        op.create_table(
            "user_profiles",
            sa.Column("email", sa.String(), primary_key=True),
            sa.Column("access_hunter_pro", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("access_content_standard", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("access_content_full_fix", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("access_assassin_standard", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("access_assassin_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("access_recompete", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("access_contractor_db", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
        )


def downgrade() -> None:
    op.drop_table("user_profiles")
    op.drop_table("purchases")
