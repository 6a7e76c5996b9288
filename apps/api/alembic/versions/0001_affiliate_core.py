"""affiliate links, clicks, and daily performance

Revision ID: 0001_affiliate_core
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001_affiliate_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "affiliate_links",
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("short_code", sa.String(length=64), nullable=False),
        sa.Column("destination_url", sa.String(length=2048), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("platform", sa.String(length=100), nullable=True),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_clicks", sa.Integer(), server_default="0", nullable=False),
        sa.Column("unique_clicks", sa.Integer(), server_default="0", nullable=False),
        sa.Column("conversions", sa.Integer(), server_default="0", nullable=False),
        sa.Column("revenue", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("short_code", name="uq_affiliate_links_short_code"),
    )
    op.create_index("ix_affiliate_links_category", "affiliate_links", ["category"], unique=False)
    op.create_index("ix_affiliate_links_created_at", "affiliate_links", ["created_at"], unique=False)

    op.create_table(
        "affiliate_clicks",
        sa.Column("link_id", sa.Uuid(), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("referrer", sa.String(length=2048), nullable=True),
        sa.Column("device_type", sa.String(length=20), server_default="desktop", nullable=False),
        sa.Column("country", sa.String(length=8), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("converted", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("conversion_value", sa.Numeric(10, 2), nullable=True),
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(["link_id"], ["affiliate_links.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_affiliate_clicks_link_id", "affiliate_clicks", ["link_id"], unique=False)
    op.create_index("ix_affiliate_clicks_clicked_at", "affiliate_clicks", ["clicked_at"], unique=False)
    op.create_index("ix_affiliate_clicks_link_ip", "affiliate_clicks", ["link_id", "ip_address"], unique=False)

    op.create_table(
        "affiliate_performance",
        sa.Column("link_id", sa.Uuid(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("clicks", sa.Integer(), server_default="0", nullable=False),
        sa.Column("unique_visitors", sa.Integer(), server_default="0", nullable=False),
        sa.Column("conversions", sa.Integer(), server_default="0", nullable=False),
        sa.Column("revenue", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("ctr", sa.Numeric(5, 2), server_default="0", nullable=False),
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["link_id"], ["affiliate_links.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("link_id", "date", name="uq_affiliate_performance_link_date"),
    )
    op.create_index("ix_affiliate_performance_date", "affiliate_performance", ["date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_affiliate_performance_date", table_name="affiliate_performance")
    op.drop_table("affiliate_performance")

    op.drop_index("ix_affiliate_clicks_link_ip", table_name="affiliate_clicks")
    op.drop_index("ix_affiliate_clicks_clicked_at", table_name="affiliate_clicks")
    op.drop_index("ix_affiliate_clicks_link_id", table_name="affiliate_clicks")
    op.drop_table("affiliate_clicks")

    op.drop_index("ix_affiliate_links_created_at", table_name="affiliate_links")
    op.drop_index("ix_affiliate_links_category", table_name="affiliate_links")
    op.drop_table("affiliate_links")
