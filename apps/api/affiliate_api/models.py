from __future__ import annotations

import enum
import uuid
from datetime import date as calendar_date
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import Uuid

# largest value affiliate_clicks.conversion_value (Numeric(10, 2)) can hold
MAX_CONVERSION_VALUE = Decimal("99999999.99")


class Base(DeclarativeBase):
    pass


class DeviceType(str, enum.Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"


class IdMixin:
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class AffiliateLink(Base, IdMixin, TimestampMixin):
    __tablename__ = "affiliate_links"
    __table_args__ = (
        UniqueConstraint("short_code", name="uq_affiliate_links_short_code"),
        Index("ix_affiliate_links_category", "category"),
        Index("ix_affiliate_links_created_at", "created_at"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    short_code: Mapped[str] = mapped_column(String(64), nullable=False)
    destination_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    platform: Mapped[str | None] = mapped_column(String(100), nullable=True)
    commission_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conversions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))


class AffiliateClick(Base, IdMixin):
    __tablename__ = "affiliate_clicks"
    __table_args__ = (
        Index("ix_affiliate_clicks_link_id", "link_id"),
        Index("ix_affiliate_clicks_clicked_at", "clicked_at"),
        Index("ix_affiliate_clicks_link_ip", "link_id", "ip_address"),
    )

    link_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("affiliate_links.id"), nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    referrer: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    device_type: Mapped[str] = mapped_column(String(20), nullable=False, default=DeviceType.DESKTOP.value)
    country: Mapped[str | None] = mapped_column(String(8), nullable=True)
    clicked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    converted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    conversion_value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)


class AffiliatePerformance(Base, IdMixin, TimestampMixin):
    __tablename__ = "affiliate_performance"
    __table_args__ = (
        UniqueConstraint("link_id", "date", name="uq_affiliate_performance_link_date"),
        Index("ix_affiliate_performance_date", "date"),
    )

    link_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("affiliate_links.id"), nullable=False)
    date: Mapped[calendar_date] = mapped_column(Date, nullable=False)
    clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_visitors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conversions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    ctr: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
