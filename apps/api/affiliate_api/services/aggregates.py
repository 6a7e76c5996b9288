from __future__ import annotations

import uuid
from datetime import UTC, date, datetime, tzinfo
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import Numeric, case, cast, func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from ..errors import StorageError
from ..models import AffiliateLink, AffiliatePerformance
from ..settings import settings

ZERO = Decimal("0")


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def stats_timezone() -> tzinfo:
    if settings.stats_timezone.upper() == "UTC":
        return UTC
    return ZoneInfo(settings.stats_timezone)


def stats_date(now: datetime) -> date:
    return as_utc(now).astimezone(stats_timezone()).date()


def safe_rate(numerator: float | int | Decimal | None, denominator: float | int | Decimal | None) -> float:
    if not denominator:
        return 0.0
    return round(float(numerator or 0) / float(denominator) * 100.0, 2)


def increment_link_counters(
    db: Session,
    link_id: uuid.UUID,
    total_clicks: int = 0,
    unique_clicks: int = 0,
    conversions: int = 0,
    revenue: Decimal = ZERO,
) -> int:
    values: dict[str, object] = {
        # counter writes keep the edit timestamp untouched
        "updated_at": AffiliateLink.updated_at,
    }
    if total_clicks:
        values["total_clicks"] = AffiliateLink.total_clicks + total_clicks
    if unique_clicks:
        values["unique_clicks"] = AffiliateLink.unique_clicks + unique_clicks
    if conversions:
        values["conversions"] = AffiliateLink.conversions + conversions
    if revenue:
        values["revenue"] = AffiliateLink.revenue + revenue
    result = db.execute(
        update(AffiliateLink)
        .where(AffiliateLink.id == link_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


def _dialect_insert(db: Session):  # noqa: ANN202
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise StorageError(f"daily rollup upsert unsupported on dialect={dialect}")


def upsert_daily_performance(
    db: Session,
    link_id: uuid.UUID,
    day: date,
    clicks: int = 0,
    unique_visitors: int = 0,
    conversions: int = 0,
    revenue: Decimal = ZERO,
) -> None:
    table = AffiliatePerformance.__table__
    insert = _dialect_insert(db)
    stmt = insert(table).values(
        id=uuid.uuid4(),
        link_id=link_id,
        date=day,
        clicks=clicks,
        unique_visitors=unique_visitors,
        conversions=conversions,
        revenue=revenue,
        ctr=Decimal(str(safe_rate(unique_visitors, clicks))),
    )
    next_clicks = table.c.clicks + clicks
    next_unique = table.c.unique_visitors + unique_visitors
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.link_id, table.c.date],
        set_={
            "clicks": next_clicks,
            "unique_visitors": next_unique,
            "conversions": table.c.conversions + conversions,
            "revenue": table.c.revenue + revenue,
            "ctr": case((next_clicks > 0, cast(next_unique * 100.0 / next_clicks, Numeric(5, 2))), else_=0),
            "updated_at": func.now(),
        },
    )
    db.execute(stmt)
