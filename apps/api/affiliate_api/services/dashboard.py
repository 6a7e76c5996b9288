from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..errors import ValidationError
from ..models import AffiliateClick, AffiliateLink, AffiliatePerformance
from .aggregates import as_utc, safe_rate, stats_date
from .links import get_link

TIMEFRAME_DAYS: dict[str, int | None] = {
    "1d": 1,
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "all": None,
}
UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class Cutoff:
    timeframe: str
    start: datetime | None

    @property
    def start_date(self) -> date | None:
        return stats_date(self.start) if self.start is not None else None


def period_cutoff(timeframe: str, now: datetime | None = None) -> Cutoff:
    if timeframe not in TIMEFRAME_DAYS:
        raise ValidationError(f"unsupported timeframe: {timeframe}")
    days = TIMEFRAME_DAYS[timeframe]
    if days is None:
        return Cutoff(timeframe=timeframe, start=None)
    current = as_utc(now or datetime.now(UTC))
    return Cutoff(timeframe=timeframe, start=current - timedelta(days=days))


def summary(
    db: Session,
    timeframe: str = "30d",
    link_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    cutoff = period_cutoff(timeframe, now)
    if link_id is not None:
        get_link(db, link_id)

    stmt = select(
        func.coalesce(func.sum(AffiliatePerformance.clicks), 0),
        func.coalesce(func.sum(AffiliatePerformance.unique_visitors), 0),
        func.coalesce(func.sum(AffiliatePerformance.conversions), 0),
        func.coalesce(func.sum(AffiliatePerformance.revenue), 0),
    )
    if cutoff.start_date is not None:
        stmt = stmt.where(AffiliatePerformance.date >= cutoff.start_date)
    if link_id is not None:
        stmt = stmt.where(AffiliatePerformance.link_id == link_id)
    clicks, unique, conversions, revenue = db.execute(stmt).one()

    links_stmt = select(func.count(AffiliateLink.id))
    if link_id is not None:
        links_stmt = links_stmt.where(AffiliateLink.id == link_id)
    total_links = int(db.scalar(links_stmt) or 0)
    active_links = int(db.scalar(links_stmt.where(AffiliateLink.is_active.is_(True))) or 0)

    return {
        "timeframe": timeframe,
        "link_id": link_id,
        "total_clicks": int(clicks),
        "unique_clicks": int(unique),
        "total_conversions": int(conversions),
        "total_revenue": round(float(revenue), 2),
        "active_links": active_links,
        "total_links": total_links,
        "ctr": safe_rate(unique, clicks),
        "conversion_rate": safe_rate(conversions, clicks),
    }


def serialize_top_link(row: AffiliateLink) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "short_code": row.short_code,
        "category": row.category,
        "platform": row.platform,
        "total_clicks": row.total_clicks,
        "unique_clicks": row.unique_clicks,
        "conversions": row.conversions,
        "revenue": round(float(row.revenue or 0), 2),
        "ctr": safe_rate(row.unique_clicks, row.total_clicks),
        "conversion_rate": safe_rate(row.conversions, row.total_clicks),
    }


def top_links(db: Session, limit: int = 10) -> list[dict[str, Any]]:
    rows = db.scalars(
        select(AffiliateLink).order_by(desc(AffiliateLink.total_clicks), AffiliateLink.short_code).limit(limit)
    ).all()
    return [serialize_top_link(row) for row in rows]


def timeline(db: Session, period: str = "30d", now: datetime | None = None) -> list[dict[str, Any]]:
    cutoff = period_cutoff(period, now)
    stmt = select(AffiliateClick.clicked_at, AffiliateClick.ip_address)
    if cutoff.start is not None:
        stmt = stmt.where(AffiliateClick.clicked_at >= cutoff.start)
    clicks_by_day: dict[date, int] = defaultdict(int)
    visitors_by_day: dict[date, set[str]] = defaultdict(set)
    anonymous_by_day: dict[date, int] = defaultdict(int)
    for clicked_at, ip_address in db.execute(stmt).all():
        day = stats_date(clicked_at)
        clicks_by_day[day] += 1
        if ip_address:
            visitors_by_day[day].add(ip_address)
        else:
            anonymous_by_day[day] += 1
    return [
        {
            "date": day,
            "clicks": clicks_by_day[day],
            "unique_visitors": len(visitors_by_day[day]) + anonymous_by_day[day],
        }
        for day in sorted(clicks_by_day, reverse=True)
    ]


def device_breakdown(db: Session, period: str = "30d", now: datetime | None = None) -> list[dict[str, Any]]:
    cutoff = period_cutoff(period, now)
    stmt = select(AffiliateClick.device_type, func.count(AffiliateClick.id)).group_by(AffiliateClick.device_type)
    if cutoff.start is not None:
        stmt = stmt.where(AffiliateClick.clicked_at >= cutoff.start)
    counts = [(device or "unknown", int(count)) for device, count in db.execute(stmt).all()]
    total = sum(count for _, count in counts)
    counts.sort(key=lambda item: (-item[1], item[0]))
    return [
        {"device_type": device, "clicks": count, "percentage": safe_rate(count, total)}
        for device, count in counts
    ]


def category_performance(db: Session) -> list[dict[str, Any]]:
    rows = db.execute(
        select(
            AffiliateLink.category,
            func.count(AffiliateLink.id),
            func.coalesce(func.sum(AffiliateLink.total_clicks), 0),
            func.coalesce(func.sum(AffiliateLink.conversions), 0),
            func.coalesce(func.sum(AffiliateLink.revenue), 0),
        )
        .where(AffiliateLink.is_active.is_(True))
        .group_by(AffiliateLink.category)
    ).all()
    totals: dict[str, dict[str, Any]] = {}
    for category, link_count, clicks, conversions, revenue in rows:
        bucket = totals.setdefault(
            category or UNCATEGORIZED,
            {"link_count": 0, "clicks": 0, "conversions": 0, "revenue": 0.0},
        )
        bucket["link_count"] += int(link_count)
        bucket["clicks"] += int(clicks)
        bucket["conversions"] += int(conversions)
        bucket["revenue"] += float(revenue)
    result = [
        {
            "category": name,
            "link_count": bucket["link_count"],
            "clicks": bucket["clicks"],
            "conversions": bucket["conversions"],
            "revenue": round(bucket["revenue"], 2),
            "conversion_rate": safe_rate(bucket["conversions"], bucket["clicks"]),
        }
        for name, bucket in totals.items()
    ]
    result.sort(key=lambda item: (-item["clicks"], item["category"]))
    return result


def link_performance(
    db: Session,
    link_id: uuid.UUID,
    period: str = "30d",
    now: datetime | None = None,
) -> list[AffiliatePerformance]:
    get_link(db, link_id)
    cutoff = period_cutoff(period, now)
    stmt = select(AffiliatePerformance).where(AffiliatePerformance.link_id == link_id)
    if cutoff.start_date is not None:
        stmt = stmt.where(AffiliatePerformance.date >= cutoff.start_date)
    return list(db.scalars(stmt.order_by(desc(AffiliatePerformance.date))).all())


def dashboard(db: Session, period: str = "7d", now: datetime | None = None) -> dict[str, Any]:
    return {
        "period": period,
        "overall": summary(db, period, now=now),
        "top_links": top_links(db),
        "timeline": timeline(db, period, now=now),
        "device_breakdown": device_breakdown(db, period, now=now),
        "category_performance": category_performance(db),
    }
