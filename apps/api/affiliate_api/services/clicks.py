from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, time

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from packages.events import LiveEventBus
from packages.security import mask_ip_address, redact_referrer

from ..errors import GoneError, NotFoundError
from ..models import AffiliateClick, AffiliateLink, DeviceType
from .aggregates import as_utc, increment_link_counters, stats_date, stats_timezone, upsert_daily_performance
from .events import write_event

logger = logging.getLogger(__name__)

MOBILE_MARKERS = ("mobile", "android", "iphone", "ipod", "blackberry", "opera mini", "iemobile", "windows phone")
TABLET_MARKERS = ("tablet", "ipad", "kindle", "silk", "playbook")


@dataclass(frozen=True)
class LinkRef:
    id: uuid.UUID
    name: str
    short_code: str
    destination_url: str

    @classmethod
    def from_row(cls, row: AffiliateLink) -> "LinkRef":
        return cls(id=row.id, name=row.name, short_code=row.short_code, destination_url=row.destination_url)


@dataclass(frozen=True)
class ClickContext:
    ip_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    country: str | None = None


@dataclass
class ClickOutcome:
    click_id: uuid.UUID | None = None
    device_type: str = DeviceType.DESKTOP.value
    unique_for_link: bool = False
    unique_for_day: bool = False
    counters_updated: bool = False
    daily_updated: bool = False
    published: bool = False
    failures: list[str] = field(default_factory=list)


def classify_device(user_agent: str | None) -> str:
    if not user_agent:
        return DeviceType.DESKTOP.value
    lowered = user_agent.lower()
    if any(marker in lowered for marker in MOBILE_MARKERS):
        return DeviceType.MOBILE.value
    if any(marker in lowered for marker in TABLET_MARKERS):
        return DeviceType.TABLET.value
    return DeviceType.DESKTOP.value


def resolve_link(db: Session, short_code: str, now: datetime | None = None) -> AffiliateLink:
    row = db.scalar(select(AffiliateLink).where(AffiliateLink.short_code == short_code))
    if row is None:
        raise NotFoundError("link not found")
    if not row.is_active:
        raise GoneError("link is no longer active")
    current = as_utc(now or datetime.now(UTC))
    if row.expires_at is not None and as_utc(row.expires_at) <= current:
        raise GoneError("link has expired")
    return row


def _day_start(now: datetime) -> datetime:
    local_day = stats_date(now)
    return datetime.combine(local_day, time.min, tzinfo=stats_timezone()).astimezone(UTC)


def _seen_before(db: Session, link_id: uuid.UUID, ip_address: str | None, since: datetime | None = None) -> bool:
    if not ip_address:
        return False
    stmt = select(AffiliateClick.id).where(
        AffiliateClick.link_id == link_id,
        AffiliateClick.ip_address == ip_address,
    )
    if since is not None:
        stmt = stmt.where(AffiliateClick.clicked_at >= since)
    return db.scalar(stmt.limit(1)) is not None


def record_click(
    session_factory: sessionmaker[Session],
    link: LinkRef,
    context: ClickContext,
    bus: LiveEventBus,
    now: datetime | None = None,
) -> ClickOutcome:
    """Persist a click and fold it into the aggregates.

    Every step runs in its own transaction and is attempted regardless of
    earlier failures; errors are logged and never raised, so this is safe to
    run detached from the redirect response.
    """
    clicked_at = as_utc(now or datetime.now(UTC))
    outcome = ClickOutcome(device_type=classify_device(context.user_agent))
    with session_factory() as db:
        try:
            outcome.unique_for_day = not _seen_before(
                db, link.id, context.ip_address, since=_day_start(clicked_at)
            )
            outcome.unique_for_link = outcome.unique_for_day and not _seen_before(db, link.id, context.ip_address)
            click_id = uuid.uuid4()
            click = AffiliateClick(
                id=click_id,
                link_id=link.id,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                referrer=context.referrer,
                device_type=outcome.device_type,
                country=context.country,
                clicked_at=clicked_at,
            )
            db.add(click)
            db.commit()
            outcome.click_id = click_id
        except Exception:
            db.rollback()
            outcome.failures.append("click")
            logger.exception("click insert failed short_code=%s", link.short_code)

        try:
            increment_link_counters(
                db,
                link.id,
                total_clicks=1,
                unique_clicks=1 if outcome.unique_for_link else 0,
            )
            db.commit()
            outcome.counters_updated = True
        except Exception:
            db.rollback()
            outcome.failures.append("counters")
            logger.exception("link counter increment failed short_code=%s", link.short_code)

        try:
            upsert_daily_performance(
                db,
                link.id,
                stats_date(clicked_at),
                clicks=1,
                unique_visitors=1 if outcome.unique_for_day else 0,
            )
            db.commit()
            outcome.daily_updated = True
        except Exception:
            db.rollback()
            outcome.failures.append("daily")
            logger.exception("daily rollup upsert failed short_code=%s", link.short_code)

    try:
        write_event(
            bus,
            "click",
            link_id=str(link.id),
            name=link.name,
            short_code=link.short_code,
            timestamp=clicked_at,
            payload_json={
                "click_id": str(outcome.click_id) if outcome.click_id else None,
                "visitor": mask_ip_address(context.ip_address),
                "device_type": outcome.device_type,
                "referrer": redact_referrer(context.referrer),
                "country": context.country,
                "unique": outcome.unique_for_link,
            },
        )
        outcome.published = True
    except Exception:
        outcome.failures.append("publish")
        logger.exception("click event publish failed short_code=%s", link.short_code)

    if outcome.failures:
        logger.warning(
            "click recorded with failures short_code=%s failed=%s", link.short_code, ",".join(outcome.failures)
        )
    return outcome
