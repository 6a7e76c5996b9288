from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from packages.events import LiveEventBus

from ..errors import StorageError, ValidationError
from ..models import MAX_CONVERSION_VALUE, AffiliateClick
from .aggregates import ZERO, as_utc, increment_link_counters, stats_date, upsert_daily_performance
from .events import write_event
from .links import get_link

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionOutcome:
    link_id: uuid.UUID
    click_id: uuid.UUID | None
    click_attributed: bool
    value: Decimal
    recorded_at: datetime


def _mark_click_converted(db: Session, link_id: uuid.UUID, click_id: uuid.UUID, value: Decimal) -> bool:
    result = db.execute(
        update(AffiliateClick)
        .where(
            AffiliateClick.id == click_id,
            AffiliateClick.link_id == link_id,
            AffiliateClick.converted.is_(False),
        )
        .values(converted=True, conversion_value=value)
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)


def record_conversion(
    db: Session,
    link_id: uuid.UUID,
    bus: LiveEventBus,
    click_id: uuid.UUID | None = None,
    value: Decimal | None = None,
    now: datetime | None = None,
) -> ConversionOutcome:
    amount = ZERO if value is None else Decimal(value)
    if not amount.is_finite():
        raise ValidationError("conversion_value must be a finite amount")
    if amount < 0:
        raise ValidationError("conversion_value must not be negative")
    if amount > MAX_CONVERSION_VALUE:
        raise ValidationError(f"conversion_value must not exceed {MAX_CONVERSION_VALUE}")
    if amount != amount.quantize(Decimal("0.01")):
        raise ValidationError("conversion_value allows at most two decimal places")
    recorded_at = as_utc(now or datetime.now(UTC))
    link = get_link(db, link_id)
    name, short_code = link.name, link.short_code

    try:
        attributed = False
        if click_id is not None:
            attributed = _mark_click_converted(db, link_id, click_id, amount)
            if not attributed:
                logger.warning(
                    "conversion click reference ignored link=%s click=%s (unknown, foreign or already converted)",
                    link_id,
                    click_id,
                )
        increment_link_counters(db, link_id, conversions=1, revenue=amount)
        upsert_daily_performance(db, link_id, stats_date(recorded_at), conversions=1, revenue=amount)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("conversion write failed link=%s", link_id)
        raise StorageError("conversion could not be recorded") from exc

    write_event(
        bus,
        "conversion",
        link_id=str(link_id),
        name=name,
        short_code=short_code,
        timestamp=recorded_at,
        payload_json={
            "click_id": str(click_id) if click_id else None,
            "click_attributed": attributed,
            "value": float(amount),
        },
    )
    logger.info("conversion recorded link=%s value=%s attributed=%s", short_code, amount, attributed)
    return ConversionOutcome(
        link_id=link_id,
        click_id=click_id,
        click_attributed=attributed,
        value=amount,
        recorded_at=recorded_at,
    )
