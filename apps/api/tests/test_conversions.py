from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from affiliate_api.errors import NotFoundError, ValidationError
from affiliate_api.models import AffiliateClick, AffiliatePerformance
from affiliate_api.services.clicks import ClickContext, LinkRef, record_click
from affiliate_api.services.conversions import record_conversion
from packages.events import LiveEventBus

RECORDED_AT = datetime(2026, 7, 4, 18, 0, tzinfo=UTC)


def test_conversion_updates_link_and_daily_rollup(make_link, db_session: Session) -> None:
    row = make_link(short_code="convert")
    outcome = record_conversion(db_session, row.id, LiveEventBus(), value=Decimal("49.99"), now=RECORDED_AT)

    assert outcome.click_attributed is False
    assert outcome.value == Decimal("49.99")

    db_session.refresh(row)
    assert row.conversions == 1
    assert Decimal(str(row.revenue)) == Decimal("49.99")

    day = db_session.scalar(select(AffiliatePerformance).where(AffiliatePerformance.link_id == row.id))
    assert day.date == RECORDED_AT.date()
    assert day.conversions == 1
    assert day.clicks == 0


def test_conversion_without_value_counts_zero_revenue(make_link, db_session: Session) -> None:
    row = make_link(short_code="free-trial")
    record_conversion(db_session, row.id, LiveEventBus())
    db_session.refresh(row)
    assert row.conversions == 1
    assert Decimal(str(row.revenue)) == Decimal("0")


def test_conversion_marks_referenced_click_once(make_link, db_session: Session, session_factory) -> None:
    row = make_link(short_code="attributed")
    clicked = record_click(session_factory, LinkRef.from_row(row), ClickContext(ip_address="192.0.2.50"), LiveEventBus())

    first = record_conversion(db_session, row.id, LiveEventBus(), click_id=clicked.click_id, value=Decimal("20"))
    second = record_conversion(db_session, row.id, LiveEventBus(), click_id=clicked.click_id, value=Decimal("5"))

    assert first.click_attributed is True
    assert second.click_attributed is False

    click = db_session.scalar(select(AffiliateClick).where(AffiliateClick.id == clicked.click_id))
    db_session.refresh(click)
    assert click.converted is True
    assert Decimal(str(click.conversion_value)) == Decimal("20")

    db_session.refresh(row)
    assert row.conversions == 2
    assert Decimal(str(row.revenue)) == Decimal("25")


def test_conversion_ignores_click_from_other_link(make_link, db_session: Session, session_factory) -> None:
    owner = make_link(short_code="owner")
    other = make_link(short_code="other")
    clicked = record_click(session_factory, LinkRef.from_row(owner), ClickContext(ip_address="192.0.2.60"), LiveEventBus())

    outcome = record_conversion(db_session, other.id, LiveEventBus(), click_id=clicked.click_id)

    assert outcome.click_attributed is False
    click = db_session.scalar(select(AffiliateClick).where(AffiliateClick.id == clicked.click_id))
    assert click.converted is False
    db_session.refresh(other)
    assert other.conversions == 1


def test_conversion_unknown_link(db_session: Session) -> None:
    with pytest.raises(NotFoundError):
        record_conversion(db_session, uuid.uuid4(), LiveEventBus())


def test_conversion_negative_value(make_link, db_session: Session) -> None:
    row = make_link(short_code="negative")
    with pytest.raises(ValidationError):
        record_conversion(db_session, row.id, LiveEventBus(), value=Decimal("-1"))
    db_session.refresh(row)
    assert row.conversions == 0


async def test_conversion_publishes_event(make_link, db_session: Session) -> None:
    row = make_link(short_code="announce", name="Announced")
    bus = LiveEventBus()
    subscription = bus.subscribe()

    record_conversion(db_session, row.id, bus, value=Decimal("10.5"))
    event = await asyncio.wait_for(subscription.get(), timeout=1)

    assert event.event_type == "conversion"
    assert event.link_id == str(row.id)
    assert event.name == "Announced"
    assert event.payload_json["value"] == 10.5


@pytest.mark.parametrize("value", [Decimal("100000000.00"), Decimal("1E+12"), Decimal("1.005"), Decimal("NaN")])
def test_conversion_value_outside_storable_range(make_link, db_session: Session, value: Decimal) -> None:
    row = make_link(short_code="too-big")
    with pytest.raises(ValidationError):
        record_conversion(db_session, row.id, LiveEventBus(), value=value)
    db_session.refresh(row)
    assert row.conversions == 0
    assert Decimal(str(row.revenue)) == Decimal("0")
    assert db_session.scalars(select(AffiliatePerformance).where(AffiliatePerformance.link_id == row.id)).all() == []


def test_conversion_value_at_storable_maximum(make_link, db_session: Session) -> None:
    row = make_link(short_code="max-value")
    outcome = record_conversion(db_session, row.id, LiveEventBus(), value=Decimal("99999999.99"))
    assert outcome.value == Decimal("99999999.99")
    db_session.refresh(row)
    assert row.conversions == 1
