from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from affiliate_api.errors import ConflictError, NotFoundError, ValidationError
from affiliate_api.models import AffiliateClick, AffiliatePerformance
from affiliate_api.services.aggregates import upsert_daily_performance
from affiliate_api.services.clicks import ClickContext, LinkRef, record_click
from affiliate_api.services.links import (
    create_link,
    delete_link,
    get_link,
    list_link_clicks,
    list_links,
    update_link,
)
from packages.events import LiveEventBus


def test_create_link_defaults_and_trims(db_session: Session) -> None:
    row = create_link(
        db_session,
        name="  Standing Desk ",
        short_code="desk",
        destination_url="https://shop.example.com/desk",
        commission_rate=Decimal("4.50"),
    )
    assert row.name == "Standing Desk"
    assert row.is_active is True
    assert row.total_clicks == 0
    assert row.unique_clicks == 0
    assert row.conversions == 0
    assert Decimal(row.revenue) == Decimal("0")
    assert get_link(db_session, row.id).short_code == "desk"


def test_create_link_rejects_duplicate_short_code(make_link, db_session: Session) -> None:
    original = make_link(short_code="dup", name="First", destination_url="https://example.com/first")
    with pytest.raises(ConflictError):
        create_link(db_session, name="Other", short_code="dup", destination_url="https://example.com/x")

    db_session.expire_all()
    kept = get_link(db_session, original.id)
    assert kept.name == "First"
    assert kept.destination_url == "https://example.com/first"
    assert [row.id for row in list_links(db_session)] == [original.id]


@pytest.mark.parametrize(
    "fields",
    [
        {"name": "", "short_code": "ok", "destination_url": "https://example.com"},
        {"name": "Missing url", "short_code": "ok"},
        {"name": "Bad code", "short_code": "has space", "destination_url": "https://example.com"},
        {"name": "Bad code", "short_code": "x" * 65, "destination_url": "https://example.com"},
    ],
)
def test_create_link_validation(db_session: Session, fields: dict[str, str]) -> None:
    with pytest.raises(ValidationError):
        create_link(db_session, **fields)


def test_create_link_rejects_counter_fields(db_session: Session) -> None:
    with pytest.raises(ValidationError):
        create_link(
            db_session,
            name="Sneaky",
            short_code="sneaky",
            destination_url="https://example.com",
            total_clicks=100,
        )


def test_get_link_not_found(db_session: Session) -> None:
    with pytest.raises(NotFoundError):
        get_link(db_session, uuid.uuid4())


def test_list_links_filters(make_link, db_session: Session) -> None:
    make_link(short_code="a1", category="Office", platform="amazon")
    make_link(short_code="a2", category="Office", platform="shareasale")
    make_link(short_code="b1", category="Outdoor", platform="amazon")
    make_link(short_code="old", category="Office", is_active=False)

    assert {row.short_code for row in list_links(db_session)} == {"a1", "a2", "b1"}
    assert {row.short_code for row in list_links(db_session, category="Office")} == {"a1", "a2"}
    assert {row.short_code for row in list_links(db_session, platform="amazon")} == {"a1", "b1"}
    assert [row.short_code for row in list_links(db_session, active=False)] == ["old"]
    assert len(list_links(db_session, limit=2)) == 2


def test_update_link_applies_changes_and_keeps_counters(make_link, db_session: Session) -> None:
    row = make_link(short_code="edit-me")
    before = row.updated_at
    updated = update_link(
        db_session,
        row.id,
        {"name": "Renamed", "destination_url": "https://example.com/new", "is_active": False},
    )
    assert updated.name == "Renamed"
    assert updated.destination_url == "https://example.com/new"
    assert updated.is_active is False
    assert updated.total_clicks == 0
    assert updated.updated_at >= before


def test_update_link_conflicting_short_code(make_link, db_session: Session) -> None:
    make_link(short_code="taken")
    row = make_link(short_code="mine")
    with pytest.raises(ConflictError):
        update_link(db_session, row.id, {"short_code": "taken"})


def test_update_link_unknown_field(make_link, db_session: Session) -> None:
    row = make_link()
    with pytest.raises(ValidationError):
        update_link(db_session, row.id, {"revenue": Decimal("10")})


def test_update_link_missing(db_session: Session) -> None:
    with pytest.raises(NotFoundError):
        update_link(db_session, uuid.uuid4(), {"name": "x"})


def test_delete_link_removes_history(make_link, db_session: Session, session_factory) -> None:
    row = make_link(short_code="gone-soon")
    record_click(session_factory, LinkRef.from_row(row), ClickContext(ip_address="198.51.100.7"), LiveEventBus())
    upsert_daily_performance(db_session, row.id, datetime.now(UTC).date() - timedelta(days=1), clicks=2)
    db_session.commit()

    delete_link(db_session, row.id)

    with pytest.raises(NotFoundError):
        get_link(db_session, row.id)
    assert db_session.scalars(select(AffiliateClick).where(AffiliateClick.link_id == row.id)).all() == []
    assert db_session.scalars(select(AffiliatePerformance).where(AffiliatePerformance.link_id == row.id)).all() == []


def test_list_link_clicks_paginates_newest_first(make_link, db_session: Session, session_factory) -> None:
    row = make_link(short_code="paged")
    link = LinkRef.from_row(row)
    start = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    for index in range(5):
        record_click(
            session_factory,
            link,
            ClickContext(ip_address=f"203.0.113.{index}"),
            LiveEventBus(),
            now=start + timedelta(minutes=index),
        )

    rows, total = list_link_clicks(db_session, row.id, limit=2, offset=0)
    assert total == 5
    assert [click.ip_address for click in rows] == ["203.0.113.4", "203.0.113.3"]

    rows, _ = list_link_clicks(db_session, row.id, limit=2, offset=4)
    assert [click.ip_address for click in rows] == ["203.0.113.0"]
