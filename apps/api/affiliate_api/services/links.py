from __future__ import annotations

import logging
import re
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, desc, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import ConflictError, NotFoundError, StorageError, ValidationError
from ..models import AffiliateClick, AffiliateLink, AffiliatePerformance

logger = logging.getLogger(__name__)

SHORT_CODE_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
REQUIRED_FIELDS = ("name", "short_code", "destination_url")
EDITABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "short_code",
        "destination_url",
        "category",
        "platform",
        "commission_rate",
        "is_active",
        "expires_at",
    }
)


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def _validate_fields(fields: dict[str, Any], required: tuple[str, ...]) -> None:
    for name in required:
        value = fields.get(name)
        if value is None or (isinstance(value, str) and not value):
            raise ValidationError(f"{name} is required")
    short_code = fields.get("short_code")
    if short_code is not None and not SHORT_CODE_RE.match(short_code):
        raise ValidationError("short_code may only contain letters, digits, '-' and '_' (max 64)")


def _short_code_taken(db: Session, short_code: str, exclude_id: uuid.UUID | None = None) -> bool:
    stmt = select(AffiliateLink.id).where(AffiliateLink.short_code == short_code)
    if exclude_id is not None:
        stmt = stmt.where(AffiliateLink.id != exclude_id)
    return db.scalar(stmt) is not None


def _commit(db: Session, conflict_message: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(conflict_message) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("link registry write failed")
        raise StorageError("link registry write failed") from exc


def create_link(db: Session, **fields: Any) -> AffiliateLink:
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"unknown link fields: {', '.join(sorted(unknown))}")
    values = {key: _clean(value) for key, value in fields.items()}
    _validate_fields(values, REQUIRED_FIELDS)
    if _short_code_taken(db, values["short_code"]):
        raise ConflictError(f"short code already exists: {values['short_code']}")
    if values.get("is_active") is None:
        values["is_active"] = True
    row = AffiliateLink(**values)
    db.add(row)
    _commit(db, f"short code already exists: {values['short_code']}")
    db.refresh(row)
    logger.info("link created id=%s short_code=%s", row.id, row.short_code)
    return row


def get_link(db: Session, link_id: uuid.UUID) -> AffiliateLink:
    row = db.get(AffiliateLink, link_id)
    if row is None:
        raise NotFoundError("link not found")
    return row


def list_links(
    db: Session,
    category: str | None = None,
    platform: str | None = None,
    active: bool | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AffiliateLink]:
    stmt = select(AffiliateLink).where(AffiliateLink.is_active.is_(True if active is None else active))
    if category is not None:
        stmt = stmt.where(AffiliateLink.category == category)
    if platform is not None:
        stmt = stmt.where(AffiliateLink.platform == platform)
    stmt = stmt.order_by(desc(AffiliateLink.created_at), AffiliateLink.short_code).limit(limit).offset(offset)
    return list(db.scalars(stmt).all())


def update_link(db: Session, link_id: uuid.UUID, changes: dict[str, Any]) -> AffiliateLink:
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"fields are not editable: {', '.join(sorted(unknown))}")
    row = get_link(db, link_id)
    values = {key: _clean(value) for key, value in changes.items()}
    _validate_fields(values, tuple(name for name in REQUIRED_FIELDS if name in values))
    if values.get("is_active") is None:
        values.pop("is_active", None)
    new_code = values.get("short_code")
    if new_code is not None and new_code != row.short_code and _short_code_taken(db, new_code, exclude_id=row.id):
        raise ConflictError(f"short code already exists: {new_code}")
    for key, value in values.items():
        setattr(row, key, value)
    row.updated_at = datetime.now(UTC)
    _commit(db, f"short code already exists: {new_code}")
    db.refresh(row)
    logger.info("link updated id=%s fields=%s", row.id, ",".join(sorted(values)))
    return row


def delete_link(db: Session, link_id: uuid.UUID) -> None:
    row = get_link(db, link_id)
    try:
        clicks = db.execute(delete(AffiliateClick).where(AffiliateClick.link_id == link_id)).rowcount
        days = db.execute(delete(AffiliatePerformance).where(AffiliatePerformance.link_id == link_id)).rowcount
        db.delete(row)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("link delete failed id=%s", link_id)
        raise StorageError("link delete failed") from exc
    logger.info("link deleted id=%s clicks=%s daily_rows=%s", link_id, clicks, days)


def list_link_clicks(
    db: Session,
    link_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[AffiliateClick], int]:
    get_link(db, link_id)
    total = db.scalar(select(func.count(AffiliateClick.id)).where(AffiliateClick.link_id == link_id)) or 0
    rows = db.scalars(
        select(AffiliateClick)
        .where(AffiliateClick.link_id == link_id)
        .order_by(desc(AffiliateClick.clicked_at))
        .limit(limit)
        .offset(offset)
    ).all()
    return list(rows), int(total)
