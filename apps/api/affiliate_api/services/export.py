from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import ValidationError
from ..models import AffiliateClick, AffiliateLink

LINK_COLUMNS = [
    "id",
    "name",
    "short_code",
    "destination_url",
    "category",
    "platform",
    "commission_rate",
    "is_active",
    "expires_at",
    "total_clicks",
    "unique_clicks",
    "conversions",
    "revenue",
    "created_at",
    "updated_at",
]
CLICK_COLUMNS = [
    "id",
    "link_id",
    "short_code",
    "ip_address",
    "user_agent",
    "referrer",
    "device_type",
    "country",
    "clicked_at",
    "converted",
    "conversion_value",
]
EXPORT_TYPES = ("links", "clicks")


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value) if not isinstance(value, (int, float)) else value


def _render(columns: list[str], rows: Iterable[Iterable[Any]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_cell(value) for value in row])
    return output.getvalue()


def export_csv(
    db: Session,
    export_type: str,
    start: datetime | None = None,
    end: datetime | None = None,
) -> str:
    if export_type not in EXPORT_TYPES:
        raise ValidationError(f"unsupported export type: {export_type}")
    if start is not None and end is not None and start > end:
        raise ValidationError("export start must not be after end")

    if export_type == "links":
        stmt = select(*(getattr(AffiliateLink, column) for column in LINK_COLUMNS)).order_by(AffiliateLink.created_at)
        if start is not None:
            stmt = stmt.where(AffiliateLink.created_at >= start)
        if end is not None:
            stmt = stmt.where(AffiliateLink.created_at <= end)
        return _render(LINK_COLUMNS, db.execute(stmt).all())

    click_columns = [getattr(AffiliateClick, column) for column in CLICK_COLUMNS if column != "short_code"]
    click_columns.insert(2, AffiliateLink.short_code)
    stmt = (
        select(*click_columns)
        .join(AffiliateLink, AffiliateLink.id == AffiliateClick.link_id)
        .order_by(AffiliateClick.clicked_at)
    )
    if start is not None:
        stmt = stmt.where(AffiliateClick.clicked_at >= start)
    if end is not None:
        stmt = stmt.where(AffiliateClick.clicked_at <= end)
    return _render(CLICK_COLUMNS, db.execute(stmt).all())
