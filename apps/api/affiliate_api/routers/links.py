from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from ..auth import AdminContext, require_admin
from ..db import get_db
from ..models import AffiliateClick, AffiliateLink, AffiliatePerformance
from ..schemas import (
    ClickPageResponse,
    ClickResponse,
    DailyPerformanceResponse,
    LinkCreateRequest,
    LinkResponse,
    LinkUpdateRequest,
    PageMeta,
)
from ..services import dashboard as dashboard_service
from ..services import links as link_service

router = APIRouter(prefix="/affiliate/links", tags=["links"])


def _serialize_link(row: AffiliateLink) -> LinkResponse:
    return LinkResponse(
        id=row.id,
        name=row.name,
        description=row.description,
        short_code=row.short_code,
        destination_url=row.destination_url,
        category=row.category,
        platform=row.platform,
        commission_rate=float(row.commission_rate) if row.commission_rate is not None else None,
        is_active=row.is_active,
        expires_at=row.expires_at,
        total_clicks=row.total_clicks,
        unique_clicks=row.unique_clicks,
        conversions=row.conversions,
        revenue=round(float(row.revenue or 0), 2),
        created_at=row.created_at,
        updated_at=row.updated_at,
        redirect_path=f"/go/{row.short_code}",
    )


def _serialize_click(row: AffiliateClick) -> ClickResponse:
    return ClickResponse(
        id=row.id,
        link_id=row.link_id,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        referrer=row.referrer,
        device_type=row.device_type,
        country=row.country,
        clicked_at=row.clicked_at,
        converted=row.converted,
        conversion_value=float(row.conversion_value) if row.conversion_value is not None else None,
    )


def _serialize_day(row: AffiliatePerformance) -> DailyPerformanceResponse:
    return DailyPerformanceResponse(
        link_id=row.link_id,
        date=row.date,
        clicks=row.clicks,
        unique_visitors=row.unique_visitors,
        conversions=row.conversions,
        revenue=round(float(row.revenue or 0), 2),
        ctr=float(row.ctr or 0),
    )


@router.post("", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
def create_link(
    payload: LinkCreateRequest,
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> LinkResponse:
    return _serialize_link(link_service.create_link(db, **payload.model_dump()))


@router.get("", response_model=list[LinkResponse])
def list_links(
    category: str | None = Query(default=None),
    platform: str | None = Query(default=None),
    active: bool | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> list[LinkResponse]:
    rows = link_service.list_links(
        db, category=category, platform=platform, active=active, limit=limit, offset=offset
    )
    return [_serialize_link(row) for row in rows]


@router.get("/{link_id}", response_model=LinkResponse)
def get_link(
    link_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> LinkResponse:
    return _serialize_link(link_service.get_link(db, link_id))


@router.patch("/{link_id}", response_model=LinkResponse)
def update_link(
    link_id: uuid.UUID,
    payload: LinkUpdateRequest,
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> LinkResponse:
    changes = payload.model_dump(exclude_unset=True)
    return _serialize_link(link_service.update_link(db, link_id, changes))


@router.delete("/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_link(
    link_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> Response:
    link_service.delete_link(db, link_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{link_id}/clicks", response_model=ClickPageResponse)
def list_link_clicks(
    link_id: uuid.UUID,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> ClickPageResponse:
    rows, total = link_service.list_link_clicks(db, link_id, limit=limit, offset=offset)
    return ClickPageResponse(
        data=[_serialize_click(row) for row in rows],
        meta=PageMeta(total=total, limit=limit, offset=offset),
    )


@router.get("/{link_id}/performance", response_model=list[DailyPerformanceResponse])
def link_performance(
    link_id: uuid.UUID,
    period: str = Query(default="30d", pattern="^(1d|7d|30d|90d|all)$"),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> list[DailyPerformanceResponse]:
    rows = dashboard_service.link_performance(db, link_id, period)
    return [_serialize_day(row) for row in rows]
