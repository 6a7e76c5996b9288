from __future__ import annotations

import uuid
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth import AdminContext, require_admin
from ..db import get_db
from ..schemas import (
    CategoryPerformanceResponse,
    DashboardResponse,
    DeviceShareResponse,
    SummaryResponse,
    TimelinePointResponse,
    TopLinkResponse,
)
from ..services import dashboard as dashboard_service
from ..services.export import export_csv

router = APIRouter(prefix="/affiliate", tags=["analytics"])

PERIOD_PATTERN = "^(1d|7d|30d|90d|all)$"


@router.get("/analytics", response_model=SummaryResponse)
def analytics_summary(
    timeframe: str = Query(default="30d", pattern=PERIOD_PATTERN),
    link_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> SummaryResponse:
    return SummaryResponse(**dashboard_service.summary(db, timeframe=timeframe, link_id=link_id))


@router.get("/analytics/top-links", response_model=list[TopLinkResponse])
def analytics_top_links(
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> list[TopLinkResponse]:
    return [TopLinkResponse(**row) for row in dashboard_service.top_links(db, limit=limit)]


@router.get("/analytics/timeline", response_model=list[TimelinePointResponse])
def analytics_timeline(
    period: str = Query(default="30d", pattern=PERIOD_PATTERN),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> list[TimelinePointResponse]:
    return [TimelinePointResponse(**row) for row in dashboard_service.timeline(db, period)]


@router.get("/analytics/devices", response_model=list[DeviceShareResponse])
def analytics_devices(
    period: str = Query(default="30d", pattern=PERIOD_PATTERN),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> list[DeviceShareResponse]:
    return [DeviceShareResponse(**row) for row in dashboard_service.device_breakdown(db, period)]


@router.get("/analytics/categories", response_model=list[CategoryPerformanceResponse])
def analytics_categories(
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> list[CategoryPerformanceResponse]:
    return [CategoryPerformanceResponse(**row) for row in dashboard_service.category_performance(db)]


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(
    period: str = Query(default="7d", pattern=PERIOD_PATTERN),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> DashboardResponse:
    return DashboardResponse.model_validate(dashboard_service.dashboard(db, period))


@router.get("/export")
def export(
    type: str = Query(default="links", pattern="^(links|clicks)$"),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(require_admin),
) -> Response:
    body = export_csv(db, type, start=start, end=end)
    filename = f"affiliate-{type}-{datetime.now(UTC).strftime('%Y%m%d')}.csv"
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
