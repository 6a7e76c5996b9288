from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session, sessionmaker

from packages.events import LiveEventBus

from ..db import get_db, get_session_factory
from ..schemas import ConversionRequest, ConversionResponse
from ..services.clicks import ClickContext, LinkRef, record_click, resolve_link
from ..services.conversions import record_conversion
from ..services.events import get_event_bus
from ..services.rate_limit import conversion_rule, enforce_rate_limit, redirect_rule

router = APIRouter(tags=["tracking"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip() or None
    return request.client.host if request.client else None


def _click_context(request: Request) -> ClickContext:
    return ClickContext(
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
        country=request.headers.get("cf-ipcountry"),
    )


@router.get("/go/{short_code}")
def redirect(
    short_code: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    bus: LiveEventBus = Depends(get_event_bus),
) -> RedirectResponse:
    """Send the visitor on their way; the click is recorded after the response."""
    context = _click_context(request)
    enforce_rate_limit(context.ip_address or "anonymous", redirect_rule())
    link = LinkRef.from_row(resolve_link(db, short_code))
    background_tasks.add_task(record_click, session_factory, link, context, bus)
    return RedirectResponse(url=link.destination_url, status_code=status.HTTP_302_FOUND)


@router.post("/affiliate/conversion", response_model=ConversionResponse, status_code=status.HTTP_201_CREATED)
def create_conversion(
    payload: ConversionRequest,
    request: Request,
    db: Session = Depends(get_db),
    bus: LiveEventBus = Depends(get_event_bus),
) -> ConversionResponse:
    enforce_rate_limit(_client_ip(request) or "anonymous", conversion_rule())
    outcome = record_conversion(
        db,
        payload.link_id,
        bus,
        click_id=payload.click_id,
        value=payload.conversion_value,
    )
    return ConversionResponse(
        link_id=outcome.link_id,
        click_id=outcome.click_id,
        click_attributed=outcome.click_attributed,
        conversion_value=round(float(outcome.value), 2),
        recorded_at=outcome.recorded_at,
    )
