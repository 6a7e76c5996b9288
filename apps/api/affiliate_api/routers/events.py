from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from packages.events import LiveEventBus, Subscription, connected_event, encode_sse

from ..auth import AdminContext, require_admin
from ..services.events import get_event_bus

router = APIRouter(prefix="/affiliate/events", tags=["events"])

POLL_SECONDS = 1.0


async def stream_events(
    request: Request,
    bus: LiveEventBus,
    subscription: Subscription,
    poll_seconds: float = POLL_SECONDS,
) -> AsyncIterator[str]:
    try:
        yield encode_sse(connected_event(subscription.id))
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(subscription.get(), timeout=poll_seconds)
            except asyncio.TimeoutError:
                continue
            yield encode_sse(event)
    finally:
        bus.unsubscribe(subscription)


@router.get("/stream")
async def event_stream(
    request: Request,
    bus: LiveEventBus = Depends(get_event_bus),
    _: AdminContext = Depends(require_admin),
) -> StreamingResponse:
    subscription = bus.subscribe()
    return StreamingResponse(
        stream_events(request, bus, subscription),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
