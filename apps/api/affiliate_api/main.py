import asyncio
import contextlib
import logging
import uuid
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.requests import Request
from starlette.responses import Response

from .errors import AffiliateError
from .logging_config import configure_logging, request_id_var
from .routers.analytics import router as analytics_router
from .routers.events import router as events_router
from .routers.health import router as health_router
from .routers.links import router as links_router
from .routers.tracking import router as tracking_router
from .services.events import event_bus
from .settings import settings

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings.log_level)
    heartbeats = asyncio.create_task(event_bus.run_heartbeats(settings.live_heartbeat_seconds))
    logger.info("affiliate api started env=%s stats_timezone=%s", settings.app_env, settings.stats_timezone)
    try:
        yield
    finally:
        heartbeats.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await heartbeats


app = FastAPI(title="Affiliate Link API", version="0.1.0", lifespan=lifespan)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:  # type: ignore[override]
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    request.state.request_id = request_id
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-Id"] = request_id
    return response


@app.exception_handler(AffiliateError)
async def affiliate_error_handler(request: Request, exc: AffiliateError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s error path=%s: %s", exc.category, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "category": exc.category})


app.include_router(health_router)
app.include_router(tracking_router)
app.include_router(links_router)
app.include_router(analytics_router)
app.include_router(events_router)
