from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from packages.events import LiveEvent, LiveEventBus

from ..settings import settings

logger = logging.getLogger(__name__)

event_bus = LiveEventBus(queue_size=settings.live_queue_size)


def get_event_bus() -> LiveEventBus:
    return event_bus


def write_event(
    bus: LiveEventBus,
    event_type: str,
    link_id: str,
    name: str,
    short_code: str,
    payload_json: dict[str, Any] | None = None,
    timestamp: datetime | None = None,
) -> LiveEvent:
    event = LiveEvent(
        event_type=event_type,
        timestamp=timestamp or datetime.now(UTC),
        link_id=link_id,
        name=name,
        short_code=short_code,
        payload_json=payload_json or {},
    )
    delivered = bus.publish(event)
    logger.debug("live event type=%s link=%s subscribers=%s", event_type, short_code, delivered)
    return event
