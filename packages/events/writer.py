from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

EVENT_TYPES = frozenset({"connected", "click", "conversion", "heartbeat"})


@dataclass(frozen=True)
class LiveEvent:
    event_type: str
    timestamp: datetime
    link_id: str | None = None
    name: str | None = None
    short_code: str | None = None
    payload_json: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.event_type not in EVENT_TYPES:
            raise ValueError(f"unsupported live event type: {self.event_type}")


def heartbeat_event(now: datetime | None = None) -> LiveEvent:
    return LiveEvent(event_type="heartbeat", timestamp=now or datetime.now(UTC))


def connected_event(subscriber_id: str, now: datetime | None = None) -> LiveEvent:
    return LiveEvent(
        event_type="connected",
        timestamp=now or datetime.now(UTC),
        payload_json={"subscriber_id": subscriber_id},
    )


def build_event_payload(data: LiveEvent) -> dict[str, Any]:
    return {
        "type": data.event_type,
        "link_id": data.link_id,
        "name": data.name,
        "short_code": data.short_code,
        "timestamp": data.timestamp.isoformat(),
        "payload_json": data.payload_json,
    }


def encode_sse(data: LiveEvent) -> str:
    body = json.dumps(build_event_payload(data), default=str, separators=(",", ":"))
    return f"event: {data.event_type}\ndata: {body}\n\n"
