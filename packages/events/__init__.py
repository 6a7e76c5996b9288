from .bus import LiveEventBus, Subscription
from .writer import LiveEvent, build_event_payload, connected_event, encode_sse, heartbeat_event

__all__ = [
    "LiveEvent",
    "LiveEventBus",
    "Subscription",
    "build_event_payload",
    "connected_event",
    "encode_sse",
    "heartbeat_event",
]
