"""WebSocket support for real-time updates."""

from .events import (
    AccessPointAddedEvent,
    AccessPointPropertiesChangedEvent,
    AccessPointRemovedEvent,
    EventType,
    WebSocketEvent,
)
from .manager import ConnectionManager

__all__ = [
    "ConnectionManager",
    "EventType",
    "WebSocketEvent",
    "AccessPointAddedEvent",
    "AccessPointRemovedEvent",
    "AccessPointPropertiesChangedEvent",
]
