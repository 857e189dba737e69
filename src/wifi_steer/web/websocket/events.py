"""WebSocket event models and types."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field

from wifi_steer.network.access_point import AccessPointSnapshot


class EventType(str, Enum):
    """WebSocket event types."""

    ACCESS_POINT_ADDED = "access_point_added"
    ACCESS_POINT_REMOVED = "access_point_removed"
    ACCESS_POINT_PROPERTIES_CHANGED = "access_point_properties_changed"


class WebSocketEvent(BaseModel):
    """Base WebSocket event."""

    type: EventType
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    )
    data: Dict[str, Any] = Field(default_factory=dict)


class AccessPointEvent(WebSocketEvent):
    """Event carrying one access point of one device."""

    def __init__(self, device_path: str, snapshot: AccessPointSnapshot, **kwargs: Any):
        """Initialize access point event.

        Args:
            device_path: Wireless device object path
            snapshot: Access point state at the time of the event
            **kwargs: Additional fields
        """
        super().__init__(
            data={
                "device_path": device_path,
                "access_point": snapshot.to_dict(),
            },
            **kwargs,
        )


class AccessPointAddedEvent(AccessPointEvent):
    """Access point became visible."""

    type: EventType = EventType.ACCESS_POINT_ADDED


class AccessPointRemovedEvent(AccessPointEvent):
    """Access point vanished or is now ignored."""

    type: EventType = EventType.ACCESS_POINT_REMOVED


class AccessPointPropertiesChangedEvent(AccessPointEvent):
    """Visible access point changed."""

    type: EventType = EventType.ACCESS_POINT_PROPERTIES_CHANGED
