"""Tests for the WebSocket module."""

import asyncio
import json
import threading

import pytest

from wifi_steer.network.access_point import AccessPointSnapshot
from wifi_steer.web.websocket.events import (
    AccessPointAddedEvent,
    AccessPointPropertiesChangedEvent,
    AccessPointRemovedEvent,
    EventType,
    WebSocketEvent,
)
from wifi_steer.web.websocket.manager import ConnectionManager

DEVICE = "/org/freedesktop/NetworkManager/Devices/3"
SNAPSHOT = AccessPointSnapshot(
    device_path=DEVICE,
    path="/org/freedesktop/NetworkManager/AccessPoint/1",
    ssid="home",
    secured=True,
    secured_in_eap=False,
    strength=70,
    frequency=5180,
)


class MockWebSocket:
    """Mock WebSocket for testing."""

    def __init__(self, should_fail: bool = False) -> None:
        """Initialize mock WebSocket.

        Args:
            should_fail: If True, send_text will raise an exception
        """
        self.should_fail = should_fail
        self.accepted = False
        self.sent_messages: list[str] = []

    async def accept(self) -> None:
        """Accept the WebSocket connection."""
        self.accepted = True

    async def send_text(self, data: str) -> None:
        """Send text data over WebSocket."""
        if self.should_fail:
            raise ConnectionError("WebSocket disconnected")
        self.sent_messages.append(data)


class TestWebSocketEvents:
    """Tests for WebSocket event models."""

    def test_base_event(self) -> None:
        event = WebSocketEvent(type=EventType.ACCESS_POINT_ADDED, data={"key": "value"})

        assert event.type == EventType.ACCESS_POINT_ADDED
        assert event.data == {"key": "value"}
        assert event.timestamp.endswith("Z")

    @pytest.mark.parametrize(
        "event_class,event_type",
        [
            (AccessPointAddedEvent, EventType.ACCESS_POINT_ADDED),
            (AccessPointRemovedEvent, EventType.ACCESS_POINT_REMOVED),
            (AccessPointPropertiesChangedEvent, EventType.ACCESS_POINT_PROPERTIES_CHANGED),
        ],
    )
    def test_access_point_events(self, event_class: type, event_type: EventType) -> None:
        event = event_class(DEVICE, SNAPSHOT)

        assert event.type == event_type
        assert event.data["device_path"] == DEVICE
        assert event.data["access_point"]["Ssid"] == "home"
        assert event.data["access_point"]["Frequency"] == 5180

    def test_event_json_serialization(self) -> None:
        event = AccessPointAddedEvent(DEVICE, SNAPSHOT)

        parsed = json.loads(event.model_dump_json())

        assert parsed["type"] == "access_point_added"
        assert parsed["data"]["access_point"]["Path"] == SNAPSHOT.path
        assert "timestamp" in parsed


class TestConnectionManager:
    """Tests for ConnectionManager."""

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self) -> None:
        manager = ConnectionManager()
        ws = MockWebSocket()

        await manager.connect(ws)  # type: ignore[arg-type]
        assert ws.accepted
        assert manager.connection_count == 1

        await manager.disconnect(ws)  # type: ignore[arg-type]
        assert manager.connection_count == 0

    @pytest.mark.asyncio
    async def test_broadcast(self) -> None:
        manager = ConnectionManager()
        ws1, ws2 = MockWebSocket(), MockWebSocket()
        await manager.connect(ws1)  # type: ignore[arg-type]
        await manager.connect(ws2)  # type: ignore[arg-type]

        await manager.broadcast(AccessPointRemovedEvent(DEVICE, SNAPSHOT))

        assert len(ws1.sent_messages) == 1
        assert json.loads(ws2.sent_messages[0])["type"] == "access_point_removed"

    @pytest.mark.asyncio
    async def test_broadcast_removes_failed_connections(self) -> None:
        manager = ConnectionManager()
        good, bad = MockWebSocket(), MockWebSocket(should_fail=True)
        await manager.connect(good)  # type: ignore[arg-type]
        await manager.connect(bad)  # type: ignore[arg-type]

        await manager.broadcast(AccessPointAddedEvent(DEVICE, SNAPSHOT))

        assert manager.connection_count == 1
        assert len(good.sent_messages) == 1

    @pytest.mark.asyncio
    async def test_broadcast_without_connections(self) -> None:
        manager = ConnectionManager()

        await manager.broadcast(AccessPointAddedEvent(DEVICE, SNAPSHOT))

        assert manager.connection_count == 0

    @pytest.mark.asyncio
    async def test_broadcast_sync_from_other_thread(self) -> None:
        """Events published from a worker thread reach clients on the loop."""
        manager = ConnectionManager()
        ws = MockWebSocket()
        await manager.connect(ws)  # type: ignore[arg-type]

        thread = threading.Thread(
            target=manager.broadcast_sync, args=(AccessPointPropertiesChangedEvent(DEVICE, SNAPSHOT),)
        )
        thread.start()
        thread.join()
        for _ in range(50):
            if ws.sent_messages:
                break
            await asyncio.sleep(0.01)

        assert len(ws.sent_messages) == 1

    def test_broadcast_sync_without_loop_drops_event(self) -> None:
        manager = ConnectionManager()

        manager.broadcast_sync(AccessPointAddedEvent(DEVICE, SNAPSHOT))

        assert manager.connection_count == 0
