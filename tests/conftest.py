"""Shared pytest fixtures for all tests."""

import time
from typing import Callable, List, Tuple

import pytest

from wifi_steer.network.access_point import AccessPointSnapshot
from wifi_steer.network.in_memory_client import InMemoryNetworkManager
from wifi_steer.network.registry import AccessPointRegistry

DEVICE = "/org/freedesktop/NetworkManager/Devices/3"
OTHER_DEVICE = "/org/freedesktop/NetworkManager/Devices/4"


def ap_path(n: int) -> str:
    """Build an access point object path."""
    return f"/org/freedesktop/NetworkManager/AccessPoint/{n}"


def wait_for(condition: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll a condition until it holds or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


class EventRecorder:
    """Collects registry events in the order they were emitted."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, str, AccessPointSnapshot]] = []
        self.summaries: List[str] = []

    def added(self, device_path: str, snapshot: AccessPointSnapshot) -> None:
        self.events.append(("added", device_path, snapshot))

    def removed(self, device_path: str, snapshot: AccessPointSnapshot) -> None:
        self.events.append(("removed", device_path, snapshot))

    def changed(self, device_path: str, snapshot: AccessPointSnapshot) -> None:
        self.events.append(("changed", device_path, snapshot))

    def summary(self, summary: str) -> None:
        self.summaries.append(summary)

    def kinds(self) -> List[Tuple[str, str]]:
        """Get (event kind, access point path) pairs."""
        return [(kind, snapshot.path) for kind, _, snapshot in self.events]

    def clear(self) -> None:
        self.events.clear()
        self.summaries.clear()


@pytest.fixture
def nm() -> InMemoryNetworkManager:
    """Provide an in-memory network-management service with one wireless device.

    Returns:
        InMemoryNetworkManager instance
    """
    client = InMemoryNetworkManager()
    client.add_device(DEVICE)
    return client


@pytest.fixture
def recorder() -> EventRecorder:
    """Provide an empty event recorder."""
    return EventRecorder()


@pytest.fixture
def registry(nm: InMemoryNetworkManager, recorder: EventRecorder) -> AccessPointRegistry:
    """Provide a registry wired to the recorder.

    Returns:
        AccessPointRegistry backed by the in-memory service
    """
    return AccessPointRegistry(
        nm,
        on_access_point_added=recorder.added,
        on_access_point_removed=recorder.removed,
        on_access_point_properties_changed=recorder.changed,
        on_summary_changed=recorder.summary,
    )
