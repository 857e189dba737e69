"""In-memory network-management client for testing.

This module provides a simulated network-management service that keeps
devices, access points and connection profiles in memory, allowing the
access point model and band steering to run without NetworkManager.
"""

import copy
import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set, Tuple

from wifi_steer.network.errors import NetworkManagerError
from wifi_steer.network.nm_client import (
    WIRELESS_SETTING,
    AccessPointProperties,
    ActiveConnectionInfo,
    ActiveConnectionState,
    NetworkManagerClient,
    Settings,
)

logger = logging.getLogger(__name__)

SETTINGS_PREFIX = "/org/freedesktop/NetworkManager/Settings/"
ACTIVE_PREFIX = "/org/freedesktop/NetworkManager/ActiveConnection/"

_BAND_RANGES = {"a": (4915, 5825), "bg": (2412, 2484)}

_PROPERTY_NAMES = {
    "ssid": "Ssid",
    "flags": "Flags",
    "wpa_flags": "WpaFlags",
    "rsn_flags": "RsnFlags",
    "strength": "Strength",
    "frequency": "Frequency",
}


@dataclass
class _Device:
    """State of one simulated wireless device."""

    access_points: List[str] = field(default_factory=list)
    active_access_point: Optional[str] = None
    active_connection: Optional[str] = None


class InMemoryNetworkManager(NetworkManagerClient):  # pylint: disable=too-many-instance-attributes
    """In-memory network-management service for testing.

    Activation picks the strongest access point of the profile's SSID,
    honouring the profile's band restriction, and completes immediately
    with the configured activation state.
    """

    def __init__(self, *, activation_state: ActiveConnectionState = ActiveConnectionState.ACTIVATED) -> None:
        """Initialize the in-memory client.

        Args:
            activation_state: State new active connections are created in
        """
        super().__init__()
        self.activation_state = activation_state
        self._devices: Dict[str, _Device] = {}
        self._access_points: Dict[str, AccessPointProperties] = {}
        self._connections: Dict[str, Settings] = {}
        self._active: Dict[str, ActiveConnectionInfo] = {}
        self._failing: Set[str] = set()
        self._next_id = 0
        self._lock = threading.RLock()

        self.activations: List[Tuple[str, str]] = []
        self.updates: List[Tuple[str, Settings]] = []
        self.scan_requests: List[str] = []
        self.released: List[str] = []

    # Failure injection

    def fail(self, method: str, failing: bool = True) -> None:
        """Make a client method raise NetworkManagerError (for testing).

        Args:
            method: Name of the method, e.g. "activate_connection"
            failing: False to make it succeed again
        """
        with self._lock:
            if failing:
                self._failing.add(method)
            else:
                self._failing.discard(method)

    def _check(self, method: str) -> None:
        if method in self._failing:
            raise NetworkManagerError(f"{method} failed (simulated)")

    # Simulation

    def add_device(self, device_path: str) -> None:
        """Simulate a wireless device appearing."""
        with self._lock:
            self._devices.setdefault(device_path, _Device())

        if self._on_device_added:
            self._on_device_added(device_path)

    def remove_device(self, device_path: str) -> None:
        """Simulate a wireless device going away."""
        with self._lock:
            device = self._devices.pop(device_path, None)
            if device is None:
                return
            for ap_path in device.access_points:
                self._access_points.pop(ap_path, None)

        if self._on_device_removed:
            self._on_device_removed(device_path)

    # pylint: disable=too-many-arguments
    def add_access_point(
        self,
        device_path: str,
        ap_path: str,
        ssid: str,
        *,
        strength: int = 50,
        frequency: int = 2437,
        flags: int = 0,
        wpa_flags: int = 0,
        rsn_flags: int = 0,
        notify: bool = True,
    ) -> None:
        """Simulate an access point appearing in a device's scan results.

        Args:
            device_path: Wireless device object path (created if missing)
            ap_path: Access point object path
            ssid: Network name
            strength: Signal strength 0-255
            frequency: Frequency in MHz
            flags: NM80211ApFlags
            wpa_flags: WPA security flags
            rsn_flags: RSN security flags
            notify: False to add silently (for initial device state)
        """
        with self._lock:
            device = self._devices.setdefault(device_path, _Device())
            self._access_points[ap_path] = AccessPointProperties(
                ssid=ssid.encode("utf-8"),
                flags=flags,
                wpa_flags=wpa_flags,
                rsn_flags=rsn_flags,
                strength=strength,
                frequency=frequency,
            )
            if ap_path not in device.access_points:
                device.access_points.append(ap_path)

        if notify and self._on_access_point_added:
            self._on_access_point_added(device_path, ap_path)

    def remove_access_point(self, device_path: str, ap_path: str) -> None:
        """Simulate an access point vanishing from a device's scan results."""
        with self._lock:
            device = self._devices.get(device_path)
            if device is not None and ap_path in device.access_points:
                device.access_points.remove(ap_path)
            self._access_points.pop(ap_path, None)

        if self._on_access_point_removed:
            self._on_access_point_removed(device_path, ap_path)

    def update_access_point(self, ap_path: str, **changes: Any) -> None:
        """Simulate access point properties changing.

        Args:
            ap_path: Access point object path
            **changes: New values for ssid, flags, wpa_flags, rsn_flags, strength, frequency
        """
        if "ssid" in changes and isinstance(changes["ssid"], str):
            changes["ssid"] = changes["ssid"].encode("utf-8")

        with self._lock:
            self._access_points[ap_path] = replace(self._access_points[ap_path], **changes)

        if self._on_access_point_properties_changed:
            self._on_access_point_properties_changed(
                ap_path, {_PROPERTY_NAMES[name]: value for name, value in changes.items()}
            )

    def add_connection(self, settings: Settings) -> str:
        """Store a profile.

        Args:
            settings: Connection settings

        Returns:
            Settings object path of the new profile
        """
        with self._lock:
            self._next_id += 1
            connection_path = f"{SETTINGS_PREFIX}{self._next_id}"
            self._connections[connection_path] = copy.deepcopy(settings)
            return connection_path

    def connect(
        self,
        device_path: str,
        ap_path: str,
        connection_path: str,
        state: Optional[ActiveConnectionState] = None,
    ) -> str:
        """Put a device into a connected state directly (for testing).

        Returns:
            Active connection object path
        """
        with self._lock:
            return self._set_active(device_path, ap_path, connection_path, state or self.activation_state)

    def get_profile(self, connection_path: str) -> Settings:
        """Get a copy of a stored profile (for testing)."""
        with self._lock:
            return copy.deepcopy(self._connections[connection_path])

    # NetworkManagerClient

    def get_wireless_devices(self) -> List[str]:
        with self._lock:
            self._check("get_wireless_devices")
            return list(self._devices)

    def get_device_access_points(self, device_path: str) -> List[str]:
        with self._lock:
            self._check("get_device_access_points")
            return list(self._device(device_path).access_points)

    def get_access_point(self, ap_path: str) -> AccessPointProperties:
        with self._lock:
            self._check("get_access_point")
            props = self._access_points.get(ap_path)
            if props is None:
                raise NetworkManagerError(f"No such access point: {ap_path}")
            return props

    def release_access_point(self, ap_path: str) -> None:
        with self._lock:
            self.released.append(ap_path)

    def get_active_access_point(self, device_path: str) -> Optional[str]:
        with self._lock:
            return self._device(device_path).active_access_point

    def get_device_active_connection(self, device_path: str) -> Optional[ActiveConnectionInfo]:
        with self._lock:
            self._check("get_device_active_connection")
            active_path = self._device(device_path).active_connection
            return self._active.get(active_path) if active_path else None

    def get_active_connections(self) -> List[ActiveConnectionInfo]:
        with self._lock:
            self._check("get_active_connections")
            return list(self._active.values())

    def get_connection_by_uuid(self, uuid: str) -> str:
        with self._lock:
            self._check("get_connection_by_uuid")
            for connection_path, settings in self._connections.items():
                if settings.get("connection", {}).get("uuid") == uuid:
                    return connection_path
            raise NetworkManagerError(f"No connection with uuid {uuid}")

    def get_connection_settings(self, connection_path: str) -> Settings:
        with self._lock:
            self._check("get_connection_settings")
            if connection_path not in self._connections:
                raise NetworkManagerError(f"No such connection: {connection_path}")
            return copy.deepcopy(self._connections[connection_path])

    def update_connection(self, connection_path: str, settings: Settings) -> None:
        with self._lock:
            self._check("update_connection")
            if connection_path not in self._connections:
                raise NetworkManagerError(f"No such connection: {connection_path}")
            self._connections[connection_path] = copy.deepcopy(settings)
            self.updates.append((connection_path, copy.deepcopy(settings)))

    def activate_connection(self, connection_path: str, device_path: str) -> str:
        with self._lock:
            self._check("activate_connection")
            if connection_path not in self._connections:
                raise NetworkManagerError(f"No such connection: {connection_path}")
            ap_path = self._pick_access_point(device_path, self._connections[connection_path])
            self.activations.append((connection_path, device_path))
            return self._set_active(device_path, ap_path, connection_path, self.activation_state)

    def add_and_activate_connection(self, settings: Settings, device_path: str) -> str:
        with self._lock:
            self._check("add_and_activate_connection")
            connection_path = self.add_connection(settings)
            return self.activate_connection(connection_path, device_path)

    def request_scan(self, device_path: str) -> None:
        with self._lock:
            self._check("request_scan")
            self._device(device_path)
            self.scan_requests.append(device_path)

    # Internals

    def _device(self, device_path: str) -> _Device:
        device = self._devices.get(device_path)
        if device is None:
            raise NetworkManagerError(f"No such device: {device_path}")
        return device

    def _pick_access_point(self, device_path: str, settings: Settings) -> Optional[str]:
        wireless = settings.get(WIRELESS_SETTING, {})
        ssid = bytes(wireless.get("ssid", b""))
        band_range = _BAND_RANGES.get(wireless.get("band", ""))

        best: Optional[str] = None
        for ap_path in self._device(device_path).access_points:
            props = self._access_points[ap_path]
            if props.ssid != ssid:
                continue
            if band_range and not band_range[0] <= props.frequency <= band_range[1]:
                continue
            if best is None or props.strength > self._access_points[best].strength:
                best = ap_path
        if best is None:
            raise NetworkManagerError(f"No access point for {ssid!r} on {device_path}")
        return best

    def _set_active(
        self,
        device_path: str,
        ap_path: Optional[str],
        connection_path: str,
        state: ActiveConnectionState,
    ) -> str:
        device = self._device(device_path)
        if device.active_connection:
            self._active.pop(device.active_connection, None)

        self._next_id += 1
        active_path = f"{ACTIVE_PREFIX}{self._next_id}"
        connection = self._connections[connection_path]["connection"]
        self._active[active_path] = ActiveConnectionInfo(
            path=active_path,
            connection_path=connection_path,
            uuid=connection.get("uuid", ""),
            conn_type=connection.get("type", WIRELESS_SETTING),
            state=state,
            devices=(device_path,),
        )
        device.active_access_point = ap_path
        device.active_connection = active_path
        logger.info("Activated %s on %s via %s", connection_path, device_path, ap_path)
        return active_path
