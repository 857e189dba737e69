"""Abstract network-management service interface.

This module provides an abstract base class for the service that owns the
wireless devices, access points and connection profiles, allowing for
different implementations (NetworkManager over D-Bus, in-memory, etc.).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

WIRELESS_SETTING = "802-11-wireless"

Settings = Dict[str, Dict[str, Any]]


class ActiveConnectionState(IntEnum):
    """NMActiveConnectionState values."""

    UNKNOWN = 0
    ACTIVATING = 1
    ACTIVATED = 2
    DEACTIVATING = 3
    DEACTIVATED = 4


@dataclass(frozen=True)
class AccessPointProperties:
    """Raw properties of one access point as reported by the service."""

    ssid: bytes
    flags: int
    wpa_flags: int
    rsn_flags: int
    strength: int  # 0-255
    frequency: int  # MHz


@dataclass(frozen=True)
class ActiveConnectionInfo:
    """An active connection and the profile it was activated from."""

    path: str
    connection_path: str
    uuid: str
    conn_type: str
    state: ActiveConnectionState
    devices: Tuple[str, ...] = ()


class NetworkManagerClient(ABC):
    """Abstract base class for network-management service clients.

    Implementations raise NetworkManagerError when a call fails, and report
    access point and device changes through the callbacks set with
    set_callbacks().
    """

    # pylint: disable=too-many-arguments,too-many-positional-arguments
    def __init__(
        self,
        on_access_point_added: Optional[Callable[[str, str], None]] = None,
        on_access_point_removed: Optional[Callable[[str, str], None]] = None,
        on_access_point_properties_changed: Optional[Callable[[str, Dict[str, Any]], None]] = None,
        on_device_added: Optional[Callable[[str], None]] = None,
        on_device_removed: Optional[Callable[[str], None]] = None,
    ) -> None:
        """Initialize the client.

        Args:
            on_access_point_added: Callback (device_path, ap_path) when an AP appears
            on_access_point_removed: Callback (device_path, ap_path) when an AP vanishes
            on_access_point_properties_changed: Callback (ap_path, changed) on AP updates
            on_device_added: Callback (device_path) when a wireless device appears
            on_device_removed: Callback (device_path) when a wireless device goes away
        """
        self._on_access_point_added = on_access_point_added
        self._on_access_point_removed = on_access_point_removed
        self._on_access_point_properties_changed = on_access_point_properties_changed
        self._on_device_added = on_device_added
        self._on_device_removed = on_device_removed

    # pylint: disable=too-many-arguments,too-many-positional-arguments
    def set_callbacks(
        self,
        on_access_point_added: Optional[Callable[[str, str], None]] = None,
        on_access_point_removed: Optional[Callable[[str, str], None]] = None,
        on_access_point_properties_changed: Optional[Callable[[str, Dict[str, Any]], None]] = None,
        on_device_added: Optional[Callable[[str], None]] = None,
        on_device_removed: Optional[Callable[[str], None]] = None,
    ) -> None:
        """Set callbacks for access point and device notifications.

        Args:
            on_access_point_added: Callback (device_path, ap_path) when an AP appears
            on_access_point_removed: Callback (device_path, ap_path) when an AP vanishes
            on_access_point_properties_changed: Callback (ap_path, changed) on AP updates
            on_device_added: Callback (device_path) when a wireless device appears
            on_device_removed: Callback (device_path) when a wireless device goes away
        """
        if on_access_point_added is not None:
            self._on_access_point_added = on_access_point_added
        if on_access_point_removed is not None:
            self._on_access_point_removed = on_access_point_removed
        if on_access_point_properties_changed is not None:
            self._on_access_point_properties_changed = on_access_point_properties_changed
        if on_device_added is not None:
            self._on_device_added = on_device_added
        if on_device_removed is not None:
            self._on_device_removed = on_device_removed

    def start(self) -> None:
        """Start delivering notifications."""

    def stop(self) -> None:
        """Stop delivering notifications and release resources."""

    @abstractmethod
    def get_wireless_devices(self) -> List[str]:
        """Get the object paths of all wireless devices."""

    @abstractmethod
    def get_device_access_points(self, device_path: str) -> List[str]:
        """Get the access points currently visible to a wireless device."""

    @abstractmethod
    def get_access_point(self, ap_path: str) -> AccessPointProperties:
        """Fetch the live properties of an access point.

        Args:
            ap_path: Access point object path

        Returns:
            Current access point properties
        """

    def release_access_point(self, ap_path: str) -> None:
        """Release any resources held for an access point handle.

        Args:
            ap_path: Access point object path
        """

    @abstractmethod
    def get_active_access_point(self, device_path: str) -> Optional[str]:
        """Get the access point a wireless device is associated with, if any."""

    @abstractmethod
    def get_device_active_connection(self, device_path: str) -> Optional[ActiveConnectionInfo]:
        """Get the active connection of a device, if any."""

    @abstractmethod
    def get_active_connections(self) -> List[ActiveConnectionInfo]:
        """Get all active connections."""

    @abstractmethod
    def get_connection_by_uuid(self, uuid: str) -> str:
        """Resolve a profile uuid to its settings object path."""

    @abstractmethod
    def get_connection_settings(self, connection_path: str) -> Settings:
        """Get the settings of a stored profile."""

    @abstractmethod
    def update_connection(self, connection_path: str, settings: Settings) -> None:
        """Replace and persist the settings of a stored profile."""

    @abstractmethod
    def activate_connection(self, connection_path: str, device_path: str) -> str:
        """Activate a stored profile on a device.

        Returns:
            Active connection object path
        """

    @abstractmethod
    def add_and_activate_connection(self, settings: Settings, device_path: str) -> str:
        """Create a profile and activate it on a device in one step.

        Returns:
            Active connection object path
        """

    @abstractmethod
    def request_scan(self, device_path: str) -> None:
        """Ask a wireless device to rescan."""

    def get_activated_ssids(self, device_path: str) -> Set[str]:
        """Get the SSIDs of wireless connections active on a device.

        Args:
            device_path: Wireless device object path

        Returns:
            Set of decoded SSIDs
        """
        ssids: Set[str] = set()
        for active in self.get_active_connections():
            if active.conn_type != WIRELESS_SETTING or device_path not in active.devices:
                continue
            settings = self.get_connection_settings(active.connection_path)
            ssid = settings.get(WIRELESS_SETTING, {}).get("ssid", b"")
            ssids.add(decode_ssid(ssid))
        return ssids


def decode_ssid(ssid: Any) -> str:
    """Decode raw SSID bytes to text.

    Args:
        ssid: Raw SSID as bytes or a sequence of ints

    Returns:
        Decoded SSID, invalid UTF-8 replaced
    """
    if isinstance(ssid, str):
        return ssid
    return bytes(ssid).decode("utf-8", "replace")
