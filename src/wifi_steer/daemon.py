"""Wireless daemon context.

This module provides the WirelessDaemon class which owns the access point
registry, the connection activator and the band steering engine, wires the
network-management client's notifications into them, and exposes the
public operations used by the web interface.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from wifi_steer.network.access_point import DEFAULT_IGNORE_STRENGTH
from wifi_steer.network.activator import ConnectionActivator
from wifi_steer.network.band_steering import (
    DEFAULT_MIN_STRENGTH_GAIN,
    DEFAULT_SCAN_DEBOUNCE,
    DEFAULT_STRENGTH_THRESHOLD,
    Band,
    BandSteeringEngine,
)
from wifi_steer.network.errors import NetworkManagerError, WifiSteerError
from wifi_steer.network.nm_client import NetworkManagerClient
from wifi_steer.network.registry import AccessPointCallback, AccessPointRegistry

logger = logging.getLogger(__name__)


class WirelessDaemon:  # pylint: disable=too-many-instance-attributes
    """Process-wide wireless access point model and band steering.

    Example:
        daemon = WirelessDaemon(InMemoryNetworkManager())
        daemon.set_callbacks(on_access_point_added=print)
        daemon.start()
        ...
        daemon.stop()
    """

    # pylint: disable=too-many-arguments,too-many-positional-arguments
    def __init__(
        self,
        client: NetworkManagerClient,
        steering_enabled: bool = True,
        strength_threshold: int = DEFAULT_STRENGTH_THRESHOLD,
        min_strength_gain: int = DEFAULT_MIN_STRENGTH_GAIN,
        scan_debounce: float = DEFAULT_SCAN_DEBOUNCE,
        ignore_strength: int = DEFAULT_IGNORE_STRENGTH,
    ) -> None:
        """Initialize the daemon.

        Args:
            client: Network-management service client
            steering_enabled: Whether scan results trigger automatic steering
            strength_threshold: Strength above which a 5 GHz link is left alone
            min_strength_gain: Strength gain required for automatic steering
            scan_debounce: Seconds to wait after scan results before steering
            ignore_strength: Strength below which inactive APs are hidden
        """
        self._client = client
        self.steering_enabled = steering_enabled
        self.registry = AccessPointRegistry(client, ignore_strength=ignore_strength)
        self.activator = ConnectionActivator(client)
        self.engine = BandSteeringEngine(
            client,
            self.registry,
            self.activator,
            strength_threshold=strength_threshold,
            min_strength_gain=min_strength_gain,
            scan_debounce=scan_debounce,
        )
        self._settings: Dict[str, Any] = {
            "enabled": steering_enabled,
            "strength_threshold": strength_threshold,
            "min_strength_gain": min_strength_gain,
            "scan_debounce": scan_debounce,
            "ignore_strength_below": ignore_strength,
        }
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the daemon has been started."""
        return self._running

    @property
    def steering_settings(self) -> Dict[str, Any]:
        """Steering parameters the daemon was created with."""
        return dict(self._settings)

    @property
    def pending_band(self) -> Band:
        """Manually requested band not yet applied."""
        return self.engine.pending_band

    @property
    def wireless_access_points(self) -> str:
        """JSON object mapping device paths to their visible access points."""
        return self.registry.wireless_access_points

    def set_callbacks(
        self,
        on_access_point_added: Optional[AccessPointCallback] = None,
        on_access_point_removed: Optional[AccessPointCallback] = None,
        on_access_point_properties_changed: Optional[AccessPointCallback] = None,
        on_summary_changed: Optional[Callable[[str], None]] = None,
    ) -> None:
        """Set listeners for access point events.

        Args:
            on_access_point_added: Callback (device_path, snapshot) when an AP becomes visible
            on_access_point_removed: Callback (device_path, snapshot) when an AP stops being visible
            on_access_point_properties_changed: Callback (device_path, snapshot) on updates
            on_summary_changed: Callback with the new summary JSON
        """
        self.registry.set_callbacks(
            on_access_point_added=on_access_point_added,
            on_access_point_removed=on_access_point_removed,
            on_access_point_properties_changed=on_access_point_properties_changed,
            on_summary_changed=on_summary_changed,
        )

    def start(self) -> None:
        """Subscribe to notifications and load the current access points.

        Raises:
            NetworkManagerError: If the service cannot be reached
        """
        if self._running:
            logger.warning("Wireless daemon already running")
            return

        self._client.set_callbacks(
            on_access_point_added=self._handle_access_point_added,
            on_access_point_removed=self._handle_access_point_removed,
            on_access_point_properties_changed=self._handle_access_point_properties_changed,
            on_device_added=self._handle_device_added,
            on_device_removed=self._handle_device_removed,
        )
        self._client.start()
        self._running = True

        for device_path in self._client.get_wireless_devices():
            self._init_device(device_path)

        logger.info(
            "Wireless daemon started (%d devices, steering %s)",
            len(self.registry.devices()),
            "enabled" if self.steering_enabled else "disabled",
        )

    def stop(self) -> None:
        """Cancel steering, stop notifications and drop all access points."""
        if not self._running:
            return
        self._running = False

        self.engine.shutdown()
        try:
            self._client.stop()
        except WifiSteerError as e:
            logger.warning("Error stopping network client: %s", e)
        self.registry.clear()
        logger.info("Wireless daemon stopped")

    def get_devices(self) -> List[str]:
        """Get the wireless devices that have access points loaded."""
        return self.registry.devices()

    def get_access_points(self, device_path: str) -> str:
        """Get the visible access points of a device.

        Args:
            device_path: Wireless device object path

        Returns:
            JSON array of access points in insertion order ("[]" for unknown devices)
        """
        return json.dumps([snapshot.to_dict() for snapshot in self.registry.list(device_path)])

    def activate_access_point(self, uuid: str, ap_path: str, device_path: str) -> str:
        """Connect a device to an access point.

        Args:
            uuid: Uuid of an existing profile, or "" to create one
            ap_path: Access point object path
            device_path: Wireless device object path

        Returns:
            Active connection object path

        Raises:
            NeedUserEditError: If the access point now needs EAP credentials
            NetworkManagerError: If the service rejects the activation
        """
        try:
            return self.activator.activate(uuid, ap_path, device_path)
        except WifiSteerError as e:
            logger.warning("Failed to activate access point %s: %s", ap_path, e)
            raise

    def change_ap_band(self, band: str) -> None:
        """Move every active wireless connection to a band after the next scan.

        Args:
            band: "a" or "bg"

        Raises:
            InvalidBandError: If the band is not "a" or "bg"
            NetworkManagerError: If a scan cannot be requested
        """
        self.engine.request_band(band)

    # Client notifications

    def _init_device(self, device_path: str) -> None:
        try:
            ap_paths = self._client.get_device_access_points(device_path)
        except NetworkManagerError as e:
            logger.warning("Failed to list access points of %s: %s", device_path, e)
            return
        self.registry.init_device(device_path, ap_paths)
        self._on_scan_results()

    def _on_scan_results(self) -> None:
        if self.steering_enabled or self.engine.pending_band is not Band.UNSET:
            self.engine.schedule()

    def _handle_access_point_added(self, device_path: str, ap_path: str) -> None:
        self.registry.add_or_update(device_path, ap_path)
        self._on_scan_results()

    def _handle_access_point_removed(self, _device_path: str, ap_path: str) -> None:
        self.registry.remove(ap_path)
        self._on_scan_results()

    def _handle_access_point_properties_changed(self, ap_path: str, changed: Dict[str, Any]) -> None:
        self.registry.on_properties_changed(ap_path, changed)
        self._on_scan_results()

    def _handle_device_added(self, device_path: str) -> None:
        logger.info("Wireless device added: %s", device_path)
        self._init_device(device_path)

    def _handle_device_removed(self, device_path: str) -> None:
        logger.info("Wireless device removed: %s", device_path)
        self.registry.remove_device(device_path)
