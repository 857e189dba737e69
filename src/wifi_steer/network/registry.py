"""Registry of access points per wireless device.

This module provides the AccessPointRegistry class which keeps one
AccessPoint per access point object path, grouped by the wireless device
that sees it, and announces visible access points to listeners.
"""

import json
import logging
import threading
from typing import AbstractSet, Callable, Dict, Iterable, List, Optional, Tuple

from wifi_steer.network.access_point import (
    DEFAULT_IGNORE_STRENGTH,
    AccessPoint,
    AccessPointSnapshot,
)
from wifi_steer.network.errors import HiddenAccessPointError, NetworkManagerError
from wifi_steer.network.nm_client import AccessPointProperties, NetworkManagerClient

logger = logging.getLogger(__name__)

AccessPointCallback = Callable[[str, AccessPointSnapshot], None]


class AccessPointRegistry:  # pylint: disable=too-many-instance-attributes
    """Thread-safe collection of access points keyed by device path.

    All mutation and listing happens under a single re-entrant lock.
    Properties are fetched from the service before the lock is taken.
    Events are emitted while the lock is held, so for any access point
    listeners always see added, then changed zero or more times, then
    removed. Listeners may call list() but must not block.
    """

    # pylint: disable=too-many-arguments,too-many-positional-arguments
    def __init__(
        self,
        client: NetworkManagerClient,
        ignore_strength: int = DEFAULT_IGNORE_STRENGTH,
        on_access_point_added: Optional[AccessPointCallback] = None,
        on_access_point_removed: Optional[AccessPointCallback] = None,
        on_access_point_properties_changed: Optional[AccessPointCallback] = None,
        on_summary_changed: Optional[Callable[[str], None]] = None,
    ) -> None:
        """Initialize the registry.

        Args:
            client: Network-management service client
            ignore_strength: Strength below which inactive APs are hidden
            on_access_point_added: Callback (device_path, snapshot) when an AP becomes visible
            on_access_point_removed: Callback (device_path, snapshot) when an AP stops being visible
            on_access_point_properties_changed: Callback (device_path, snapshot) on updates
            on_summary_changed: Callback with the new wireless access points summary JSON
        """
        self._client = client
        self._ignore_strength = ignore_strength
        self._on_access_point_added = on_access_point_added
        self._on_access_point_removed = on_access_point_removed
        self._on_access_point_properties_changed = on_access_point_properties_changed
        self._on_summary_changed = on_summary_changed

        self._access_points: Dict[str, List[AccessPoint]] = {}
        self._summary = "{}"
        self._lock = threading.RLock()

    def set_callbacks(
        self,
        on_access_point_added: Optional[AccessPointCallback] = None,
        on_access_point_removed: Optional[AccessPointCallback] = None,
        on_access_point_properties_changed: Optional[AccessPointCallback] = None,
        on_summary_changed: Optional[Callable[[str], None]] = None,
    ) -> None:
        """Set callbacks for access point events.

        Args:
            on_access_point_added: Callback when an AP becomes visible
            on_access_point_removed: Callback when an AP stops being visible
            on_access_point_properties_changed: Callback when a visible AP changes
            on_summary_changed: Callback with the new summary JSON
        """
        with self._lock:
            if on_access_point_added is not None:
                self._on_access_point_added = on_access_point_added
            if on_access_point_removed is not None:
                self._on_access_point_removed = on_access_point_removed
            if on_access_point_properties_changed is not None:
                self._on_access_point_properties_changed = on_access_point_properties_changed
            if on_summary_changed is not None:
                self._on_summary_changed = on_summary_changed

    @property
    def wireless_access_points(self) -> str:
        """JSON object mapping device paths to their visible access points."""
        with self._lock:
            return self._summary

    def devices(self) -> List[str]:
        """Get the device paths that currently have a slot.

        Returns:
            List of device paths
        """
        with self._lock:
            return list(self._access_points)

    def contains(self, ap_path: str) -> bool:
        """Check if an access point is known, visible or not.

        Args:
            ap_path: Access point object path

        Returns:
            True if the registry holds the access point
        """
        with self._lock:
            return self._find(ap_path)[0] is not None

    def list(self, device_path: str) -> List[AccessPointSnapshot]:
        """Get the visible access points of a device in insertion order.

        Args:
            device_path: Wireless device object path

        Returns:
            Snapshots of non-ignored access points
        """
        with self._lock:
            return [
                ap.snapshot()
                for ap in self._access_points.get(device_path, [])
                if not ap.should_be_ignored
            ]

    def init_device(self, device_path: str, ap_paths: Iterable[str]) -> None:
        """Populate a device slot from a full scan result.

        Any previous slot for the device is cleared first.

        Args:
            device_path: Wireless device object path
            ap_paths: Access point object paths visible to the device
        """
        built = [ap for ap in (self._build(device_path, path) for path in ap_paths) if ap is not None]

        with self._lock:
            for ap in self._access_points.pop(device_path, []):
                self._destroy(ap)

            slot: List[AccessPoint] = []
            self._access_points[device_path] = slot
            for ap in built:
                if self._find(ap.path)[0] is not None:
                    continue
                slot.append(ap)
                self._announce(ap)
            self._update_summary()

        logger.debug("Initialized %d access points for %s", len(built), device_path)

    def add_or_update(self, device_path: str, ap_path: str) -> None:
        """Add a newly appeared access point.

        Does nothing if the access point is already known under any device.

        Args:
            device_path: Wireless device object path
            ap_path: Access point object path
        """
        if self.contains(ap_path):
            return

        ap = self._build(device_path, ap_path)
        if ap is None:
            return

        with self._lock:
            if self._find(ap_path)[0] is not None:
                # Added by a concurrent notification while properties were fetched;
                # the handle belongs to the entity already stored
                return
            self._access_points.setdefault(device_path, []).append(ap)
            if self._announce(ap):
                self._update_summary()

    def remove(self, ap_path: str) -> None:
        """Remove an access point that vanished.

        Args:
            ap_path: Access point object path
        """
        with self._lock:
            device_path, index = self._find(ap_path)
            if device_path is None:
                return
            ap = self._access_points[device_path].pop(index)
            self._destroy(ap)
            self._update_summary()

    def on_properties_changed(self, ap_path: str, changed: Optional[Dict[str, object]] = None) -> None:
        """Refresh an access point after its properties changed.

        Args:
            ap_path: Access point object path
            changed: Changed properties as reported (all fields are re-fetched)
        """
        with self._lock:
            device_path, _ = self._find(ap_path)
        if device_path is None:
            return

        logger.debug("Properties changed for %s: %s", ap_path, sorted(changed or {}))
        fetched = self._fetch(device_path, ap_path)
        if fetched is None:
            return
        props, activated_ssids = fetched

        with self._lock:
            device_path, index = self._find(ap_path)
            if device_path is None:
                return
            ap = self._access_points[device_path][index]

            ignored_before = ap.should_be_ignored
            ap.update(props, activated_ssids)
            ignored_now = ap.should_be_ignored

            if ignored_now == ignored_before:
                if ignored_now:
                    logger.debug("Access point (ignored) properties changed: %r", ap)
                    return
                self._emit(self._on_access_point_properties_changed, device_path, ap.snapshot())
            elif ignored_now:
                logger.debug("Access point is now ignored: %r", ap)
                self._emit(self._on_access_point_removed, device_path, ap.snapshot())
            else:
                logger.debug("Ignored access point is now available: %r", ap)
                self._emit(self._on_access_point_added, device_path, ap.snapshot())

            self._update_summary()

    def remove_device(self, device_path: str) -> None:
        """Drop the slot of a device that went away.

        Args:
            device_path: Wireless device object path
        """
        with self._lock:
            aps = self._access_points.pop(device_path, None)
            if aps is None:
                return
            for ap in aps:
                self._destroy(ap)
            self._update_summary()

    def clear(self) -> None:
        """Remove every access point of every device."""
        with self._lock:
            for aps in self._access_points.values():
                for ap in aps:
                    self._destroy(ap)
            self._access_points = {}
            self._update_summary()

    def _find(self, ap_path: str) -> Tuple[Optional[str], int]:
        """Locate an access point by path (caller holds the lock)."""
        for device_path, aps in self._access_points.items():
            for index, ap in enumerate(aps):
                if ap.path == ap_path:
                    return device_path, index
        return None, -1

    def _fetch(
        self, device_path: str, ap_path: str
    ) -> Optional[Tuple[AccessPointProperties, AbstractSet[str]]]:
        """Fetch live properties and activated SSIDs for an access point.

        Returns:
            Tuple of properties and activated SSIDs, or None if the lookup failed
        """
        try:
            props = self._client.get_access_point(ap_path)
            activated_ssids = self._client.get_activated_ssids(device_path)
        except NetworkManagerError as e:
            logger.warning("Failed to read access point %s: %s", ap_path, e)
            return None
        return props, activated_ssids

    def _build(self, device_path: str, ap_path: str) -> Optional[AccessPoint]:
        """Create an access point entity outside the lock.

        Returns:
            The new entity, or None if it is hidden or could not be read
        """
        fetched = self._fetch(device_path, ap_path)
        if fetched is None:
            return None
        props, activated_ssids = fetched

        try:
            return AccessPoint(device_path, ap_path, props, activated_ssids, self._ignore_strength)
        except HiddenAccessPointError as e:
            logger.debug("%s", e)
            self._client.release_access_point(ap_path)
            return None

    def _announce(self, ap: AccessPoint) -> bool:
        """Emit the added event for a freshly inserted access point.

        Returns:
            True if the access point is visible
        """
        if ap.should_be_ignored:
            logger.debug("New access point is ignored: %r", ap)
            return False
        self._emit(self._on_access_point_added, ap.device_path, ap.snapshot())
        return True

    def _destroy(self, ap: AccessPoint) -> None:
        """Announce removal of a visible access point and release its handle."""
        if not ap.should_be_ignored:
            self._emit(self._on_access_point_removed, ap.device_path, ap.snapshot())
        self._client.release_access_point(ap.path)

    def _update_summary(self) -> None:
        """Recompute the summary of visible access points per device."""
        summary = json.dumps(
            {
                device_path: [ap.snapshot().to_dict() for ap in aps if not ap.should_be_ignored]
                for device_path, aps in self._access_points.items()
            },
            sort_keys=True,
        )
        if summary == self._summary:
            return
        self._summary = summary

        if self._on_summary_changed is not None:
            try:
                self._on_summary_changed(summary)
            except Exception as e:
                logger.error("Error in on_summary_changed callback: %s", e)

    @staticmethod
    def _emit(
        callback: Optional[AccessPointCallback], device_path: str, snapshot: AccessPointSnapshot
    ) -> None:
        """Invoke an access point callback, logging any error it raises."""
        if callback is None:
            return
        try:
            callback(device_path, snapshot)
        except Exception as e:
            logger.error("Error in access point callback for %s: %s", snapshot.path, e)
