"""Band steering of active wireless connections.

This module provides the BandSteeringEngine class which periodically, or on
a manual request, moves an activated wireless connection to an access point
of the same network on a different band when that one is clearly better.
"""

import copy
import logging
import threading
from enum import Enum
from typing import List, Optional

from wifi_steer.network.access_point import AccessPointSnapshot
from wifi_steer.network.activator import ConnectionActivator
from wifi_steer.network.connection_settings import get_uuid, set_wireless_band
from wifi_steer.network.errors import InvalidBandError, WifiSteerError
from wifi_steer.network.nm_client import ActiveConnectionState, NetworkManagerClient, decode_ssid
from wifi_steer.network.registry import AccessPointRegistry

logger = logging.getLogger(__name__)

FREQUENCY_5G_LOWER = 4915
FREQUENCY_5G_UPPER = 5825
FREQUENCY_2G_LOWER = 2412
FREQUENCY_2G_UPPER = 2484

DEFAULT_STRENGTH_THRESHOLD = 65
DEFAULT_MIN_STRENGTH_GAIN = 20
DEFAULT_SCAN_DEBOUNCE = 10.0


class Band(str, Enum):
    """Wireless band restriction of a profile ("" means automatic)."""

    UNSET = ""
    A = "a"  # 5 GHz
    BG = "bg"  # 2.4 GHz


def is_5ghz(frequency: int) -> bool:
    """Check if a frequency (MHz) lies in the 5 GHz band."""
    return FREQUENCY_5G_LOWER <= frequency <= FREQUENCY_5G_UPPER


def is_2ghz(frequency: int) -> bool:
    """Check if a frequency (MHz) lies in the 2.4 GHz band."""
    return FREQUENCY_2G_LOWER <= frequency <= FREQUENCY_2G_UPPER


def band_for_frequency(frequency: int) -> Optional[Band]:
    """Get the band of a frequency.

    Args:
        frequency: Frequency in MHz

    Returns:
        Band.A, Band.BG, or None if the frequency is in neither range
    """
    if is_5ghz(frequency):
        return Band.A
    if is_2ghz(frequency):
        return Band.BG
    return None


def parse_band(token: str) -> Band:
    """Validate a manual band token.

    Args:
        token: "a" or "bg"

    Returns:
        The requested band

    Raises:
        InvalidBandError: If the token is not a band
    """
    if token not in (Band.A.value, Band.BG.value):
        raise InvalidBandError(f"Invalid band {token!r}, expected 'a' or 'bg'")
    return Band(token)


def find_candidate(
    ssid: str, access_points: List[AccessPointSnapshot], band: Band
) -> Optional[AccessPointSnapshot]:
    """Pick the access point of a network to steer to.

    Args:
        ssid: Network name of the active connection
        access_points: Visible access points of the device
        band: Requested band, or Band.UNSET for the strongest AP

    Returns:
        The chosen access point, or None
    """
    same_network = [ap for ap in access_points if ap.ssid == ssid]

    if band is Band.A:
        return next((ap for ap in same_network if is_5ghz(ap.frequency)), None)
    if band is Band.BG:
        return next((ap for ap in same_network if is_2ghz(ap.frequency)), None)

    best: Optional[AccessPointSnapshot] = None
    for ap in same_network:
        if ap.strength > (best.strength if best else 0):
            best = ap
    return best


class BandSteeringEngine:  # pylint: disable=too-many-instance-attributes
    """Debounced steering loop over all wireless devices.

    Passes never overlap: a trigger that arrives while a pass is running
    re-arms the debounce timer instead of starting a second pass.
    """

    # pylint: disable=too-many-arguments,too-many-positional-arguments
    def __init__(
        self,
        client: NetworkManagerClient,
        registry: AccessPointRegistry,
        activator: ConnectionActivator,
        strength_threshold: int = DEFAULT_STRENGTH_THRESHOLD,
        min_strength_gain: int = DEFAULT_MIN_STRENGTH_GAIN,
        scan_debounce: float = DEFAULT_SCAN_DEBOUNCE,
    ) -> None:
        """Initialize the steering engine.

        Args:
            client: Network-management service client
            registry: Access point registry to pick candidates from
            activator: Activator used to move the connection
            strength_threshold: Strength above which a 5 GHz link is left alone
            min_strength_gain: Strength gain required for automatic steering
            scan_debounce: Seconds to wait after scan results before a pass
        """
        self._client = client
        self._registry = registry
        self._activator = activator
        self._strength_threshold = strength_threshold
        self._min_strength_gain = min_strength_gain
        self._scan_debounce = scan_debounce

        self._pending_band = Band.UNSET
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._pass_lock = threading.Lock()
        self._running = True

    @property
    def pending_band(self) -> Band:
        """Band requested manually and not yet consumed by a pass."""
        with self._lock:
            return self._pending_band

    def request_band(self, token: str) -> None:
        """Request a manual switch of every active connection to a band.

        The band is stored before a scan is requested on every wireless
        device, and a debounced pass is armed so the request is applied even
        when the scan reports no new access points.

        Args:
            token: "a" or "bg"

        Raises:
            InvalidBandError: If the token is not a band
            NetworkManagerError: If a scan cannot be requested
        """
        band = parse_band(token)
        with self._lock:
            previous = self._pending_band
            self._pending_band = band

        try:
            for device_path in self._client.get_wireless_devices():
                self._client.request_scan(device_path)
        except WifiSteerError:
            with self._lock:
                if self._pending_band is band:
                    self._pending_band = previous
            raise

        logger.info("Manual band change to %s requested", band.value)
        self.schedule()

    def schedule(self) -> None:
        """Arm the debounce timer, replacing any pending one."""
        with self._lock:
            if not self._running:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._scan_debounce, self._on_timer)
            self._timer.daemon = True
            self._timer.start()

    def shutdown(self) -> None:
        """Cancel any pending pass and wait for a running one to finish."""
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

        with self._pass_lock:
            logger.debug("Band steering stopped")

    def _on_timer(self) -> None:
        """Run a pass from the debounce timer."""
        with self._lock:
            if self._timer is threading.current_thread():
                self._timer = None
        self.run_pass()

    def run_pass(self) -> bool:
        """Run one steering pass over all wireless devices.

        Returns:
            False if another pass was still running and this one was deferred
        """
        if not self._pass_lock.acquire(blocking=False):  # pylint: disable=consider-using-with
            logger.debug("Steering pass already running, deferring")
            self.schedule()
            return False

        try:
            with self._lock:
                if not self._running:
                    return True
                band = self._pending_band
                self._pending_band = Band.UNSET

            try:
                devices = self._client.get_wireless_devices()
            except WifiSteerError as e:
                logger.error("Failed to list wireless devices: %s", e)
                return True

            for device_path in devices:
                try:
                    self.steer_device(device_path, band)
                except Exception as e:
                    logger.error("Band steering failed for %s: %s", device_path, e)
            return True
        finally:
            self._pass_lock.release()

    def steer_device(self, device_path: str, band: Band = Band.UNSET) -> bool:
        """Steer one device's active connection if a better AP exists.

        Args:
            device_path: Wireless device object path
            band: Manually requested band, or Band.UNSET for automatic

        Returns:
            True if the connection was re-activated on another access point
        """
        ap_path = self._client.get_active_access_point(device_path)
        if not ap_path:
            return False
        current = self._client.get_access_point(ap_path)

        active = self._client.get_device_active_connection(device_path)
        if active is None:
            return False
        if active.state != ActiveConnectionState.ACTIVATED:
            logger.debug("Connection on %s is not activated yet, not steering", device_path)
            return False

        if (
            band is Band.UNSET
            and current.strength > self._strength_threshold
            and is_5ghz(current.frequency)
        ):
            return False

        candidate = find_candidate(decode_ssid(current.ssid), self._registry.list(device_path), band)
        if candidate is None:
            logger.debug("No access point to steer %s to", device_path)
            return False
        if candidate.path == ap_path:
            logger.debug("%s is already on the best access point", device_path)
            return False

        target = band
        if band is Band.UNSET:
            if candidate.strength < current.strength + self._min_strength_gain:
                return False
            target = Band.A if is_5ghz(candidate.frequency) else Band.BG

        if target is band_for_frequency(current.frequency):
            logger.debug("%s is already on band %s", device_path, target.value)
            return False

        logger.info(
            "Steering %s from %s (%d MHz, strength %d) to %s (%d MHz, strength %d)",
            device_path,
            ap_path,
            current.frequency,
            current.strength,
            candidate.path,
            candidate.frequency,
            candidate.strength,
        )

        settings = copy.deepcopy(self._client.get_connection_settings(active.connection_path))
        set_wireless_band(settings, target.value)
        self._client.update_connection(active.connection_path, settings)

        uuid = get_uuid(settings) or active.uuid
        self._activator.activate(uuid, candidate.path, device_path)
        return True
