"""Tests for band steering."""

import threading
import time
from unittest.mock import patch

import pytest
from conftest import DEVICE, OTHER_DEVICE, ap_path, wait_for

from wifi_steer.network.access_point import AccessPointSnapshot
from wifi_steer.network.activator import ConnectionActivator
from wifi_steer.network.band_steering import (
    Band,
    BandSteeringEngine,
    band_for_frequency,
    find_candidate,
    parse_band,
)
from wifi_steer.network.connection_settings import new_wireless_connection
from wifi_steer.network.errors import InvalidBandError, NetworkManagerError
from wifi_steer.network.in_memory_client import InMemoryNetworkManager
from wifi_steer.network.nm_client import ActiveConnectionState
from wifi_steer.network.registry import AccessPointRegistry
from wifi_steer.network.security import SecurityCategory

FREQ_2G = 2437
FREQ_5G = 5180


def make_engine(nm: InMemoryNetworkManager, registry: AccessPointRegistry, scan_debounce: float = 10.0) -> BandSteeringEngine:
    return BandSteeringEngine(nm, registry, ConnectionActivator(nm), scan_debounce=scan_debounce)


def connect_home(
    nm: InMemoryNetworkManager,
    registry: AccessPointRegistry,
    current: tuple,
    candidate: tuple,
    device: str = DEVICE,
    ssid: str = "home",
    first_ap: int = 1,
    state: ActiveConnectionState = ActiveConnectionState.ACTIVATED,
) -> str:
    """Connect a device to one AP of a network that also has a second AP.

    Args:
        current: (strength, frequency) of the connected AP
        candidate: (strength, frequency) of the other AP

    Returns:
        Settings path of the profile
    """
    nm.add_access_point(device, ap_path(first_ap), ssid, strength=current[0], frequency=current[1])
    nm.add_access_point(device, ap_path(first_ap + 1), ssid, strength=candidate[0], frequency=candidate[1])
    profile = nm.add_connection(new_wireless_connection(ssid, f"uuid-{ssid}", ssid.encode(), SecurityCategory.NONE))
    nm.connect(device, ap_path(first_ap), profile, state)
    registry.init_device(device, nm.get_device_access_points(device))
    return profile


def snapshot(path: str, ssid: str, strength: int, frequency: int) -> AccessPointSnapshot:
    return AccessPointSnapshot(DEVICE, path, ssid, False, False, strength, frequency)


class TestBandHelpers:
    """Tests for band helper functions."""

    @pytest.mark.parametrize(
        "frequency,expected",
        [(2412, Band.BG), (2484, Band.BG), (4915, Band.A), (5825, Band.A), (5900, None), (2400, None)],
    )
    def test_band_for_frequency(self, frequency: int, expected: Band) -> None:
        assert band_for_frequency(frequency) is expected

    def test_parse_band(self) -> None:
        assert parse_band("a") is Band.A
        assert parse_band("bg") is Band.BG

    @pytest.mark.parametrize("token", ["", "5g", "A", "abg"])
    def test_parse_band_invalid(self, token: str) -> None:
        with pytest.raises(InvalidBandError):
            parse_band(token)


class TestFindCandidate:
    """Tests for candidate selection."""

    def test_automatic_picks_strongest_same_ssid(self) -> None:
        aps = [
            snapshot(ap_path(1), "home", 40, FREQ_2G),
            snapshot(ap_path(2), "other", 99, FREQ_5G),
            snapshot(ap_path(3), "home", 70, FREQ_5G),
        ]

        assert find_candidate("home", aps, Band.UNSET).path == ap_path(3)

    def test_automatic_ties_keep_first(self) -> None:
        aps = [snapshot(ap_path(1), "home", 60, FREQ_2G), snapshot(ap_path(2), "home", 60, FREQ_5G)]

        assert find_candidate("home", aps, Band.UNSET).path == ap_path(1)

    def test_automatic_ignores_zero_strength(self) -> None:
        aps = [snapshot(ap_path(1), "home", 0, FREQ_5G)]

        assert find_candidate("home", aps, Band.UNSET) is None

    def test_manual_picks_first_in_band(self) -> None:
        aps = [
            snapshot(ap_path(1), "home", 90, FREQ_2G),
            snapshot(ap_path(2), "home", 20, FREQ_5G),
            snapshot(ap_path(3), "home", 80, 5745),
        ]

        assert find_candidate("home", aps, Band.A).path == ap_path(2)
        assert find_candidate("home", aps, Band.BG).path == ap_path(1)

    def test_manual_without_ap_in_band(self) -> None:
        aps = [snapshot(ap_path(1), "home", 90, FREQ_2G)]

        assert find_candidate("home", aps, Band.A) is None


class TestSteerDevice:
    """Tests for steering one device."""

    def test_steers_to_stronger_5ghz(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        """Candidate 65 against current 40 gains enough to steer."""
        profile = connect_home(nm, registry, current=(40, FREQ_2G), candidate=(65, FREQ_5G))
        engine = make_engine(nm, registry)

        assert engine.steer_device(DEVICE)

        assert nm.get_profile(profile)["802-11-wireless"]["band"] == "a"
        assert nm.activations == [(profile, DEVICE)]
        assert nm.get_active_access_point(DEVICE) == ap_path(2)

    def test_small_gain_does_not_steer(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        """Candidate 55 against current 40 is not enough."""
        profile = connect_home(nm, registry, current=(40, FREQ_2G), candidate=(55, FREQ_5G))
        engine = make_engine(nm, registry)

        assert not engine.steer_device(DEVICE)

        assert "band" not in nm.get_profile(profile)["802-11-wireless"]
        assert nm.activations == []
        assert nm.updates == []

    def test_activating_connection_is_not_steered(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        connect_home(
            nm, registry, current=(20, FREQ_2G), candidate=(90, FREQ_5G), state=ActiveConnectionState.ACTIVATING
        )
        engine = make_engine(nm, registry)

        assert not engine.steer_device(DEVICE)
        assert nm.activations == []

    def test_strong_5ghz_link_is_kept(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        connect_home(nm, registry, current=(70, FREQ_5G), candidate=(100, FREQ_2G))
        engine = make_engine(nm, registry)

        assert not engine.steer_device(DEVICE)

    def test_same_band_candidate_is_not_steered(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        connect_home(nm, registry, current=(30, FREQ_2G), candidate=(80, 2462))
        engine = make_engine(nm, registry)

        assert not engine.steer_device(DEVICE)
        assert nm.updates == []

    def test_current_access_point_is_best(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        connect_home(nm, registry, current=(60, FREQ_2G), candidate=(30, FREQ_5G))
        engine = make_engine(nm, registry)

        assert not engine.steer_device(DEVICE)

    def test_manual_band_ignores_strength_rules(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        profile = connect_home(nm, registry, current=(90, FREQ_5G), candidate=(30, FREQ_2G))
        engine = make_engine(nm, registry)

        assert engine.steer_device(DEVICE, Band.BG)

        assert nm.get_profile(profile)["802-11-wireless"]["band"] == "bg"
        assert nm.get_active_access_point(DEVICE) == ap_path(2)

    def test_manual_band_already_current(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        connect_home(nm, registry, current=(30, FREQ_5G), candidate=(90, FREQ_2G))
        engine = make_engine(nm, registry)

        # First 5 GHz AP in scan order is the current one
        assert not engine.steer_device(DEVICE, Band.A)

    def test_device_without_connection(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        engine = make_engine(nm, registry)

        assert not engine.steer_device(DEVICE)


class TestRunPass:
    """Tests for whole steering passes."""

    def test_band_is_decided_per_device(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        nm.add_device(OTHER_DEVICE)
        home = connect_home(nm, registry, current=(40, FREQ_2G), candidate=(65, FREQ_5G))
        work = connect_home(
            nm, registry, current=(30, FREQ_5G), candidate=(55, FREQ_2G), device=OTHER_DEVICE, ssid="work", first_ap=10
        )
        engine = make_engine(nm, registry)

        assert engine.run_pass()

        assert nm.get_profile(home)["802-11-wireless"]["band"] == "a"
        assert nm.get_profile(work)["802-11-wireless"]["band"] == "bg"

    def test_failure_is_isolated_per_device(self) -> None:
        nm = InMemoryNetworkManager()
        nm.add_device(OTHER_DEVICE)
        nm.add_device(DEVICE)
        registry = AccessPointRegistry(nm)
        nm.add_access_point(OTHER_DEVICE, ap_path(10), "gone")
        gone = nm.add_connection(new_wireless_connection("gone", "uuid-gone", b"gone", SecurityCategory.NONE))
        nm.connect(OTHER_DEVICE, ap_path(10), gone)
        nm.remove_access_point(OTHER_DEVICE, ap_path(10))
        home = connect_home(nm, registry, current=(40, FREQ_2G), candidate=(65, FREQ_5G))
        engine = make_engine(nm, registry)

        assert engine.run_pass()

        assert nm.get_profile(home)["802-11-wireless"]["band"] == "a"

    def test_failed_activation_leaves_device(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        connect_home(nm, registry, current=(40, FREQ_2G), candidate=(65, FREQ_5G))
        nm.fail("activate_connection")
        engine = make_engine(nm, registry)

        assert engine.run_pass()

        assert nm.get_active_access_point(DEVICE) == ap_path(1)

    def test_pending_band_is_consumed(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        profile = connect_home(nm, registry, current=(90, FREQ_5G), candidate=(30, FREQ_2G))
        engine = make_engine(nm, registry)

        engine.request_band("bg")
        assert engine.pending_band is Band.BG
        engine.run_pass()

        assert engine.pending_band is Band.UNSET
        assert nm.get_profile(profile)["802-11-wireless"]["band"] == "bg"
        engine.shutdown()

    def test_overlapping_pass_is_deferred(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        engine = make_engine(nm, registry)
        entered = threading.Event()
        release = threading.Event()

        def blocking_steer(_device: str, _band: Band) -> bool:
            entered.set()
            release.wait(timeout=5)
            return False

        with patch.object(engine, "steer_device", side_effect=blocking_steer), patch.object(engine, "schedule") as schedule:
            worker = threading.Thread(target=engine.run_pass)
            worker.start()
            assert entered.wait(timeout=5)

            assert engine.run_pass() is False
            schedule.assert_called_once()

            release.set()
            worker.join(timeout=5)

        engine.shutdown()


class TestRequestBand:
    """Tests for manual band requests."""

    def test_requests_scan_on_every_device(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        nm.add_device(OTHER_DEVICE)
        engine = make_engine(nm, registry)

        engine.request_band("a")

        assert sorted(nm.scan_requests) == sorted([DEVICE, OTHER_DEVICE])
        assert engine.pending_band is Band.A
        engine.shutdown()

    def test_request_arms_a_pass(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        engine = make_engine(nm, registry)

        with patch.object(engine, "schedule") as schedule:
            engine.request_band("bg")

        schedule.assert_called_once()

    def test_request_applied_without_new_access_points(
        self, nm: InMemoryNetworkManager, registry: AccessPointRegistry
    ) -> None:
        """The pass runs even when the requested scan reports nothing new."""
        connect_home(nm, registry, current=(40, FREQ_2G), candidate=(45, FREQ_5G))
        engine = make_engine(nm, registry, scan_debounce=0.05)

        engine.request_band("a")

        assert wait_for(lambda: nm.get_active_access_point(DEVICE) == ap_path(2))
        assert engine.pending_band is Band.UNSET
        engine.shutdown()

    def test_scan_failure_keeps_previous_band(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        engine = make_engine(nm, registry)
        nm.fail("request_scan")

        with patch.object(engine, "schedule") as schedule, pytest.raises(NetworkManagerError):
            engine.request_band("a")

        assert engine.pending_band is Band.UNSET
        schedule.assert_not_called()

    def test_invalid_band_takes_no_action(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        engine = make_engine(nm, registry)

        with pytest.raises(InvalidBandError):
            engine.request_band("n")

        assert nm.scan_requests == []
        assert engine.pending_band is Band.UNSET


class TestDebounce:
    """Tests for the debounce timer."""

    def test_bursts_run_one_pass(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        engine = make_engine(nm, registry, scan_debounce=0.05)

        with patch.object(engine, "run_pass") as run_pass:
            for _ in range(5):
                engine.schedule()
            time.sleep(0.3)

        assert run_pass.call_count == 1
        engine.shutdown()

    def test_shutdown_cancels_pending_pass(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        engine = make_engine(nm, registry, scan_debounce=0.05)

        with patch.object(engine, "run_pass") as run_pass:
            engine.schedule()
            engine.shutdown()
            engine.schedule()
            time.sleep(0.2)

        run_pass.assert_not_called()

    def test_shutdown_waits_for_running_pass(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        engine = make_engine(nm, registry)
        entered = threading.Event()
        release = threading.Event()

        def blocking_steer(_device: str, _band: Band) -> bool:
            entered.set()
            release.wait(timeout=5)
            return False

        with patch.object(engine, "steer_device", side_effect=blocking_steer):
            worker = threading.Thread(target=engine.run_pass)
            worker.start()
            assert entered.wait(timeout=5)

            stopper = threading.Thread(target=engine.shutdown)
            stopper.start()
            stopper.join(timeout=0.2)
            assert stopper.is_alive()

            release.set()
            stopper.join(timeout=5)
            worker.join(timeout=5)

        assert not stopper.is_alive()

    def test_no_pass_after_shutdown(self, nm: InMemoryNetworkManager, registry: AccessPointRegistry) -> None:
        engine = make_engine(nm, registry)
        engine.shutdown()

        with patch.object(engine, "steer_device") as steer_device:
            engine.run_pass()

        steer_device.assert_not_called()
