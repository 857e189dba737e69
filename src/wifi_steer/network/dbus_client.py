"""NetworkManager client over the system D-Bus.

This module provides the DBusNetworkManager class which talks to
NetworkManager with jeepney. Method calls go through a threaded router;
signals are received on a separate blocking connection by a monitor
thread and delivered to the callbacks set with set_callbacks().
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from jeepney import DBusAddress, new_method_call
from jeepney.bus_messages import MatchRule, message_bus
from jeepney.io.blocking import open_dbus_connection as open_dbus_connection_blocking
from jeepney.io.threading import DBusRouter, open_dbus_connection as open_dbus_connection_threading
from jeepney.low_level import HeaderFields, Message, MessageType
from jeepney.wrappers import Properties

from wifi_steer.network.errors import NetworkManagerError
from wifi_steer.network.nm_client import (
    AccessPointProperties,
    ActiveConnectionInfo,
    ActiveConnectionState,
    NetworkManagerClient,
    Settings,
)

logger = logging.getLogger(__name__)

NM = "org.freedesktop.NetworkManager"
NM_PATH = "/org/freedesktop/NetworkManager"
NM_IFACE = NM
NM_SETTINGS_PATH = "/org/freedesktop/NetworkManager/Settings"
NM_SETTINGS_IFACE = "org.freedesktop.NetworkManager.Settings"
NM_CONNECTION_IFACE = "org.freedesktop.NetworkManager.Settings.Connection"
NM_DEVICE_IFACE = "org.freedesktop.NetworkManager.Device"
NM_WIRELESS_IFACE = "org.freedesktop.NetworkManager.Device.Wireless"
NM_ACCESS_POINT_IFACE = "org.freedesktop.NetworkManager.AccessPoint"
NM_ACTIVE_CONNECTION_IFACE = "org.freedesktop.NetworkManager.Connection.Active"
NM_PROPERTIES_IFACE = "org.freedesktop.DBus.Properties"

NM_DEVICE_TYPE_WIFI = 2
NO_OBJECT = "/"

SIGNAL_QUEUE_SIZE = 64
MONITOR_TIMEOUT = 1.0

# D-Bus signatures of the settings this package writes
_SETTING_SIGNATURES: Dict[Tuple[str, str], str] = {
    ("ipv4", "addresses"): "aau",
    ("ipv4", "routes"): "aau",
    ("ipv4", "dns"): "au",
    ("ipv6", "addresses"): "a(ayuay)",
    ("ipv6", "routes"): "a(ayuayu)",
    ("ipv6", "dns"): "aay",
}

_KEY_SIGNATURES: Dict[str, str] = {
    "ssid": "ay",
    "bssid": "ay",
    "mac-address": "ay",
    "wep-key-type": "u",
    "wep-tx-keyidx": "u",
    "eap": "as",
    "timestamp": "t",
}


def unwrap_settings(raw: Dict[str, Dict[str, Tuple[str, Any]]]) -> Tuple[Settings, Dict[Tuple[str, str], str]]:
    """Convert settings as returned by GetSettings into plain values.

    Args:
        raw: Mapping of setting name to mapping of key to (signature, value)

    Returns:
        Tuple of plain settings and the signature of every (setting, key)
    """
    settings: Settings = {}
    signatures: Dict[Tuple[str, str], str] = {}
    for name, values in raw.items():
        section: Dict[str, Any] = {}
        for key, (signature, value) in values.items():
            section[key] = value
            signatures[(name, key)] = signature
        settings[name] = section
    return settings, signatures


def guess_signature(setting: str, key: str, value: Any) -> str:
    """Choose a D-Bus signature for a setting value that was not read from the bus.

    Args:
        setting: Setting name, e.g. "802-11-wireless"
        key: Key within the setting
        value: Plain value

    Returns:
        D-Bus type signature

    Raises:
        NetworkManagerError: If no signature fits the value
    """
    if (setting, key) in _SETTING_SIGNATURES:
        return _SETTING_SIGNATURES[(setting, key)]
    if key in _KEY_SIGNATURES:
        return _KEY_SIGNATURES[key]
    if isinstance(value, bool):
        return "b"
    if isinstance(value, int):
        return "i"
    if isinstance(value, str):
        return "s"
    if isinstance(value, (bytes, bytearray)):
        return "ay"
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return "as"
    raise NetworkManagerError(f"Cannot encode setting {setting}.{key}={value!r}")


def wrap_settings(
    settings: Settings, signatures: Optional[Dict[Tuple[str, str], str]] = None
) -> Dict[str, Dict[str, Tuple[str, Any]]]:
    """Convert plain settings into the a{sa{sv}} structure expected by NetworkManager.

    Args:
        settings: Plain connection settings
        signatures: Signatures read with the settings, reused where present

    Returns:
        Mapping of setting name to mapping of key to (signature, value)
    """
    signatures = signatures or {}
    wrapped: Dict[str, Dict[str, Tuple[str, Any]]] = {}
    for name, values in settings.items():
        wrapped[name] = {}
        for key, value in values.items():
            signature = signatures.get((name, key)) or guess_signature(name, key, value)
            wrapped[name][key] = (signature, value)
    return wrapped


def access_point_from_properties(props: Dict[str, Tuple[str, Any]]) -> AccessPointProperties:
    """Build access point properties from a GetAll reply body.

    Args:
        props: Mapping of property name to (signature, value)

    Returns:
        Access point properties
    """
    return AccessPointProperties(
        ssid=bytes(props.get("Ssid", ("ay", b""))[1]),
        flags=int(props.get("Flags", ("u", 0))[1]),
        wpa_flags=int(props.get("WpaFlags", ("u", 0))[1]),
        rsn_flags=int(props.get("RsnFlags", ("u", 0))[1]),
        strength=int(props.get("Strength", ("y", 0))[1]),
        frequency=int(props.get("Frequency", ("u", 0))[1]),
    )


class DBusNetworkManager(NetworkManagerClient):  # pylint: disable=too-many-instance-attributes
    """NetworkManager client using jeepney on the system bus."""

    def __init__(self, bus: str = "SYSTEM") -> None:
        """Initialize the client.

        Args:
            bus: Bus to connect to ("SYSTEM" or "SESSION")
        """
        super().__init__()
        self._bus = bus
        self._router: Optional[DBusRouter] = None
        self._monitor_conn: Any = None
        self._monitor_thread: Optional[threading.Thread] = None
        self._running = False
        self._signatures: Dict[str, Dict[Tuple[str, str], str]] = {}
        self._lock = threading.Lock()
        self._nm = DBusAddress(NM_PATH, bus_name=NM, interface=NM_IFACE)
        self._nm_settings = DBusAddress(NM_SETTINGS_PATH, bus_name=NM, interface=NM_SETTINGS_IFACE)

    def start(self) -> None:
        """Connect to the bus and start the signal monitor thread.

        Raises:
            NetworkManagerError: If the bus cannot be reached
        """
        if self._running:
            logger.warning("D-Bus client already running")
            return

        try:
            self._router = DBusRouter(open_dbus_connection_threading(bus=self._bus))
            self._monitor_conn = open_dbus_connection_blocking(bus=self._bus)
        except (OSError, KeyError) as e:
            raise NetworkManagerError(f"Failed to connect to {self._bus.lower()} D-Bus: {e}") from e

        self._running = True
        self._monitor_thread = threading.Thread(target=self._monitor, daemon=True)
        self._monitor_thread.start()
        logger.info("Connected to NetworkManager on the %s bus", self._bus.lower())

    def stop(self) -> None:
        """Stop the monitor thread and close the bus connections."""
        if not self._running:
            return
        self._running = False

        if self._monitor_thread:
            self._monitor_thread.join(timeout=MONITOR_TIMEOUT * 2)
            self._monitor_thread = None
        if self._monitor_conn is not None:
            self._monitor_conn.close()
            self._monitor_conn = None
        if self._router is not None:
            self._router.close()
            self._router = None
        logger.info("Disconnected from NetworkManager")

    # Method calls

    def _call(self, msg: Message) -> Tuple[Any, ...]:
        """Send a method call and return the reply body.

        Raises:
            NetworkManagerError: If the call fails or returns an error
        """
        if self._router is None:
            raise NetworkManagerError("D-Bus client is not started")
        try:
            reply = self._router.send_and_get_reply(msg)
        except (OSError, TimeoutError) as e:
            raise NetworkManagerError(f"D-Bus call failed: {e}") from e

        if reply.header.message_type == MessageType.error:
            error_name = reply.header.fields.get(HeaderFields.error_name, "unknown error")
            detail = reply.body[0] if reply.body else ""
            raise NetworkManagerError(f"{error_name}: {detail}")
        return reply.body

    def _get_property(self, path: str, interface: str, name: str) -> Any:
        address = DBusAddress(path, bus_name=NM, interface=interface)
        return self._call(Properties(address).get(name))[0][1]

    def _get_all(self, path: str, interface: str) -> Dict[str, Tuple[str, Any]]:
        address = DBusAddress(path, bus_name=NM, interface=interface)
        return self._call(Properties(address).get_all())[0]

    def _is_wireless(self, device_path: str) -> bool:
        return self._get_property(device_path, NM_DEVICE_IFACE, "DeviceType") == NM_DEVICE_TYPE_WIFI

    def get_wireless_devices(self) -> List[str]:
        devices = self._call(new_method_call(self._nm, "GetDevices"))[0]
        return [path for path in devices if self._is_wireless(path)]

    def get_device_access_points(self, device_path: str) -> List[str]:
        address = DBusAddress(device_path, bus_name=NM, interface=NM_WIRELESS_IFACE)
        return list(self._call(new_method_call(address, "GetAccessPoints"))[0])

    def get_access_point(self, ap_path: str) -> AccessPointProperties:
        return access_point_from_properties(self._get_all(ap_path, NM_ACCESS_POINT_IFACE))

    def get_active_access_point(self, device_path: str) -> Optional[str]:
        path = self._get_property(device_path, NM_WIRELESS_IFACE, "ActiveAccessPoint")
        return None if path == NO_OBJECT else path

    def get_device_active_connection(self, device_path: str) -> Optional[ActiveConnectionInfo]:
        path = self._get_property(device_path, NM_DEVICE_IFACE, "ActiveConnection")
        if path == NO_OBJECT:
            return None
        return self._active_connection(path)

    def get_active_connections(self) -> List[ActiveConnectionInfo]:
        paths = self._get_property(NM_PATH, NM_IFACE, "ActiveConnections")
        return [self._active_connection(path) for path in paths]

    def _active_connection(self, path: str) -> ActiveConnectionInfo:
        props = self._get_all(path, NM_ACTIVE_CONNECTION_IFACE)
        return ActiveConnectionInfo(
            path=path,
            connection_path=props["Connection"][1],
            uuid=props["Uuid"][1],
            conn_type=props["Type"][1],
            state=ActiveConnectionState(props["State"][1]),
            devices=tuple(props.get("Devices", ("ao", []))[1]),
        )

    def get_connection_by_uuid(self, uuid: str) -> str:
        return self._call(new_method_call(self._nm_settings, "GetConnectionByUuid", "s", (uuid,)))[0]

    def get_connection_settings(self, connection_path: str) -> Settings:
        address = DBusAddress(connection_path, bus_name=NM, interface=NM_CONNECTION_IFACE)
        raw = self._call(new_method_call(address, "GetSettings"))[0]
        settings, signatures = unwrap_settings(raw)
        with self._lock:
            self._signatures[connection_path] = signatures
        return settings

    def update_connection(self, connection_path: str, settings: Settings) -> None:
        with self._lock:
            signatures = self._signatures.get(connection_path)
        address = DBusAddress(connection_path, bus_name=NM, interface=NM_CONNECTION_IFACE)
        self._call(new_method_call(address, "Update", "a{sa{sv}}", (wrap_settings(settings, signatures),)))
        logger.debug("Updated connection %s", connection_path)

    def activate_connection(self, connection_path: str, device_path: str) -> str:
        body = self._call(
            new_method_call(self._nm, "ActivateConnection", "ooo", (connection_path, device_path, NO_OBJECT))
        )
        return body[0]

    def add_and_activate_connection(self, settings: Settings, device_path: str) -> str:
        body = self._call(
            new_method_call(
                self._nm,
                "AddAndActivateConnection",
                "a{sa{sv}}oo",
                (wrap_settings(settings), device_path, NO_OBJECT),
            )
        )
        return body[1]

    def request_scan(self, device_path: str) -> None:
        address = DBusAddress(device_path, bus_name=NM, interface=NM_WIRELESS_IFACE)
        self._call(new_method_call(address, "RequestScan", "a{sv}", ({},)))

    # Signals

    def _monitor(self) -> None:
        """Receive NetworkManager signals until stopped (runs in thread)."""
        rules = (
            MatchRule(type="signal", interface=NM_WIRELESS_IFACE, member="AccessPointAdded"),
            MatchRule(type="signal", interface=NM_WIRELESS_IFACE, member="AccessPointRemoved"),
            MatchRule(type="signal", interface=NM_PROPERTIES_IFACE, member="PropertiesChanged"),
            MatchRule(type="signal", interface=NM_IFACE, member="DeviceAdded", path=NM_PATH),
            MatchRule(type="signal", interface=NM_IFACE, member="DeviceRemoved", path=NM_PATH),
        )

        conn = self._monitor_conn
        try:
            for rule in rules:
                conn.send_and_get_reply(message_bus.AddMatch(rule))
        except OSError as e:
            logger.error("Failed to subscribe to NetworkManager signals: %s", e)
            return

        with (
            conn.filter(rules[0], bufsize=SIGNAL_QUEUE_SIZE) as ap_added_q,
            conn.filter(rules[1], bufsize=SIGNAL_QUEUE_SIZE) as ap_removed_q,
            conn.filter(rules[2], bufsize=SIGNAL_QUEUE_SIZE) as props_q,
            conn.filter(rules[3], bufsize=SIGNAL_QUEUE_SIZE) as dev_added_q,
            conn.filter(rules[4], bufsize=SIGNAL_QUEUE_SIZE) as dev_removed_q,
        ):
            while self._running:
                try:
                    conn.recv_messages(timeout=MONITOR_TIMEOUT)
                except TimeoutError:
                    continue
                except OSError as e:
                    if self._running:
                        logger.error("D-Bus monitor connection failed: %s", e)
                    break

                while len(dev_added_q):
                    self._on_device_signal(dev_added_q.popleft(), added=True)
                while len(ap_added_q):
                    msg = ap_added_q.popleft()
                    self._dispatch(self._on_access_point_added, _sender_path(msg), msg.body[0])
                while len(props_q):
                    msg = props_q.popleft()
                    interface, changed, _ = msg.body
                    if interface == NM_ACCESS_POINT_IFACE:
                        values = {name: value for name, (_, value) in changed.items()}
                        self._dispatch(self._on_access_point_properties_changed, _sender_path(msg), values)
                while len(ap_removed_q):
                    msg = ap_removed_q.popleft()
                    self._dispatch(self._on_access_point_removed, _sender_path(msg), msg.body[0])
                while len(dev_removed_q):
                    self._on_device_signal(dev_removed_q.popleft(), added=False)

        logger.debug("D-Bus monitor stopped")

    def _on_device_signal(self, msg: Message, added: bool) -> None:
        device_path = msg.body[0]
        if not added:
            self._dispatch(self._on_device_removed, device_path)
            return
        try:
            wireless = self._is_wireless(device_path)
        except NetworkManagerError as e:
            logger.warning("Failed to read type of device %s: %s", device_path, e)
            return
        if wireless:
            self._dispatch(self._on_device_added, device_path)

    @staticmethod
    def _dispatch(callback: Optional[Callable[..., None]], *args: Any) -> None:
        """Invoke a notification callback, logging any error it raises."""
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error("Error in NetworkManager signal callback: %s", e)


def _sender_path(msg: Message) -> str:
    """Get the object path a signal was emitted from."""
    return msg.header.fields[HeaderFields.path]
