"""Helpers for reading and rewriting wireless connection settings.

Settings use the NetworkManager layout: a mapping of setting names
("connection", "802-11-wireless", ...) to mappings of property names to
plain Python values.
"""

import logging
from typing import Any, Dict, Optional

from wifi_steer.network.nm_client import WIRELESS_SETTING, Settings
from wifi_steer.network.security import WIRELESS_SECURITY_SETTING, SecurityCategory

logger = logging.getLogger(__name__)

CONNECTION_SETTING = "connection"
IEEE8021X_SETTING = "802-1x"
IP4_SETTING = "ipv4"
IP6_SETTING = "ipv6"

_WEP_KEYS = ("wep-key0", "wep-key1", "wep-key2", "wep-key3", "wep-tx-keyidx", "wep-key-type")


def get_uuid(settings: Settings) -> str:
    """Get the uuid of a profile.

    Args:
        settings: Connection settings

    Returns:
        Profile uuid, or an empty string if missing
    """
    return str(settings.get(CONNECTION_SETTING, {}).get("uuid", ""))


def set_key_mgmt(settings: Settings, category: SecurityCategory) -> None:
    """Rewrite the wireless security block for a security category in place.

    Args:
        settings: Connection settings to modify
        category: Security category the profile must match
    """
    wireless = settings.setdefault(WIRELESS_SETTING, {})

    if category is SecurityCategory.NONE:
        settings.pop(WIRELESS_SECURITY_SETTING, None)
        settings.pop(IEEE8021X_SETTING, None)
        wireless.pop("security", None)
        return

    wireless["security"] = WIRELESS_SECURITY_SETTING
    security = settings.setdefault(WIRELESS_SECURITY_SETTING, {})

    if category is SecurityCategory.WEP:
        security["key-mgmt"] = "none"
        security["auth-alg"] = "open"
        security["wep-key-type"] = 1
        security.pop("psk", None)
        settings.pop(IEEE8021X_SETTING, None)
    elif category is SecurityCategory.PSK:
        security["key-mgmt"] = "wpa-psk"
        security.pop("auth-alg", None)
        for key in _WEP_KEYS:
            security.pop(key, None)
        settings.pop(IEEE8021X_SETTING, None)
    else:
        security["key-mgmt"] = "wpa-eap"
        security.pop("psk", None)
        for key in _WEP_KEYS:
            security.pop(key, None)
        settings.setdefault(IEEE8021X_SETTING, {"eap": ["peap"], "phase2-auth": "mschapv2"})


def normalize_ip6_config(settings: Settings) -> None:
    """Re-serialize IPv6 addresses and routes into their wire structure in place.

    Addresses become (address, prefix, gateway) and routes become
    (destination, prefix, next_hop, metric), with byte strings for the
    addresses and ints for the numbers.

    Args:
        settings: Connection settings to modify
    """
    ip6: Optional[Dict[str, Any]] = settings.get(IP6_SETTING)
    if not ip6:
        return

    if "addresses" in ip6:
        ip6["addresses"] = [
            (bytes(address), int(prefix), bytes(gateway))
            for address, prefix, gateway in ip6["addresses"]
        ]
    if "routes" in ip6:
        ip6["routes"] = [
            (bytes(dest), int(prefix), bytes(next_hop), int(metric))
            for dest, prefix, next_hop, metric in ip6["routes"]
        ]


def set_wireless_band(settings: Settings, band: str) -> None:
    """Restrict a wireless profile to one band in place.

    Args:
        settings: Connection settings to modify
        band: "a" or "bg"
    """
    settings.setdefault(WIRELESS_SETTING, {})["band"] = band
    normalize_ip6_config(settings)
    logger.debug("Set band of %s to %s", get_uuid(settings), band)


def new_wireless_connection(
    name: str, uuid: str, ssid: bytes, category: SecurityCategory
) -> Settings:
    """Build a minimal wireless profile for an access point.

    Args:
        name: Connection name (the decoded SSID)
        uuid: Uuid for the new profile
        ssid: Raw SSID bytes
        category: Security category of the access point

    Returns:
        Connection settings
    """
    settings: Settings = {
        CONNECTION_SETTING: {
            "id": name,
            "uuid": uuid,
            "type": WIRELESS_SETTING,
        },
        WIRELESS_SETTING: {
            "ssid": bytes(ssid),
            "mode": "infrastructure",
        },
        IP4_SETTING: {"method": "auto"},
        IP6_SETTING: {"method": "auto"},
    }
    set_key_mgmt(settings, category)
    return settings
