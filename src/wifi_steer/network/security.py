"""Security classification of access points from their capability flags."""

from enum import Enum
from typing import Any, Mapping, Optional

# NM80211ApFlags
NM_802_11_AP_FLAGS_NONE = 0x0
NM_802_11_AP_FLAGS_PRIVACY = 0x1

# NM80211ApSecurityFlags
NM_802_11_AP_SEC_NONE = 0x0
NM_802_11_AP_SEC_PAIR_WEP40 = 0x1
NM_802_11_AP_SEC_PAIR_WEP104 = 0x2
NM_802_11_AP_SEC_PAIR_TKIP = 0x4
NM_802_11_AP_SEC_PAIR_CCMP = 0x8
NM_802_11_AP_SEC_GROUP_WEP40 = 0x10
NM_802_11_AP_SEC_GROUP_WEP104 = 0x20
NM_802_11_AP_SEC_GROUP_TKIP = 0x40
NM_802_11_AP_SEC_GROUP_CCMP = 0x80
NM_802_11_AP_SEC_KEY_MGMT_PSK = 0x100
NM_802_11_AP_SEC_KEY_MGMT_802_1X = 0x200

WIRELESS_SECURITY_SETTING = "802-11-wireless-security"


class SecurityCategory(Enum):
    """Security category of an access point or a stored wireless profile."""

    NONE = "none"
    WEP = "wep"
    PSK = "wpa-psk"
    EAP = "wpa-eap"

    @property
    def secured(self) -> bool:
        """True for every category except NONE."""
        return self is not SecurityCategory.NONE

    @property
    def key_mgmt(self) -> str:
        """Canonical key-management token for this category."""
        return self.value


# Stored key-mgmt values; static WEP is stored as key-mgmt "none"
_KEY_MGMT_CATEGORIES = {
    "none": SecurityCategory.WEP,
    "wpa-psk": SecurityCategory.PSK,
    "sae": SecurityCategory.PSK,
    "wpa-eap": SecurityCategory.EAP,
    "ieee8021x": SecurityCategory.EAP,
}


def classify_security(flags: int, wpa_flags: int, rsn_flags: int) -> SecurityCategory:
    """Classify an access point from its raw capability bitfields.

    Rules are applied in order and later rules override earlier ones, so an
    802.1X key-management bit always wins.

    Args:
        flags: NM80211ApFlags of the access point
        wpa_flags: WPA security flags
        rsn_flags: RSN (WPA2) security flags

    Returns:
        The security category
    """
    category = SecurityCategory.NONE

    if (
        flags & NM_802_11_AP_FLAGS_PRIVACY
        and wpa_flags == NM_802_11_AP_SEC_NONE
        and rsn_flags == NM_802_11_AP_SEC_NONE
    ):
        category = SecurityCategory.WEP
    if wpa_flags != NM_802_11_AP_SEC_NONE:
        category = SecurityCategory.PSK
    if rsn_flags != NM_802_11_AP_SEC_NONE:
        category = SecurityCategory.PSK
    if (wpa_flags & NM_802_11_AP_SEC_KEY_MGMT_802_1X) or (
        rsn_flags & NM_802_11_AP_SEC_KEY_MGMT_802_1X
    ):
        category = SecurityCategory.EAP

    return category


def security_from_settings(settings: Mapping[str, Mapping[str, Any]]) -> Optional[SecurityCategory]:
    """Derive the security category a stored profile was saved with.

    Args:
        settings: Connection settings keyed by section name

    Returns:
        The stored category, or None if the key management is not recognised
    """
    security = settings.get(WIRELESS_SECURITY_SETTING)
    if not security:
        return SecurityCategory.NONE
    return _KEY_MGMT_CATEGORIES.get(str(security.get("key-mgmt", "")))
