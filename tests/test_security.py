"""Tests for security classification."""

import pytest

from wifi_steer.network.security import (
    NM_802_11_AP_FLAGS_PRIVACY,
    NM_802_11_AP_SEC_KEY_MGMT_802_1X,
    NM_802_11_AP_SEC_KEY_MGMT_PSK,
    NM_802_11_AP_SEC_PAIR_CCMP,
    SecurityCategory,
    classify_security,
    security_from_settings,
)

PSK = NM_802_11_AP_SEC_KEY_MGMT_PSK
EAP = NM_802_11_AP_SEC_KEY_MGMT_802_1X


class TestClassifySecurity:
    """Tests for classify_security precedence."""

    @pytest.mark.parametrize(
        "flags,wpa_flags,rsn_flags,expected",
        [
            (0, 0, 0, SecurityCategory.NONE),
            (NM_802_11_AP_FLAGS_PRIVACY, 0, 0, SecurityCategory.WEP),
            (NM_802_11_AP_FLAGS_PRIVACY, PSK, 0, SecurityCategory.PSK),
            (0, 0, PSK | NM_802_11_AP_SEC_PAIR_CCMP, SecurityCategory.PSK),
            (NM_802_11_AP_FLAGS_PRIVACY, 0, EAP, SecurityCategory.EAP),
            (0, PSK, EAP, SecurityCategory.EAP),
            (0, EAP, 0, SecurityCategory.EAP),
        ],
    )
    def test_precedence(self, flags: int, wpa_flags: int, rsn_flags: int, expected: SecurityCategory) -> None:
        """Later rules override earlier ones, 802.1X always wins."""
        assert classify_security(flags, wpa_flags, rsn_flags) is expected

    def test_any_wpa_bit_means_psk(self) -> None:
        """Non-zero WPA flags without key management bits still count as PSK."""
        assert classify_security(0, NM_802_11_AP_SEC_PAIR_CCMP, 0) is SecurityCategory.PSK

    def test_privacy_without_wpa_is_wep_only(self) -> None:
        """Privacy bit with RSN flags is not WEP."""
        assert classify_security(NM_802_11_AP_FLAGS_PRIVACY, 0, PSK) is SecurityCategory.PSK


class TestSecurityCategory:
    """Tests for SecurityCategory properties."""

    def test_secured(self) -> None:
        assert not SecurityCategory.NONE.secured
        assert SecurityCategory.WEP.secured
        assert SecurityCategory.PSK.secured
        assert SecurityCategory.EAP.secured

    def test_key_mgmt(self) -> None:
        assert SecurityCategory.NONE.key_mgmt == "none"
        assert SecurityCategory.WEP.key_mgmt == "wep"
        assert SecurityCategory.PSK.key_mgmt == "wpa-psk"
        assert SecurityCategory.EAP.key_mgmt == "wpa-eap"


class TestSecurityFromSettings:
    """Tests for reading the stored category of a profile."""

    def test_no_security_section(self) -> None:
        assert security_from_settings({"802-11-wireless": {"ssid": b"home"}}) is SecurityCategory.NONE

    @pytest.mark.parametrize(
        "key_mgmt,expected",
        [
            ("none", SecurityCategory.WEP),
            ("wpa-psk", SecurityCategory.PSK),
            ("sae", SecurityCategory.PSK),
            ("wpa-eap", SecurityCategory.EAP),
            ("ieee8021x", SecurityCategory.EAP),
        ],
    )
    def test_known_key_mgmt(self, key_mgmt: str, expected: SecurityCategory) -> None:
        settings = {"802-11-wireless-security": {"key-mgmt": key_mgmt}}
        assert security_from_settings(settings) is expected

    def test_unknown_key_mgmt(self) -> None:
        settings = {"802-11-wireless-security": {"key-mgmt": "owe"}}
        assert security_from_settings(settings) is None
