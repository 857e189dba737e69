"""Access point entity with derived security and visibility state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, Any, Dict

from wifi_steer.network.errors import HiddenAccessPointError
from wifi_steer.network.nm_client import AccessPointProperties, decode_ssid
from wifi_steer.network.security import SecurityCategory, classify_security

DEFAULT_IGNORE_STRENGTH = 10


@dataclass(frozen=True)
class AccessPointSnapshot:
    """Immutable point-in-time copy of an access point's public fields."""

    device_path: str
    path: str
    ssid: str
    secured: bool
    secured_in_eap: bool
    strength: int
    frequency: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "Ssid": self.ssid,
            "Secured": self.secured,
            "SecuredInEap": self.secured_in_eap,
            "Strength": self.strength,
            "Path": self.path,
            "Frequency": self.frequency,
        }


class AccessPoint:  # pylint: disable=too-many-instance-attributes
    """One access point seen by a wireless device.

    Instances hold no service connection; the registry fetches properties
    and passes them to update().
    """

    def __init__(
        self,
        device_path: str,
        path: str,
        props: AccessPointProperties,
        activated_ssids: AbstractSet[str] = frozenset(),
        ignore_strength: int = DEFAULT_IGNORE_STRENGTH,
    ) -> None:
        """Initialize an access point from freshly fetched properties.

        Args:
            device_path: Owning wireless device
            path: Access point object path
            props: Live access point properties
            activated_ssids: SSIDs currently activated on the owning device
            ignore_strength: Strength below which an inactive AP is hidden

        Raises:
            HiddenAccessPointError: If the SSID is empty
        """
        self.device_path = device_path
        self.path = path
        self._ignore_strength = ignore_strength

        self.ssid = ""
        self.security = SecurityCategory.NONE
        self.strength = 0
        self.frequency = 0
        self.should_be_ignored = False

        self.update(props, activated_ssids)
        if not self.ssid:
            raise HiddenAccessPointError(f"Ignoring hidden access point {path}")

    @property
    def secured(self) -> bool:
        """True if the access point requires any security."""
        return self.security.secured

    @property
    def secured_in_eap(self) -> bool:
        """True if the access point requires 802.1X authentication."""
        return self.security is SecurityCategory.EAP

    def update(self, props: AccessPointProperties, activated_ssids: AbstractSet[str]) -> None:
        """Refresh derived fields and visibility from new properties.

        Args:
            props: Live access point properties
            activated_ssids: SSIDs currently activated on the owning device
        """
        self.ssid = decode_ssid(props.ssid)
        self.security = classify_security(props.flags, props.wpa_flags, props.rsn_flags)
        self.strength = props.strength
        self.frequency = props.frequency

        # Strength 0 never hides an access point
        self.should_be_ignored = (
            0 < self.strength < self._ignore_strength and self.ssid not in activated_ssids
        )

    def snapshot(self) -> AccessPointSnapshot:
        """Get an immutable copy of the public fields.

        Returns:
            AccessPointSnapshot of the current state
        """
        return AccessPointSnapshot(
            device_path=self.device_path,
            path=self.path,
            ssid=self.ssid,
            secured=self.secured,
            secured_in_eap=self.secured_in_eap,
            strength=self.strength,
            frequency=self.frequency,
        )

    def __repr__(self) -> str:
        return (
            f"AccessPoint(path={self.path!r}, ssid={self.ssid!r}, strength={self.strength}, "
            f"frequency={self.frequency}, ignored={self.should_be_ignored})"
        )
