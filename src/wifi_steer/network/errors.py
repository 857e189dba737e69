"""Exception types raised by the access point model and band steering."""


class WifiSteerError(Exception):
    """Base class for all errors raised by wifi_steer."""


class NetworkManagerError(WifiSteerError):
    """Raised when a call to the network-management service fails."""


class ValidationError(WifiSteerError):
    """Raised when an input or state cannot be handled automatically."""


class HiddenAccessPointError(ValidationError):
    """Raised when an access point advertises an empty SSID."""


class InvalidBandError(ValidationError):
    """Raised when a band token other than "a" or "bg" is requested."""


class NeedUserEditError(ValidationError):
    """Raised when a profile needs credentials only the user can provide."""

    def __init__(self, uuid: str) -> None:
        super().__init__(f"Connection {uuid} needs user edit")
        self.uuid = uuid
