"""Wireless access point model and band steering."""

from wifi_steer.network.access_point import AccessPoint, AccessPointSnapshot
from wifi_steer.network.activator import ConnectionActivator
from wifi_steer.network.band_steering import Band, BandSteeringEngine
from wifi_steer.network.errors import (
    HiddenAccessPointError,
    InvalidBandError,
    NeedUserEditError,
    NetworkManagerError,
    ValidationError,
    WifiSteerError,
)
from wifi_steer.network.in_memory_client import InMemoryNetworkManager
from wifi_steer.network.nm_client import NetworkManagerClient
from wifi_steer.network.registry import AccessPointRegistry
from wifi_steer.network.security import SecurityCategory, classify_security

__all__ = [
    "AccessPoint",
    "AccessPointSnapshot",
    "AccessPointRegistry",
    "Band",
    "BandSteeringEngine",
    "ConnectionActivator",
    "InMemoryNetworkManager",
    "NetworkManagerClient",
    "SecurityCategory",
    "classify_security",
    "WifiSteerError",
    "NetworkManagerError",
    "ValidationError",
    "HiddenAccessPointError",
    "InvalidBandError",
    "NeedUserEditError",
]
