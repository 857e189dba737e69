"""Wireless access point tracking and band steering daemon."""

__version__ = "0.1.0"
