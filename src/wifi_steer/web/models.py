"""Pydantic models for web API request/response validation."""

from typing import Any, Dict, List

from pydantic import BaseModel, Field


# =============================================================================
# Request Models
# =============================================================================


class ActivateAccessPointRequest(BaseModel):
    """Request body for connecting a device to an access point."""

    uuid: str = Field(default="", description="Existing profile uuid, empty to create one")
    ap_path: str = Field(min_length=1)
    device_path: str = Field(min_length=1)


class BandChangeRequest(BaseModel):
    """Request body for a manual band change ("a" or "bg")."""

    band: str


# =============================================================================
# Response Models
# =============================================================================


class ActivateAccessPointResponse(BaseModel):
    """Result of an access point activation."""

    active_connection: str


class DeviceAccessPointsResponse(BaseModel):
    """Visible access points of one device."""

    device: str
    access_points: List[Dict[str, Any]]
