"""FastAPI application for the wifi-steer web admin interface."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect

from wifi_steer.daemon import WirelessDaemon
from wifi_steer.network.access_point import AccessPointSnapshot
from wifi_steer.network.errors import NeedUserEditError, NetworkManagerError, ValidationError
from wifi_steer.web.models import (
    ActivateAccessPointRequest,
    ActivateAccessPointResponse,
    BandChangeRequest,
    DeviceAccessPointsResponse,
)
from wifi_steer.web.websocket import (
    AccessPointAddedEvent,
    AccessPointPropertiesChangedEvent,
    AccessPointRemovedEvent,
    ConnectionManager,
)

logger = logging.getLogger(__name__)


def create_app(daemon: WirelessDaemon) -> FastAPI:  # pylint: disable=too-many-statements
    """Create and configure FastAPI application.

    Args:
        daemon: WirelessDaemon instance

    Returns:
        Configured FastAPI application
    """
    ws_manager = ConnectionManager()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        ws_manager.attach_loop(asyncio.get_running_loop())
        yield

    app = FastAPI(
        title="wifi-steer Admin",
        description="Access points and band steering of the wireless devices",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store references for API handlers
    app.state.daemon = daemon
    app.state.ws_manager = ws_manager

    def on_added(device_path: str, snapshot: AccessPointSnapshot) -> None:
        ws_manager.broadcast_sync(AccessPointAddedEvent(device_path, snapshot))

    def on_removed(device_path: str, snapshot: AccessPointSnapshot) -> None:
        ws_manager.broadcast_sync(AccessPointRemovedEvent(device_path, snapshot))

    def on_changed(device_path: str, snapshot: AccessPointSnapshot) -> None:
        ws_manager.broadcast_sync(AccessPointPropertiesChangedEvent(device_path, snapshot))

    daemon.set_callbacks(
        on_access_point_added=on_added,
        on_access_point_removed=on_removed,
        on_access_point_properties_changed=on_changed,
    )

    @app.get("/api/status")
    async def get_status() -> Dict[str, Any]:
        """Get steering settings and daemon state."""
        d = app.state.daemon

        return {
            "running": d.is_running,
            "steering": d.steering_settings,
            "pending_band": d.pending_band.value,
            "device_count": len(d.get_devices()),
            "websocket_clients": ws_manager.connection_count,
        }

    @app.get("/api/devices")
    async def get_devices() -> Dict[str, List[str]]:
        """List wireless devices with loaded access points."""
        return {"devices": app.state.daemon.get_devices()}

    @app.get("/api/access-points")
    async def get_all_access_points() -> Dict[str, Any]:
        """Get the visible access points of every device."""
        result: Dict[str, Any] = json.loads(app.state.daemon.wireless_access_points)
        return result

    @app.get("/api/devices/access-points", response_model=DeviceAccessPointsResponse)
    async def get_device_access_points(
        device: str = Query(..., description="Wireless device object path"),
    ) -> DeviceAccessPointsResponse:
        """Get the visible access points of one device in scan order."""
        access_points = json.loads(app.state.daemon.get_access_points(device))
        return DeviceAccessPointsResponse(device=device, access_points=access_points)

    @app.post("/api/access-points/activate", response_model=ActivateAccessPointResponse)
    def activate_access_point(request: ActivateAccessPointRequest) -> ActivateAccessPointResponse:
        """Connect a device to an access point, creating a profile if needed."""
        try:
            active_path = app.state.daemon.activate_access_point(
                request.uuid, request.ap_path, request.device_path
            )
        except NeedUserEditError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except NetworkManagerError as e:
            raise HTTPException(status_code=502, detail=f"Activation failed: {e}") from e

        return ActivateAccessPointResponse(active_connection=active_path)

    @app.post("/api/band")
    def change_band(request: BandChangeRequest) -> Dict[str, Any]:
        """Move active connections to a band after the next scan."""
        try:
            app.state.daemon.change_ap_band(request.band)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except NetworkManagerError as e:
            raise HTTPException(status_code=502, detail=f"Scan request failed: {e}") from e

        return {"success": True, "band": request.band}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """Push access point events to the client until it disconnects."""
        await ws_manager.connect(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await ws_manager.disconnect(websocket)

    return app
