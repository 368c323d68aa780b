"""REST API endpoints for the Smart Monitor Bluetooth audio service."""

import json
import logging
import math
from typing import TYPE_CHECKING

from aiohttp import web

from ..errors import (
    BluetoothAudioError,
    InvalidDeviceIdentifier,
    ServiceUnavailable,
    ToolTimeout,
)
from ..models import is_device_address

if TYPE_CHECKING:
    from ..manager import BluetoothAudioManager

logger = logging.getLogger(__name__)

SERVICE_NAME = "Smart Monitor Bluetooth Audio"

# Map common bluetoothctl / BlueZ error strings to user-friendly messages
_BLUEZ_ERROR_MAP = {
    "page-timeout": "Device not responding. Make sure it is in pairing mode and nearby.",
    "Page Timeout": "Device not responding. Make sure it is in pairing mode and nearby.",
    "InProgress": "A pairing or connection attempt is already in progress. Please wait.",
    "In Progress": "A pairing or connection attempt is already in progress. Please wait.",
    "not available": "Device not found. Try scanning again.",
    "Does Not Exist": "Device not found. Try scanning again.",
    "No default controller available": "No Bluetooth adapter found.",
    "Not Ready": "Bluetooth adapter is not ready. Try again in a moment.",
    "AuthenticationFailed": "Pairing was rejected by the device.",
    "Connection refused": "Device refused the connection. Is it in pairing mode?",
    "br-connection-canceled": "Connection was canceled (device may have been busy).",
    "br-connection-busy": "A connection attempt is already in progress. Please wait.",
    "profile-unavailable": "Device does not offer an audio profile.",
    "Host is down": "Device is not reachable. Make sure it is powered on and nearby.",
}

_NEEDS_PI_SCAN = (
    "Invalid device ID format. "
    "Please use the Pi Bluetooth scanner to get proper MAC addresses."
)


def _friendly_text(msg: str) -> str:
    for pattern, friendly in _BLUEZ_ERROR_MAP.items():
        if pattern in msg:
            return friendly
    # Don't leak raw tool output to the client
    logger.debug("Unmapped error returned to client: %s", msg)
    return "Bluetooth operation failed. Check service logs for details."


def _friendly_error(e: Exception) -> str:
    """Convert a service error to a user-friendly message."""
    if isinstance(e, ToolTimeout):
        return "Bluetooth operation timed out. Make sure the device is powered on and nearby."
    if isinstance(e, ServiceUnavailable):
        return "Bluetooth service is not running."
    if isinstance(e, InvalidDeviceIdentifier):
        return str(e)
    return _friendly_text(str(e))


def _error_response(e: Exception, message: str) -> web.Response:
    """200 with success=false for tool failures, 500 for anything unexpected."""
    if isinstance(e, InvalidDeviceIdentifier):
        return web.json_response(
            {"success": False, "message": message, "error": str(e)}, status=400
        )
    if isinstance(e, BluetoothAudioError):
        logger.warning("%s: %s", message, e)
        return web.json_response(
            {"success": False, "message": message, "error": _friendly_error(e)}
        )
    logger.error("%s: %s", message, e, exc_info=True)
    return web.json_response(
        {
            "success": False,
            "message": message,
            "error": "Internal error. Check service logs for details.",
        },
        status=500,
    )


def _bad_request(error: str, **extra) -> web.Response:
    return web.json_response({"success": False, "error": error, **extra}, status=400)


async def _json_body(request: web.Request) -> dict:
    """Parse a JSON object body; an empty body is ``{}``."""
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(
            text=json.dumps({"success": False, "error": "Request body must be a JSON object"}),
            content_type="application/json",
        )
    return body


def _step_error(step) -> str | None:
    if step is None:
        return None
    if step.error is not None:
        return _friendly_error(step.error)
    return _friendly_text(step.reason or "")


def _connect_response(attempt) -> web.Response:
    data = attempt.to_dict()
    if attempt.connected:
        message = f"Connected to {attempt.device_name}"
        if not attempt.audio_routed:
            message += " (audio output unchanged)"
        return web.json_response({"success": True, "message": message, "data": data})
    step = attempt.fatal_step
    return web.json_response(
        {
            "success": False,
            "message": f"Failed to connect to {attempt.device_name}",
            "error": _step_error(step),
            "data": data,
        }
    )


def create_api_routes(manager: "BluetoothAudioManager") -> list[web.RouteDef]:
    """Create all API route definitions."""
    routes = web.RouteTableDef()

    async def _connect(device_id, device_name) -> web.Response:
        if not device_id:
            return _bad_request("No device ID provided")
        if not is_device_address(device_id):
            logger.warning("Rejected non-address device id %r", device_id)
            return _bad_request(_NEEDS_PI_SCAN, needsPiScan=True)
        try:
            attempt = await manager.connect(device_id, device_name)
        except Exception as e:
            return _error_response(e, "Failed to connect")
        return _connect_response(attempt)

    async def _disconnect_all() -> web.Response:
        try:
            result = await manager.disconnect_all()
        except Exception as e:
            return _error_response(e, "Failed to disconnect devices")
        if result["disconnected"]:
            message = "All Bluetooth devices disconnected"
        else:
            message = "Some devices could not be disconnected"
        return web.json_response(
            {"success": result["disconnected"], "message": message, "data": result}
        )

    @routes.get("/api/health")
    async def health(request: web.Request) -> web.Response:
        """Liveness check."""
        return web.json_response({"status": "ok"})

    # -- Bluetooth --

    @routes.get("/bluetooth/scan")
    async def scan(request: web.Request) -> web.Response:
        try:
            devices = await manager.scan()
        except Exception as e:
            return _error_response(e, "Bluetooth scan failed")
        return web.json_response(
            {"success": True, "devices": [{"id": d.id, "name": d.name} for d in devices]}
        )

    @routes.post("/bluetooth/scan/stop")
    async def stop_scan(request: web.Request) -> web.Response:
        try:
            stopped = await manager.stop_scan()
        except Exception as e:
            return _error_response(e, "Failed to stop scan")
        return web.json_response({"success": True, "stopped": stopped})

    @routes.get("/bluetooth/connected")
    async def connected(request: web.Request) -> web.Response:
        snapshot = await manager.status()
        payload = {
            "success": "error" not in snapshot,
            "connectedDevices": snapshot["connectedDevices"],
            "currentAudioSink": snapshot["currentAudioSink"],
            "isBluetoothAudio": snapshot["isBluetoothAudio"],
            "hasConnectedAudioDevice": snapshot["hasConnectedAudioDevice"],
            "timestamp": snapshot["timestamp"],
        }
        if "error" in snapshot:
            payload["error"] = _friendly_text(snapshot["error"])
        return web.json_response(payload)

    @routes.post("/api/bluetooth")
    @routes.post("/bluetooth")
    async def bluetooth_command(request: web.Request) -> web.Response:
        """Command-style endpoint used by the frontend: {command, params}."""
        body = await _json_body(request)
        command = body.get("command")
        params = body.get("params") or {}
        if not isinstance(params, dict):
            return _bad_request("params must be an object")
        logger.info("Bluetooth command received: %s", command)

        if command == "bluetooth_scan":
            try:
                devices = await manager.scan()
            except Exception as e:
                return _error_response(e, "Bluetooth scan failed")
            return web.json_response(
                {
                    "success": True,
                    "message": "Bluetooth scan completed",
                    "data": {"devices": [d.to_dict() for d in devices]},
                }
            )
        if command == "bluetooth_audio_connect":
            return await _connect(params.get("deviceId"), params.get("deviceName"))
        if command == "bluetooth_audio_disconnect":
            return await _disconnect_all()
        return _bad_request("Unknown Bluetooth command")

    @routes.post("/bluetooth/connect")
    async def connect(request: web.Request) -> web.Response:
        body = await _json_body(request)
        return await _connect(body.get("deviceId"), body.get("deviceName"))

    @routes.post("/bluetooth/disconnect")
    async def disconnect(request: web.Request) -> web.Response:
        """Disconnect one device ({deviceId}) or, without one, all of them."""
        body = await _json_body(request)
        device_id = body.get("deviceId")
        if not device_id:
            return await _disconnect_all()
        try:
            result = await manager.disconnect_one(device_id)
        except Exception as e:
            return _error_response(e, "Failed to disconnect device")
        message = "Device disconnected" if result["disconnected"] else result["message"]
        return web.json_response({"success": True, "message": message, "data": result})

    @routes.get("/api/bluetooth/status")
    async def bluetooth_status(request: web.Request) -> web.Response:
        snapshot = await manager.status()
        return web.json_response({"success": "error" not in snapshot, "data": snapshot})

    @routes.get("/bluetooth/status")
    @routes.get("/bluetooth")
    async def bluetooth_status_redirect(request: web.Request) -> web.Response:
        raise web.HTTPPermanentRedirect("/api/bluetooth/status")

    @routes.get("/api/bluetooth/service")
    async def service_status(request: web.Request) -> web.Response:
        """Result of the last background service check."""
        return web.json_response(
            {
                "success": True,
                "serviceReachable": manager.state.service_reachable,
                "lastChecked": manager.state.service_checked_at,
            }
        )

    @routes.get("/api/status")
    async def status(request: web.Request) -> web.Response:
        snapshot = await manager.status()
        state = manager.state
        return web.json_response(
            {
                "success": True,
                "status": "online",
                "name": SERVICE_NAME,
                "bluetooth": {
                    "serviceActive": snapshot["serviceActive"],
                    "connectedDevices": snapshot["connectedDevices"],
                    "currentAudioSink": snapshot["currentAudioSink"],
                    "hasConnectedAudioDevice": snapshot["hasConnectedAudioDevice"],
                    "scanning": state.scanning,
                    "activeDevice": state.active_device_id,
                    "activeSink": state.active_sink,
                    "lastAttempt": state.last_attempt.to_dict() if state.last_attempt else None,
                },
            }
        )

    # -- Volume --

    @routes.get("/api/system/status")
    async def system_status(request: web.Request) -> web.Response:
        try:
            audio = await manager.audio_status()
        except Exception as e:
            return _error_response(e, "Could not read audio status")
        return web.json_response({"success": True, **audio})

    @routes.post("/api/system/volume")
    async def set_volume(request: web.Request) -> web.Response:
        """Set volume ({level}: 0-100) and/or mute ({muted}: bool) of the default sink."""
        body = await _json_body(request)
        level = body.get("level")
        muted = body.get("muted")
        if level is None and muted is None:
            return _bad_request("Missing level or muted parameter")
        if level is not None and (
            isinstance(level, bool)
            or not isinstance(level, (int, float))
            or not math.isfinite(level)
        ):
            return _bad_request("level must be a number between 0 and 100")
        if muted is not None and not isinstance(muted, bool):
            return _bad_request("muted must be a boolean")

        messages = []
        try:
            if level is not None:
                level = await manager.set_volume(level)
                messages.append(f"Volume set to {level}%")
            if muted is not None:
                await manager.set_muted(muted)
                messages.append("Audio muted" if muted else "Audio unmuted")
        except Exception as e:
            return _error_response(e, "Failed to change volume")
        return web.json_response(
            {
                "success": True,
                "message": ", ".join(messages),
                "volume": level,
                "muted": bool(muted),
            }
        )

    return routes
