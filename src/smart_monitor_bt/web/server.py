"""aiohttp web server for the Smart Monitor REST API."""

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from aiohttp import web

from .api import create_api_routes

if TYPE_CHECKING:
    from ..manager import BluetoothAudioManager

logger = logging.getLogger(__name__)

_CORS_HEADERS = {
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def cors_middleware(origins: Iterable[str]):
    """Allow the UI, served from another origin, to call the API."""
    allowed = set(origins)

    def _apply(request: web.Request, response: web.StreamResponse) -> None:
        origin = request.headers.get("Origin")
        if "*" in allowed:
            response.headers["Access-Control-Allow-Origin"] = "*"
        elif origin in allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
        else:
            return
        response.headers.update(_CORS_HEADERS)

    @web.middleware
    async def _cors(request: web.Request, handler):
        if request.method == "OPTIONS":
            response = web.Response(status=204)
        else:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                _apply(request, e)
                raise
        _apply(request, response)
        return response

    return _cors


def build_app(
    manager: "BluetoothAudioManager", cors_origins: Iterable[str] = ("*",)
) -> web.Application:
    app = web.Application(middlewares=[cors_middleware(cors_origins)])
    app.router.add_routes(create_api_routes(manager))
    return app


class WebServer:
    """HTTP server exposing the Bluetooth audio REST API."""

    def __init__(self, manager: "BluetoothAudioManager"):
        self._manager = manager
        self._host = manager.config.host
        self._port = manager.config.port
        self._app = build_app(manager, manager.config.cors_origins)
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start the web server."""
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        logger.info("Web server listening on %s:%d", self._host, self._port)

    async def stop(self) -> None:
        """Stop the web server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Web server stopped")
