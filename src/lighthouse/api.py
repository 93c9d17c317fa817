"""
HTTP API for lighthouse.

Serves the presence service as JSON over aiohttp. Store queries and
scans run in the default executor so a long scan never blocks reads.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Optional

from aiohttp import web

from .errors import LighthouseError, NoNetworkFound, ProbeFailed, ScanInProgress
from .presence import PresenceService

logger = logging.getLogger(__name__)


def _error_response(e: Exception) -> web.Response:
    """Map a lighthouse error to a JSON error response."""
    if isinstance(e, NoNetworkFound):
        status = 404
    elif isinstance(e, ProbeFailed):
        status = 502
    elif isinstance(e, ScanInProgress):
        status = 409
    else:
        status = 500
    return web.json_response({"status": "error", "message": str(e)}, status=status)


class PresenceAPI:
    """aiohttp handlers over a presence service."""

    def __init__(self, service: PresenceService):
        self.service = service
        self._scan_tasks: set[asyncio.Task] = set()

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes."""
        app = web.Application()
        app.router.add_get("/api/devices", self._handle_list_devices)
        app.router.add_get("/api/stats", self._handle_stats)
        app.router.add_get("/api/networks", self._handle_networks)
        app.router.add_post("/api/scans", self._handle_trigger_scan)
        app.router.add_get("/api/scans/status", self._handle_scan_status)
        app.router.add_get("/api/health", self._handle_health)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def _on_cleanup(self, app: web.Application) -> None:
        if self._scan_tasks:
            logger.info(f"Waiting for {len(self._scan_tasks)} running scan(s) to finish")
            await asyncio.gather(*self._scan_tasks, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _handle_list_devices(self, request: web.Request) -> web.Response:
        """Handle GET /api/devices."""
        try:
            devices = await self._run(self.service.get_devices)
        except LighthouseError as e:
            logger.error(f"Failed to list devices: {e}")
            return _error_response(e)

        logger.debug(f"Returning {len(devices)} devices")
        return web.json_response([d.to_dict() for d in devices])

    async def _handle_stats(self, request: web.Request) -> web.Response:
        """Handle GET /api/stats."""
        try:
            stats = await self._run(self.service.get_stats)
        except LighthouseError as e:
            logger.error(f"Failed to get stats: {e}")
            return _error_response(e)

        return web.json_response(stats.to_dict())

    async def _handle_networks(self, request: web.Request) -> web.Response:
        """Handle GET /api/networks."""
        networks = await self._run(self.service.get_networks)
        return web.json_response([n.to_dict() for n in networks])

    async def _handle_trigger_scan(self, request: web.Request) -> web.Response:
        """Handle POST /api/scans."""
        network: Optional[str] = None
        if request.body_exists:
            try:
                data = await request.json()
            except ValueError:
                return web.json_response(
                    {"status": "error", "message": "Request body must be JSON"},
                    status=400,
                )
            if isinstance(data, dict):
                network = data.get("network") or None

        # Reserve the slot before answering so a second request gets 409
        if not self.service.try_begin_scan():
            return _error_response(ScanInProgress(network))

        task = asyncio.create_task(self._scan_in_background(network))
        self._scan_tasks.add(task)
        task.add_done_callback(self._scan_tasks.discard)

        return web.json_response(
            {"status": "started", "network": network or "auto"},
            status=202,
        )

    async def _scan_in_background(self, network: Optional[str]) -> None:
        # run_scan releases the slot taken by try_begin_scan
        scan = functools.partial(self.service.run_scan, network, "api", lock_held=True)
        try:
            await self._run(scan)
        except LighthouseError as e:
            # Failure is recorded on service.last_scan
            logger.error(f"Background scan failed: {e}")
        except Exception:
            logger.exception("Background scan crashed")

    async def _handle_scan_status(self, request: web.Request) -> web.Response:
        """Handle GET /api/scans/status."""
        latest = self.service.last_scan
        return web.json_response({
            "running": self.service.scan_running,
            "latest": latest.to_dict() if latest else None,
        })

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /api/health."""
        try:
            stats = await self._run(self.service.store.stats)
        except LighthouseError as e:
            return _error_response(e)

        latest = self.service.last_scan
        return web.json_response({
            "status": "ok",
            "service": "lighthouse",
            "devices": stats.total,
            "last_scan": latest.started_at.isoformat() if latest else None,
        })


def run_server(service: PresenceService, host: str = "127.0.0.1", port: int = 8080) -> None:
    """Serve the API until interrupted."""
    app = PresenceAPI(service).build_app()
    logger.info(f"API server starting on {host}:{port}")
    web.run_app(app, host=host, port=port, print=None)
