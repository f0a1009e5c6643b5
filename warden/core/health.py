"""
Group Warden - Health Check Server
==================================

HTTP liveness endpoint for external monitoring.

DESIGN:
    A lightweight aiohttp server running inside the warden's event loop.
    ``GET /`` answers with a fixed acknowledgement line so a plain uptime
    pinger keeps the host awake; ``GET /health`` returns JSON with the
    session state, policy count and queue backlog. No business logic and
    no sensitive data (no ids, no credentials).
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from aiohttp import web

from warden.core.logger import NY_TZ, logger

if TYPE_CHECKING:
    from warden.session import SessionManager


ONLINE_TEXT = "✅ Group Warden is online and ready!"


# =============================================================================
# Health Check Server
# =============================================================================

class HealthCheckServer:
    """
    Simple HTTP health check server for monitoring.

    Attributes:
        session: Session manager queried for status.
        port: Port number for the HTTP server.
        app: aiohttp Application instance.
        runner: aiohttp AppRunner for lifecycle management.
    """

    def __init__(self, session: "SessionManager", port: int = 10000, host: str = "0.0.0.0") -> None:
        self.session = session
        self.port = port
        self.host = host
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None

        self.app.router.add_get("/", self.root_handler)
        self.app.router.add_get("/health", self.health_handler)

    # =========================================================================
    # Request Handlers
    # =========================================================================

    async def root_handler(self, request: web.Request) -> web.Response:
        return web.Response(text=ONLINE_TEXT)

    async def health_handler(self, request: web.Request) -> web.Response:
        """
        Handle health check requests.

        "healthy" means the session is logged in and listening; any other
        session state is reported as-is under ``status``.
        """
        try:
            status = self.session.status()
            body = {
                "status": "healthy" if status["state"] == "active" else status["state"],
                "service": "Group Warden",
                **status,
                "timestamp": datetime.now(NY_TZ).isoformat(),
            }
            logger.debug(f"Health check: {body['status']}")
            return web.json_response(body)

        except Exception as e:
            logger.error("Health Check Error", [
                ("Error", str(e)[:100]),
            ])
            return web.json_response(
                {"status": "error", "error": str(e)},
                status=500,
            )

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def start(self) -> None:
        """Start serving; a bind failure is logged, not raised."""
        try:
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()
            site = web.TCPSite(self.runner, self.host, self.port)
            await site.start()

            logger.tree("Health Server Started", [
                ("Port", str(self.port)),
                ("Endpoint", f"http://{self.host}:{self.port}/health"),
            ], emoji="🏥")

        except OSError as e:
            logger.error("Health Server Startup Failed", [
                ("Port", str(self.port)),
                ("Error", str(e)[:100]),
            ])

    async def stop(self) -> None:
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
            logger.info("Health check server stopped")


__all__ = ["HealthCheckServer"]
