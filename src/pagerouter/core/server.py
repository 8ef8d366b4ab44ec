"""HTTP Server module for the page router.

Owns the aiohttp application and its runner. The router is published on the
application so page handlers can build links to other pages.
"""

import logging

from aiohttp import web

from pagerouter.core.config import AppConfig
from pagerouter.core.routing import Router

logger = logging.getLogger(__name__)

ROUTER_KEY = web.AppKey("router", Router)


class HTTPServer:
    """HTTP Server for the page router.

    Handles:
    - Creation of the aiohttp application
    - Binding the configured host and port
    - Graceful shutdown of open connections
    """

    def __init__(self, config: AppConfig, router: Router):
        """Initialize the HTTP server.

        Args:
            config: Application configuration
            router: Router resolving request paths
        """
        self.config = config
        self.router = router
        self.app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @property
    def running(self) -> bool:
        return self._runner is not None

    @property
    def url(self) -> str:
        return f"http://{self.config.server.host}:{self.config.server.port}"

    def create_app(self) -> web.Application:
        """Create and configure the aiohttp application.

        Returns:
            Configured aiohttp Application instance
        """
        app = web.Application(
            client_max_size=self.config.server.client_max_size,
            handler_args={"keepalive_timeout": self.config.server.keepalive_timeout},
        )
        app[ROUTER_KEY] = self.router

        app.on_startup.append(self._on_startup)
        app.on_shutdown.append(self._on_shutdown)

        self.app = app
        return app

    async def start(self) -> None:
        """Start serving the application.

        Raises:
            RuntimeError: If server is already running
        """
        if self.running:
            raise RuntimeError("Server is already running")

        app = self.app or self.create_app()

        # Access logging is done by the request handler
        self._runner = web.AppRunner(
            app,
            access_log=None,
            shutdown_timeout=self.config.server.shutdown_timeout,
        )
        await self._runner.setup()

        self._site = web.TCPSite(
            self._runner,
            host=self.config.server.host,
            port=self.config.server.port,
        )
        await self._site.start()

        logger.info(
            f"HTTP server started on {self.url}",
            extra={"host": self.config.server.host, "port": self.config.server.port},
        )

    async def stop(self) -> None:
        """Stop the HTTP server, letting open requests finish."""
        if self._runner is None:
            logger.warning("Server is not running")
            return

        logger.info("Stopping HTTP server...")
        await self._runner.cleanup()
        self._runner = None
        self._site = None
        logger.info("HTTP server stopped")

    async def _on_startup(self, app: web.Application) -> None:
        logger.info(
            f"Serving {len(app[ROUTER_KEY].routes)} routes",
            extra={"web_root": app[ROUTER_KEY].web_root},
        )

    async def _on_shutdown(self, app: web.Application) -> None:
        logger.info("Application shutting down...")
