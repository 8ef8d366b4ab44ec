"""Main application module.

This module integrates all components:
- HTTP Server
- Router
- Page loader
- Configuration
- Logging
- Metrics
"""

import asyncio
import logging

from aiohttp import web

from pagerouter.core.config import AppConfig
from pagerouter.core.handler import PageRequestHandler, create_page_handler
from pagerouter.core.logging import RouterLogger
from pagerouter.core.metrics import ComponentHealth, HealthStatus, RouterMetrics
from pagerouter.core.pages import PageLoader
from pagerouter.core.routing import Router, create_router
from pagerouter.core.server import HTTPServer

logger = logging.getLogger(__name__)


class Application:
    """Page router application.

    Integrates all components and manages the application lifecycle.
    """

    def __init__(self, config: AppConfig, router: Router | None = None):
        """Initialize the application.

        Args:
            config: Application configuration
            router: Router to use instead of one built from configuration

        Raises:
            ConfigurationError: If a configured route pattern is malformed
        """
        self.config = config
        self.structured_logger = RouterLogger(config.logging)
        self.metrics = RouterMetrics(config.metrics)
        self.router = router or create_router(config.router)
        self.pages = PageLoader(config.router.pages_dir)
        self.handler = PageRequestHandler(
            self.router, self.pages, config, self.structured_logger, self.metrics
        )
        self.server = HTTPServer(config, self.router)

        self.metrics.register_health_check("pages", self._check_pages)

    def _check_pages(self) -> ComponentHealth:
        if self.pages.exists():
            return ComponentHealth(name="pages", status=HealthStatus.HEALTHY)
        return ComponentHealth(
            name="pages",
            status=HealthStatus.UNHEALTHY,
            message=f"Pages directory not found: {self.pages.pages_dir}",
        )

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes attached.

        Returns:
            Configured aiohttp Application instance
        """
        app = self.server.create_app()

        # Health endpoints are registered first so the catch-all cannot shadow them
        if self.config.metrics.enabled:
            app.router.add_get(self.config.metrics.health_endpoint, self._health_check)
            app.router.add_get(self.config.metrics.liveness_endpoint, self._liveness_check)
            app.router.add_get(self.config.metrics.readiness_endpoint, self._readiness_check)
            app.router.add_get(self.config.metrics.endpoint, self._metrics_endpoint)

        app.router.add_route("*", "/{tail:.*}", create_page_handler(self.handler))
        return app

    async def _health_check(self, request: web.Request) -> web.Response:
        health = self.metrics.check_health(detailed=True)
        health["environment"] = self.config.environment
        status = 200 if health["status"] != HealthStatus.UNHEALTHY.value else 503
        return web.json_response(health, status=status)

    async def _liveness_check(self, request: web.Request) -> web.Response:
        return web.json_response(self.metrics.check_liveness(), status=200)

    async def _readiness_check(self, request: web.Request) -> web.Response:
        readiness = self.metrics.check_readiness()
        return web.json_response(readiness, status=200 if readiness["ready"] else 503)

    async def _metrics_endpoint(self, request: web.Request) -> web.Response:
        metrics_text = self.metrics.export_metrics().decode("utf-8")
        return web.Response(text=metrics_text, content_type="text/plain")

    async def start(self) -> None:
        """Start the application."""
        logger.info(
            f"Starting page router in {self.config.environment} environment",
            extra={
                "environment": self.config.environment,
                "routes": len(self.router.routes),
                "pages_dir": str(self.pages.pages_dir),
            },
        )

        if not self.pages.exists():
            logger.warning(f"Pages directory not found: {self.pages.pages_dir}")

        self.build_app()
        await self.server.start()

        logger.info("Page router started successfully")

    async def stop(self) -> None:
        """Stop the application."""
        logger.info("Stopping page router...")
        await self.server.stop()
        logger.info("Page router stopped")

    async def run_forever(self) -> None:
        """Run the application until interrupted."""
        await self.start()

        try:
            await asyncio.Event().wait()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Shutdown signal received")
        finally:
            await self.stop()
