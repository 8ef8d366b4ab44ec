"""Request handler for the page router.

This module connects the routing engine to aiohttp: it resolves each
incoming request, then renders the page, redirects, or answers with an
error response.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from aiohttp import web

from pagerouter.core.config import AppConfig
from pagerouter.core.errors import HttpError, PageLoadError
from pagerouter.core.logging import RouterLogger
from pagerouter.core.metrics import RouterMetrics
from pagerouter.core.pages import PageLoader
from pagerouter.core.routing import Redirect, Rejected, Resolved, Router
from pagerouter.core.server import ROUTER_KEY

logger = logging.getLogger(__name__)


class PageRequestHandler:
    """Main request handler for the page router.

    Coordinates:
    - Correlation IDs and request logging
    - Request path resolution
    - Canonical redirects
    - Page rendering
    - Error responses (400, 404, 500)
    """

    def __init__(
        self,
        router: Router,
        pages: PageLoader,
        config: AppConfig,
        structured_logger: RouterLogger,
        metrics: RouterMetrics,
    ):
        """Initialize the request handler.

        Args:
            router: Router instance
            pages: Page loader
            config: Application configuration
            structured_logger: Router logger instance
            metrics: Router metrics instance
        """
        self.router = router
        self.pages = pages
        self.config = config
        self.structured_logger = structured_logger
        self.metrics = metrics

    async def handle_request(self, request: web.Request) -> web.StreamResponse:
        """Handle an incoming HTTP request.

        Args:
            request: aiohttp Request object

        Returns:
            Response for the request
        """
        start_time = time.time()
        header = self.config.logging.correlation_id_header
        correlation_id = self.structured_logger.set_correlation_id(request.headers.get(header))

        self.structured_logger.log_request(
            method=request.method,
            path=request.path,
            client_ip=request.remote,
            user_agent=request.headers.get("User-Agent"),
            headers=dict(request.headers),
        )

        try:
            response = await self._dispatch(request, correlation_id)
        except web.HTTPException as e:
            e.headers[header] = correlation_id
            self._finish(request, e.status, start_time)
            raise
        except Exception as e:
            logger.exception(
                f"Unexpected error handling request: {e}",
                extra={"correlation_id": correlation_id},
            )
            self.metrics.record_error(type(e).__name__)
            response = self._error_response(
                500, "internal_error", "An unexpected error occurred", correlation_id
            )

        response.headers[header] = correlation_id
        self._finish(request, response.status, start_time)
        return response

    async def _dispatch(self, request: web.Request, correlation_id: str) -> web.StreamResponse:
        outcome = self.router.resolve(request.path, dict(request.query))

        if isinstance(outcome, Rejected):
            return self._rejected(request, outcome.error, correlation_id)

        if isinstance(outcome, Redirect):
            location = f"{request.scheme}://{request.host}{outcome.location}"
            self.metrics.record_resolution("redirect")
            self.structured_logger.log_resolution(
                path=request.path,
                outcome="redirect",
                location=location,
                status_code=outcome.status,
            )
            raise _redirect_class(outcome.status)(location=location)

        return await self._render(request, outcome, correlation_id)

    async def _render(
        self, request: web.Request, outcome: Resolved, correlation_id: str
    ) -> web.StreamResponse:
        try:
            page = self.pages.load(outcome.page)
        except HttpError as e:
            return self._rejected(request, e, correlation_id)
        except PageLoadError as e:
            logger.error(str(e), extra={"page": outcome.page})
            self.metrics.record_error("page_load")
            return self._error_response(
                500, "internal_error", "The page could not be loaded", correlation_id
            )

        self.metrics.record_resolution("resolved")
        self.structured_logger.log_resolution(
            path=request.path, outcome="resolved", page=outcome.page
        )

        request["route_params"] = outcome.params
        request["page"] = outcome.page
        self.metrics.record_page_render(outcome.page)
        return await page.render(request, dict(outcome.query))

    def _rejected(
        self, request: web.Request, error: HttpError, correlation_id: str
    ) -> web.Response:
        self.metrics.record_resolution("rejected")
        self.structured_logger.log_resolution(
            path=request.path,
            outcome="rejected",
            status_code=error.status,
            reason=str(error),
        )
        return self._error_response(
            error.status, error.kind, error.default_message(), correlation_id
        )

    @staticmethod
    def _error_response(
        status: int, error: str, message: str, correlation_id: str
    ) -> web.Response:
        return web.json_response(
            {
                "error": error,
                "message": message,
                "correlation_id": correlation_id,
                "timestamp": datetime.now(UTC).isoformat(),
            },
            status=status,
        )

    def _finish(self, request: web.Request, status: int, start_time: float) -> None:
        duration = time.time() - start_time
        self.metrics.record_request(request.method, status, duration)
        self.structured_logger.log_response(
            method=request.method,
            path=request.path,
            status_code=status,
            latency_ms=duration * 1000,
        )
        self.structured_logger.clear_correlation_id()


def _redirect_class(status: int) -> type[web.HTTPMove]:
    if status == 302:
        return web.HTTPFound
    return web.HTTPMovedPermanently


def create_page_handler(
    handler: PageRequestHandler,
) -> Callable[[web.Request], Awaitable[web.StreamResponse]]:
    """Create an aiohttp route handler from a PageRequestHandler.

    Args:
        handler: PageRequestHandler instance

    Returns:
        Coroutine function usable with ``app.router.add_route``
    """

    async def page_handler(request: web.Request) -> web.StreamResponse:
        return await handler.handle_request(request)

    return page_handler


def route_params(request: web.Request) -> dict[str, Any]:
    """Route parameters resolved for a request, for use inside page handlers."""
    return request.get("route_params", {})


def path_for(request: web.Request, page: str, params: Any = None) -> str:
    """Build the path of another page from inside a page handler.

    Args:
        request: Request being served
        page: Page identifier, or the home alias
        params: Mapping or object with the parameters of the link

    Raises:
        MissingParameterError: If the page's route needs a missing parameter
    """
    return request.app[ROUTER_KEY].path_for(page, params)
