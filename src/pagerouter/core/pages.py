"""Page loading for resolved page identifiers.

A page identifier names a file below the pages directory. Python files are
loaded as modules and must expose a ``handle(request, params)`` callable,
which may be sync or async. Any other file is served as-is.
"""

import importlib.util
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from aiohttp import web

from pagerouter.core.errors import NotFound, PageLoadError

logger = logging.getLogger(__name__)

PageHandler = Callable[[web.Request, dict[str, Any]], Any]


@dataclass(frozen=True)
class Page:
    """A loaded page ready to render requests."""

    page: str
    path: Path
    handler: PageHandler | None = None

    async def render(self, request: web.Request, params: dict[str, Any]) -> web.StreamResponse:
        """Render the page for a request.

        Args:
            request: aiohttp Request object
            params: Query parameters merged with route parameters

        Returns:
            Response produced by the page
        """
        if self.handler is None:
            return web.FileResponse(self.path)

        result = self.handler(request, params)
        if inspect.isawaitable(result):
            result = await result

        if isinstance(result, web.StreamResponse):
            return result
        if isinstance(result, str):
            return web.Response(text=result, content_type="text/html")

        raise PageLoadError(
            f"Page {self.page} returned {type(result).__name__}, expected a response or str"
        )


class PageLoader:
    """Locates page files and loads page modules.

    Modules are cached per file and reloaded when the file's modification
    time changes.
    """

    def __init__(self, pages_dir: str | Path):
        """Initialize the page loader.

        Args:
            pages_dir: Directory holding page files
        """
        self.pages_dir = Path(pages_dir).resolve()
        self._cache: dict[Path, tuple[float, Page]] = {}

    def exists(self) -> bool:
        """Check the pages directory exists."""
        return self.pages_dir.is_dir()

    def locate(self, page: str) -> Path | None:
        """Find the file backing a page identifier.

        Args:
            page: Page identifier, relative to the pages directory

        Returns:
            Path to the file, or None if there is none
        """
        path = (self.pages_dir / page).resolve()
        if not path.is_relative_to(self.pages_dir) or not path.is_file():
            return None
        return path

    def load(self, page: str) -> Page:
        """Load a page.

        Args:
            page: Page identifier

        Returns:
            Loaded Page

        Raises:
            NotFound: If no file backs the page identifier
            PageLoadError: If a page module has no handle callable
        """
        path = self.locate(page)
        if path is None:
            raise NotFound(f"Page not found: {page}")

        mtime = path.stat().st_mtime
        cached = self._cache.get(path)
        if cached is not None and cached[0] == mtime:
            return cached[1]

        if path.suffix == ".py":
            loaded = Page(page=page, path=path, handler=self._load_handler(page, path))
        else:
            loaded = Page(page=page, path=path)

        self._cache[path] = (mtime, loaded)
        logger.debug(f"Loaded page {page}", extra={"page": page, "file": str(path)})
        return loaded

    @staticmethod
    def _load_handler(page: str, path: Path) -> PageHandler:
        module_name = "_page_" + "".join(c if c.isalnum() else "_" for c in page)
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise PageLoadError(f"Cannot load page module {path}")

        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            raise PageLoadError(f"Error executing page module {path}: {e}") from e

        handler = getattr(module, "handle", None)
        if handler is None or not callable(handler):
            raise PageLoadError(f"Page module {path} does not define a handle() callable")

        return handler
