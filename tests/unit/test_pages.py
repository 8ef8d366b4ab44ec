"""Unit tests for page loading and rendering."""

import os
from pathlib import Path

import pytest
from aiohttp import web
from aiohttp.test_utils import make_mocked_request

from pagerouter.core.errors import NotFound, PageLoadError
from pagerouter.core.pages import Page, PageLoader


@pytest.fixture
def pages_dir(tmp_path: Path) -> Path:
    """Create a pages directory with a few pages."""
    root = tmp_path / "pages"
    (root / "users").mkdir(parents=True)
    (root / "users" / "show.py").write_text(
        "def handle(request, params):\n"
        "    return '<h1>User ' + str(params['id']) + '</h1>'\n"
    )
    (root / "async_page.py").write_text(
        "from aiohttp import web\n"
        "\n"
        "async def handle(request, params):\n"
        "    return web.json_response(params)\n"
    )
    (root / "broken.py").write_text("handle = None\n")
    (root / "crash.py").write_text("raise RuntimeError('import failure')\n")
    (root / "number.py").write_text("def handle(request, params):\n    return 42\n")
    (root / "about.html").write_text("<p>About</p>")
    (tmp_path / "secret.py").write_text("def handle(request, params):\n    return 'secret'\n")
    return root


@pytest.fixture
def loader(pages_dir: Path) -> PageLoader:
    """Create a page loader over the test pages."""
    return PageLoader(pages_dir)


class TestPageLoader:
    """Tests for PageLoader."""

    def test_exists(self, loader: PageLoader, tmp_path: Path):
        """Test the pages directory check."""
        assert loader.exists() is True
        assert PageLoader(tmp_path / "missing").exists() is False

    def test_locate(self, loader: PageLoader, pages_dir: Path):
        """Test page identifiers are resolved below the pages directory."""
        assert loader.locate("users/show.py") == (pages_dir / "users" / "show.py").resolve()
        assert loader.locate("users/missing.py") is None
        assert loader.locate("users") is None

    def test_locate_outside_pages_dir(self, loader: PageLoader):
        """Test identifiers escaping the pages directory are not found."""
        assert loader.locate("../secret.py") is None

    def test_load_python_page(self, loader: PageLoader):
        """Test a Python page gets its handle callable."""
        page = loader.load("users/show.py")

        assert page.page == "users/show.py"
        assert page.handler is not None

    def test_load_static_page(self, loader: PageLoader):
        """Test non-Python files have no handler."""
        page = loader.load("about.html")

        assert page.handler is None

    def test_load_missing_page(self, loader: PageLoader):
        """Test a missing page raises NotFound."""
        with pytest.raises(NotFound):
            loader.load("users/missing.py")

        with pytest.raises(NotFound):
            loader.load("../secret.py")

    def test_load_without_handle(self, loader: PageLoader):
        """Test a page module without handle() fails to load."""
        with pytest.raises(PageLoadError, match="handle"):
            loader.load("broken.py")

    def test_load_module_error(self, loader: PageLoader):
        """Test errors raised while executing a page module."""
        with pytest.raises(PageLoadError, match="import failure"):
            loader.load("crash.py")

    def test_load_is_cached(self, loader: PageLoader):
        """Test unchanged pages are loaded once."""
        assert loader.load("users/show.py") is loader.load("users/show.py")

    def test_load_reloads_modified_page(self, loader: PageLoader, pages_dir: Path):
        """Test a modified page file is reloaded."""
        first = loader.load("users/show.py")

        path = pages_dir / "users" / "show.py"
        path.write_text("def handle(request, params):\n    return 'changed'\n")
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))

        assert loader.load("users/show.py") is not first


class TestPageRender:
    """Tests for Page.render."""

    @pytest.mark.asyncio
    async def test_render_string_result(self, loader: PageLoader):
        """Test a str result becomes an HTML response."""
        request = make_mocked_request("GET", "/users/42")

        response = await loader.load("users/show.py").render(request, {"id": "42"})

        assert response.status == 200
        assert response.content_type == "text/html"
        assert response.text == "<h1>User 42</h1>"

    @pytest.mark.asyncio
    async def test_render_async_handler(self, loader: PageLoader):
        """Test async handlers are awaited and their response kept."""
        request = make_mocked_request("GET", "/async")

        response = await loader.load("async_page.py").render(request, {"id": "7"})

        assert response.content_type == "application/json"
        assert response.text == '{"id": "7"}'

    @pytest.mark.asyncio
    async def test_render_static_file(self, loader: PageLoader):
        """Test files without a handler are served as files."""
        request = make_mocked_request("GET", "/about")

        response = await loader.load("about.html").render(request, {})

        assert isinstance(response, web.FileResponse)

    @pytest.mark.asyncio
    async def test_render_invalid_result(self, loader: PageLoader):
        """Test unsupported handler results raise PageLoadError."""
        request = make_mocked_request("GET", "/number")

        with pytest.raises(PageLoadError, match="int"):
            await loader.load("number.py").render(request, {})

    @pytest.mark.asyncio
    async def test_render_custom_handler(self, tmp_path: Path):
        """Test a page built around an in-process handler."""

        def handler(request, params):
            return web.Response(text=f"{request.method} {params['name']}")

        page = Page(page="inline.py", path=tmp_path / "inline.py", handler=handler)
        response = await page.render(make_mocked_request("POST", "/"), {"name": "x"})

        assert response.text == "POST x"
