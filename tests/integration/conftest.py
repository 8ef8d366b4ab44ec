"""Shared fixtures for integration tests."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from aiohttp.test_utils import TestClient, TestServer

from pagerouter.core.application import Application
from pagerouter.core.config import (
    AppConfig,
    LoggingConfig,
    ParamDefinition,
    RouteConfig,
    RouterConfig,
)

PAGES = {
    "index.py": "def handle(request, params):\n    return 'Home'\n",
    "about.py": "def handle(request, params):\n    return 'About us'\n",
    "docs/index.py": "def handle(request, params):\n    return 'Documentation'\n",
    "users/show.py": (
        "from aiohttp import web\n"
        "\n"
        "from pagerouter.core.handler import path_for, route_params\n"
        "\n"
        "\n"
        "async def handle(request, params):\n"
        "    links = {\n"
        "        'next': path_for(request, 'users/show.py', {'id': int(params['id']) + 1}),\n"
        "        'posts': path_for(request, 'posts/index.py', {'page': 2}),\n"
        "        'home': path_for(request, 'home'),\n"
        "    }\n"
        "    return web.json_response(\n"
        "        {\n"
        "            'params': params,\n"
        "            'route_params': route_params(request),\n"
        "            'page': request['page'],\n"
        "            'links': links,\n"
        "        }\n"
        "    )\n"
    ),
    "posts/index.py": (
        "def handle(request, params):\n"
        "    return 'Posts page ' + str(params['page'])\n"
    ),
    "broken.py": "def render(request, params):\n    return 'no handle here'\n",
    "failing.py": "def handle(request, params):\n    raise RuntimeError('page failure')\n",
    "_private/secret.py": "def handle(request, params):\n    return 'secret'\n",
}


@pytest.fixture
def pages_dir(tmp_path: Path) -> Path:
    """Create a pages directory for integration tests."""
    root = tmp_path / "pages"
    for name, content in PAGES.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture
def integration_config(pages_dir: Path) -> AppConfig:
    """Create application configuration for integration tests."""
    config = AppConfig(environment="test")
    config.logging = LoggingConfig(level="DEBUG", propagate=True)
    config.router = RouterConfig(
        pages_dir=str(pages_dir),
        definitions=[ParamDefinition(name="id", regex=r"\d+")],
        routes=[
            RouteConfig(pattern="/users/:id", page="users/show.py"),
            RouteConfig(
                pattern="/posts(/page-:page)",
                page="posts/index.py",
                params=[ParamDefinition(name="page", regex=r"\d+", default=1)],
            ),
        ],
    )
    return config


@pytest.fixture
def application(integration_config: AppConfig) -> Application:
    """Create a page router application for testing."""
    return Application(integration_config)


@pytest.fixture
async def client(application: Application) -> AsyncGenerator[TestClient, None]:
    """Create a test client for the application."""
    server = TestServer(application.build_app())
    client = TestClient(server)
    await client.start_server()
    yield client
    await client.close()
