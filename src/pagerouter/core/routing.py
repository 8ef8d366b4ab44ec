"""Routing engine.

This module maps request paths to page identifiers and back:
- Route declaration with per-parameter regexes and defaults
- Forward matching of request paths against declared routes
- Path generation from a page identifier and parameter values
- Fallback to filesystem-style page identifiers
- Canonicalization redirects and request path security checks

Resolution never stores per-request state on the Router or its routes; every
outcome is returned to the caller.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any
from urllib.parse import parse_qsl, quote, urlencode

from pagerouter.core.config import RouterConfig
from pagerouter.core.errors import BadRequest, HttpError, MissingParameterError, NotFound
from pagerouter.core.pattern import CompiledPattern, Literal, Placeholder, compile_pattern

logger = logging.getLogger(__name__)

PATH_SEPARATORS = re.compile(r"[\\/]")


def lookup_parameter(values: Any, name: str) -> Any:
    """Get a parameter value from a mapping or an object.

    Mappings are looked up by key. Objects are looked up by attribute, then
    through an accessor method: ``get_<name>()`` or ``get<CamelName>()``.

    Args:
        values: Mapping, object or None
        name: Placeholder name

    Returns:
        The value, or None if it is not available
    """
    if values is None:
        return None

    if isinstance(values, Mapping):
        return values.get(name)

    value = getattr(values, name, None)
    if value is not None:
        return value

    camel = "".join(word.capitalize() for word in name.lower().split("_"))
    for accessor_name in (f"get_{name}", f"get{camel}"):
        accessor = getattr(values, accessor_name, None)
        if callable(accessor):
            return accessor()

    return None


@dataclass(frozen=True)
class Generation:
    """Result of expanding a route template.

    Exactly one of ``path`` and ``missing`` is set.
    """

    path: str | None = None
    missing: str | None = None

    @property
    def ok(self) -> bool:
        return self.missing is None

    def unwrap(self) -> str:
        """Return the generated path.

        Raises:
            MissingParameterError: If a required placeholder was not filled
        """
        if self.missing is not None:
            raise MissingParameterError(self.missing)
        return self.path or ""


class Route:
    """A single route pattern with its parameter definitions and defaults."""

    def __init__(
        self,
        pattern: str,
        definitions: Mapping[str, str] | None = None,
        defaults: Mapping[str, Any] | None = None,
    ):
        """Initialize and compile the route.

        Args:
            pattern: Request pattern, e.g. /users/:id
            definitions: Regex fragment per placeholder
            defaults: Default value per placeholder

        Raises:
            ConfigurationError: If the pattern is malformed
        """
        self.pattern = pattern if pattern.startswith("/") else "/" + pattern
        self.definitions: dict[str, str] = dict(definitions or {})
        self.defaults: dict[str, Any] = dict(defaults or {})
        self.compiled: CompiledPattern = compile_pattern(self.pattern, self.definitions)

    def define(self, name: str, regex: str | None = None, default: Any = None) -> "Route":
        """Define a parameter regex and/or its default value.

        Args:
            name: Placeholder name
            regex: Regex fragment the parameter must match
            default: Default value of the parameter

        Returns:
            The route itself, for chaining

        Raises:
            ConfigurationError: If the regex does not compile
        """
        if regex is not None:
            definitions = {**self.definitions, name: regex}
            self.compiled = compile_pattern(self.pattern, definitions)
            self.definitions = definitions

        if default is not None:
            self.defaults[name] = default

        return self

    def match(self, request: str) -> dict[str, Any] | None:
        """Match a request path against the route.

        Args:
            request: Decoded request path without query string

        Returns:
            Parameter values if matched, None otherwise
        """
        compiled = self.compiled

        if compiled.is_static:
            return dict(self.defaults) if request == compiled.pattern else None

        assert compiled.regex is not None
        match = compiled.regex.fullmatch(request)
        if match is None:
            return None

        params = dict(self.defaults)
        for name, index in compiled.groups:
            value = match.group(index)
            # Optional segments that did not participate keep their default
            if value is not None:
                params[name] = value

        return params

    def expand(self, values: Any = None) -> Generation:
        """Fill the pattern with parameter values.

        Optional segments without a value, or whose value equals the
        default, are left out.

        Args:
            values: Mapping or object providing placeholder values

        Returns:
            Generation holding the path or the first missing placeholder
        """
        compiled = self.compiled
        if compiled.is_static:
            return Generation(path=compiled.pattern)

        output: list[str] = []
        for part in compiled.template:
            if isinstance(part, Literal):
                output.append(part.text)
            elif isinstance(part, Placeholder):
                value = lookup_parameter(values, part.name)
                if value is None:
                    value = self.defaults.get(part.name)
                if value is None:
                    return Generation(missing=part.name)
                output.append(_format_value(value))
            else:
                value = lookup_parameter(values, part.name)
                if value is None or self._is_default(part.name, value):
                    continue
                for inner in part.parts:
                    output.append(
                        inner.text if isinstance(inner, Literal) else _format_value(value)
                    )

        return Generation(path="".join(output))

    def generate(self, values: Any = None) -> str:
        """Generate the path linking to this route.

        Args:
            values: Mapping or object providing placeholder values

        Returns:
            Path for this route

        Raises:
            MissingParameterError: If a required placeholder has no value
        """
        return self.expand(values).unwrap()

    def _is_default(self, name: str, value: Any) -> bool:
        return name in self.defaults and str(self.defaults[name]) == str(value)

    def __repr__(self) -> str:
        return f"Route({self.pattern!r})"


def _format_value(value: Any) -> str:
    return quote(str(value), safe="/")


@dataclass(frozen=True)
class Resolved:
    """The request maps to a page."""

    page: str
    params: dict[str, Any] = field(default_factory=dict)
    # Ambient query parameters merged with route parameters
    query: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Redirect:
    """The request must be redirected to its canonical location."""

    location: str
    status: int = 301


@dataclass(frozen=True)
class Rejected:
    """The request cannot be routed."""

    error: HttpError

    @property
    def status(self) -> int:
        return self.error.status


Resolution = Resolved | Redirect | Rejected


class Router:
    """Maps request paths to page identifiers.

    Responsibilities:
    - Holding the ordered route table
    - Applying global parameter definitions to new routes
    - Resolving requests through routes or filesystem-style fallback
    - Building site-relative paths and absolute URLs to pages

    Usage:
        router = Router()
        router.define("id", r"\\d+").define("page", r"\\d+", 1)
        router.route("/users/:id", "users/show.py")
        router.route("/posts(/page-:page)", "posts/index.py")

        outcome = router.resolve("/users/42")
    """

    def __init__(
        self,
        web_root: str = "/",
        front_controller: str = "",
        extension: str = ".py",
        private_marker: str = "_",
        home_alias: str = "home",
        server_name: str = "localhost",
    ):
        """Initialize the router.

        Args:
            web_root: HTTP path to the web root
            front_controller: Front controller file name, empty when URLs are
                rewritten to hide it
            extension: Page file extension
            private_marker: Leading character of non-routable files
            home_alias: Page identifier standing for the site root
            server_name: Host used by url_for when none is given
        """
        self.web_root = "/" + web_root.strip("/") + "/" if web_root.strip("/") else "/"
        self.front_controller = front_controller.strip("/")
        self.extension = extension
        self.private_marker = private_marker
        self.home_alias = home_alias
        self.server_name = server_name
        self._routes: dict[str, Route] = {}
        self._global_definitions: dict[str, tuple[str | None, Any]] = {}
        self._index_suffix = re.compile(r"(?:(?:^|(?<=/))index)?" + re.escape(extension) + "$")

    @property
    def routes(self) -> Mapping[str, Route]:
        """Read-only view of the route table."""
        return MappingProxyType(self._routes)

    def define(self, name: str, regex: str | None = None, default: Any = None) -> "Router":
        """Define a parameter regex and default for routes declared afterwards.

        Args:
            name: Placeholder name
            regex: Regex fragment
            default: Default value

        Returns:
            The router itself, for chaining
        """
        self._global_definitions[name] = (regex, default)
        return self

    def route(self, pattern: str, page: str) -> Route:
        """Declare a route.

        Args:
            pattern: Request pattern, e.g. /users/:id
            page: Page identifier returned when the pattern matches

        Returns:
            The new route, to chain parameter definitions

        Raises:
            ConfigurationError: If the pattern is malformed
        """
        definitions = {
            name: regex for name, (regex, _) in self._global_definitions.items() if regex is not None
        }
        defaults = {
            name: default
            for name, (_, default) in self._global_definitions.items()
            if default is not None
        }
        route = Route(pattern, definitions, defaults)
        self._routes[page.lstrip("/")] = route
        return route

    def resolve(self, request_path: str, query: Mapping[str, Any] | None = None) -> Resolution:
        """Resolve a request path to a page, a redirect or a rejection.

        Args:
            request_path: Decoded request path, optionally with a query string
            query: Ambient query parameters of the request

        Returns:
            Resolved, Redirect or Rejected
        """
        path, _, query_string = request_path.partition("?")
        ambient: dict[str, Any] = dict(parse_qsl(query_string, keep_blank_values=True))
        if query:
            ambient.update(query)

        if path:
            path = self._strip_prefix(path)
        if not path.startswith("/"):
            return Rejected(BadRequest(f"Request path must start with '/': {path!r}"))

        path = path.replace("\0", "")
        if not self._is_safe(path):
            return Rejected(BadRequest(f"Illegal request path: {path!r}"))

        for page, route in self._routes.items():
            params = route.match(path)
            if params is not None:
                return Resolved(page=page, params=params, query={**ambient, **params})

        stem = path
        explicit = bool(self.extension) and stem.endswith(self.extension)
        if explicit:
            stem = stem[: -len(self.extension)]

        # Requests ending with index are redirected to keep URLs consistent
        if stem.rsplit("/", 1)[-1] == "index":
            return self._canonical_redirect(stem + self.extension, ambient)

        if stem.endswith("/"):
            stem += "index"

        candidate = (stem + self.extension).lstrip("/")

        # The page is only reachable through its rewritten route
        if candidate in self._routes:
            return self._canonical_redirect(candidate, ambient)

        # Pages are linked without their extension
        if explicit:
            return self._canonical_redirect(candidate, ambient)

        return Resolved(page=candidate, params={}, query=ambient)

    def path_for(self, page: str, params: Any = None) -> str:
        """Create the site-relative path of a page.

        Args:
            page: Page identifier, or the home alias
            params: Mapping or object with the parameters of the link

        Returns:
            Path of the page, including web root and front controller

        Raises:
            MissingParameterError: If the page's route needs a missing parameter
        """
        return self._build_path(page, params).unwrap()

    def url_for(
        self,
        page: str,
        params: Any = None,
        scheme: str = "http",
        host: str | None = None,
        port: int | None = None,
    ) -> str:
        """Create the absolute URL of a page.

        Args:
            page: Page identifier, or the home alias
            params: Mapping or object with the parameters of the link
            scheme: URL scheme
            host: Host name, defaults to the configured server name
            port: Port, omitted when None

        Returns:
            Absolute URL of the page

        Raises:
            MissingParameterError: If the page's route needs a missing parameter
        """
        authority = host or self.server_name
        if port is not None:
            authority = f"{authority}:{port}"
        return f"{scheme}://{authority}{self.path_for(page, params)}"

    def _build_path(self, page: str, params: Any) -> Generation:
        if page == self.home_alias:
            path = "/"
        else:
            page = page.lstrip("/")
            route = self._routes.get(page)
            if route is not None:
                generation = route.expand(params)
                if not generation.ok:
                    return generation
                path = generation.path or "/"
            else:
                path = "/" + self._index_suffix.sub("", page)
                query = _query_items(params)
                if query:
                    path += "?" + urlencode(query, doseq=True)

        if not self.front_controller:
            return Generation(path=self.web_root + path.lstrip("/"))

        if self.front_controller == "index" + self.extension and path == "/":
            return Generation(path=self.web_root)

        return Generation(path=self.web_root + self.front_controller + path)

    def _canonical_redirect(self, page: str, query: Mapping[str, Any]) -> Redirect | Rejected:
        generation = self._build_path(page, query)
        if not generation.ok:
            # A rewritten page that cannot be linked is unreachable
            return Rejected(NotFound(f"Missing parameter {generation.missing} for {page}"))
        return Redirect(location=generation.unwrap(), status=301)

    def _strip_prefix(self, path: str) -> str:
        """Remove the web root and front controller from a request path."""
        if path + "/" == self.web_root:
            return "/"
        if not path.startswith(self.web_root):
            return path

        path = path[len(self.web_root) :]
        if self.front_controller:
            if path == self.front_controller:
                path = ""
            elif path.startswith(self.front_controller + "/"):
                path = path[len(self.front_controller) + 1 :]

        return "/" + path

    def _is_safe(self, path: str) -> bool:
        """Reject parent directory traversal and private files."""
        for segment in PATH_SEPARATORS.split(path):
            if segment == "..":
                return False
            if segment.startswith(self.private_marker):
                return False
        return True


def _query_items(params: Any) -> dict[str, Any]:
    if params is None:
        return {}
    if isinstance(params, Mapping):
        items = params
    elif hasattr(params, "__dict__"):
        items = vars(params)
    else:
        return {}
    return {key: value for key, value in items.items() if value is not None}


def create_router(config: RouterConfig) -> Router:
    """Create a router from configuration.

    Global definitions are declared first, so they apply to every configured
    route; per-route parameters override them.

    Args:
        config: Router configuration

    Returns:
        Configured Router instance

    Raises:
        ConfigurationError: If a route pattern is malformed
    """
    router = Router(
        web_root=config.web_root,
        front_controller=config.front_controller,
        extension=config.extension,
        private_marker=config.private_marker,
        home_alias=config.home_alias,
        server_name=config.server_name,
    )

    for definition in config.definitions:
        router.define(definition.name, definition.regex, definition.default)

    for route_config in config.routes:
        route = router.route(route_config.pattern, route_config.page)
        for param in route_config.params:
            route.define(param.name, param.regex, param.default)

    logger.info(
        f"Initialized router with {len(router.routes)} routes",
        extra={"route_count": len(router.routes)},
    )

    return router
