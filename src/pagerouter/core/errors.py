"""Error types raised by the routing engine.

Configuration errors surface while routes are declared. HTTP errors are
carried inside resolution outcomes and mapped to responses by the HTTP layer.
"""


class RouterError(Exception):
    """Base class for all routing errors."""


class ConfigurationError(RouterError):
    """A route pattern or parameter definition is malformed."""


class MissingParameterError(RouterError):
    """A required placeholder has no value, default or accessor."""

    def __init__(self, name: str):
        """Initialize the error.

        Args:
            name: Placeholder name that could not be filled
        """
        super().__init__(f"Undefined required variable {name}")
        self.name = name


class HttpError(RouterError):
    """A request that cannot be routed, with the HTTP status to answer."""

    status: int = 500
    kind: str = "internal_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message())

    @classmethod
    def default_message(cls) -> str:
        return cls.kind.replace("_", " ").capitalize()


class BadRequest(HttpError):
    """Malformed or unsafe request path."""

    status = 400
    kind = "bad_request"


class NotFound(HttpError):
    """No page or canonical route exists for the request."""

    status = 404
    kind = "not_found"


class PageLoadError(RouterError):
    """A page file exists but does not expose a usable handler."""
