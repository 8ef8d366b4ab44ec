"""Logging module for the page router.

Records go through the ``pagerouter`` logger hierarchy. Each record carries
the correlation ID of the request being served, which lives in a context
variable so concurrent requests never see each other's IDs.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from pagerouter.core.config import LoggingConfig

_correlation_id: ContextVar[str | None] = ContextVar("pagerouter_correlation_id", default=None)

# Attributes set by logging.LogRecord itself
_RESERVED_ATTRIBUTES = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "correlation_id",
        "extra_fields",
    ]
)

REDACTED = "***REDACTED***"


class CorrelationIdFilter(logging.Filter):
    """Stamps records with the correlation ID of the current context."""

    def set_correlation_id(self, correlation_id: str) -> None:
        _correlation_id.set(correlation_id)

    def clear_correlation_id(self) -> None:
        _correlation_id.set(None)

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get() or "none"  # type: ignore
        return True


class JsonFormatter(logging.Formatter):
    """Formats records as one JSON object per line."""

    def __init__(self, redact_patterns: list[str] | None = None):
        """Initialize the JSON formatter.

        Args:
            redact_patterns: Field names whose values are hidden, matched
                case-insensitively as substrings
        """
        super().__init__()
        self.redact_patterns = [pattern.lower() for pattern in redact_patterns or []]

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": _timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "none"),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, dict):
            log_data.update(self._redact(extra))

        # Custom attributes passed through ``extra=``
        log_data.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRIBUTES
        )

        return json.dumps(log_data, default=str)

    def _redact(self, data: dict[str, Any]) -> dict[str, Any]:
        redacted: dict[str, Any] = {}
        for key, value in data.items():
            if self._is_sensitive(key):
                redacted[key] = REDACTED
            elif isinstance(value, dict):
                redacted[key] = self._redact(value)
            else:
                redacted[key] = value
        return redacted

    def _is_sensitive(self, key: str) -> bool:
        lowered = key.lower()
        return any(pattern in lowered for pattern in self.redact_patterns)


class TextFormatter(logging.Formatter):
    """Formats records as single human-readable lines."""

    def format(self, record: logging.LogRecord) -> str:
        line = "{} [{}] [{}] {}: {}".format(
            _timestamp(),
            record.levelname,
            getattr(record, "correlation_id", "none"),
            record.name,
            record.getMessage(),
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


class RouterLogger:
    """Structured event logging for the page router."""

    def __init__(self, config: LoggingConfig):
        """Initialize the router logger.

        Args:
            config: Logging configuration
        """
        self.config = config
        self.correlation_filter = CorrelationIdFilter()
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Set up the ``pagerouter`` logger hierarchy."""
        logger = logging.getLogger("pagerouter")
        logger.setLevel(getattr(logging, self.config.level))
        logger.handlers.clear()

        handler: logging.Handler
        if self.config.output == "stdout":
            handler = logging.StreamHandler(sys.stdout)
        elif self.config.output == "stderr":
            handler = logging.StreamHandler(sys.stderr)
        else:
            # Assume it's a file path
            handler = logging.FileHandler(self.config.output)

        formatter: logging.Formatter
        if self.config.format == "json":
            formatter = JsonFormatter(redact_patterns=self.config.redact_fields)
        else:
            formatter = TextFormatter()

        handler.setFormatter(formatter)
        handler.addFilter(self.correlation_filter)
        logger.addHandler(handler)
        logger.propagate = self.config.propagate

    def set_correlation_id(self, correlation_id: str | None = None) -> str:
        """Set or generate the correlation ID of the current request.

        Args:
            correlation_id: ID received from the client, if any

        Returns:
            The correlation ID in effect
        """
        if not correlation_id:
            correlation_id = self.generate_correlation_id()
        self.correlation_filter.set_correlation_id(correlation_id)
        return correlation_id

    def clear_correlation_id(self) -> None:
        self.correlation_filter.clear_correlation_id()

    @staticmethod
    def generate_correlation_id() -> str:
        return f"req-{uuid.uuid4().hex[:16]}"

    def get_logger(self, name: str = "pagerouter") -> logging.Logger:
        return logging.getLogger(name)

    def _event(self, level: int, message: str, event_type: str, **fields: Any) -> None:
        extra_fields: dict[str, Any] = {"event_type": event_type}
        extra_fields.update(fields)
        self.get_logger().log(level, message, extra={"extra_fields": extra_fields})

    def log_request(
        self,
        method: str,
        path: str,
        client_ip: str | None,
        user_agent: str | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log an incoming request.

        Args:
            method: HTTP method
            path: Request path
            client_ip: Client IP address
            user_agent: User agent string
            headers: Request headers, redacted by the JSON formatter
            **kwargs: Additional fields to log
        """
        request = {
            "method": method,
            "path": path,
            "client_ip": client_ip,
            "user_agent": user_agent,
            "headers": headers or {},
        }
        self._event(
            logging.INFO,
            f"{method} {path} from {client_ip}",
            "request_received",
            request=request,
            **kwargs,
        )

    def log_resolution(
        self,
        path: str,
        outcome: str,
        page: str | None = None,
        location: str | None = None,
        status_code: int | None = None,
        reason: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Log how a request path was resolved.

        Resolved requests are logged at DEBUG, redirects at INFO and
        rejections at WARNING.

        Args:
            path: Request path
            outcome: "resolved", "redirect" or "rejected"
            page: Resolved page identifier
            location: Redirect location
            status_code: Status code of redirects and rejections
            reason: Rejection reason
            **kwargs: Additional fields to log
        """
        resolution: dict[str, Any] = {"path": path, "outcome": outcome}
        optional = {"page": page, "location": location, "status_code": status_code}
        resolution.update((key, value) for key, value in optional.items() if value is not None)
        if reason:
            resolution["reason"] = reason

        if outcome == "rejected":
            level = logging.WARNING
            message = f"Rejected {path} ({status_code})"
            if reason:
                message += f" - {reason}"
        elif outcome == "redirect":
            level = logging.INFO
            message = f"Redirecting {path} -> {location} ({status_code})"
        else:
            level = logging.DEBUG
            message = f"Resolved {path} -> {page}"

        self._event(level, message, "route_resolution", resolution=resolution, **kwargs)

    def log_response(
        self,
        method: str,
        path: str,
        status_code: int,
        latency_ms: float,
        response_size: int | None = None,
        **kwargs: Any,
    ) -> None:
        """Log a completed response.

        Args:
            method: HTTP method
            path: Request path
            status_code: HTTP status code
            latency_ms: Request latency in milliseconds
            response_size: Response body size in bytes
            **kwargs: Additional fields to log
        """
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        self._event(
            level,
            f"{method} {path} -> {status_code} ({latency_ms:.2f}ms)",
            "request_completed",
            request={"method": method, "path": path},
            response={
                "status_code": status_code,
                "latency_ms": latency_ms,
                "body_size": response_size,
            },
            **kwargs,
        )
