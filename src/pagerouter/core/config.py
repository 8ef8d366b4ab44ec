"""Configuration management module for the page router.

This module handles loading and validating configuration from multiple sources:
- Configuration files (YAML)
- Environment variables
"""

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=8080, ge=1, le=65535, description="Server port")
    keepalive_timeout: int = Field(default=75, ge=1, description="Keep-alive timeout in seconds")
    client_max_size: int = Field(
        default=1024 * 1024, ge=1, description="Maximum request body size in bytes"
    )
    shutdown_timeout: float = Field(
        default=60.0, ge=0, description="Seconds to wait for open requests on shutdown"
    )


class ParamDefinition(BaseModel):
    """Regex and default value of a route placeholder."""

    name: str = Field(description="Placeholder name, without the leading colon")
    regex: str | None = Field(default=None, description="Regex fragment the value must match")
    default: str | int | None = Field(default=None, description="Default value")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Strip a leading colon and reject empty names."""
        v = v.lstrip(":")
        if not v:
            raise ValueError("Parameter name must not be empty")
        return v


class RouteConfig(BaseModel):
    """Route configuration."""

    pattern: str = Field(description="Request pattern, e.g. /users/:id")
    page: str = Field(description="Page identifier returned when the pattern matches")
    params: list[ParamDefinition] = Field(
        default_factory=list, description="Per-route parameter definitions"
    )


class RouterConfig(BaseModel):
    """Routing configuration."""

    web_root: str = Field(default="/", description="HTTP path to the web root")
    front_controller: str = Field(
        default="", description="Front controller file name, empty when URLs are rewritten"
    )
    extension: str = Field(default=".py", description="Page file extension")
    private_marker: str = Field(
        default="_", description="Leading character of partial, non-routable files"
    )
    home_alias: str = Field(default="home", description="Page identifier for the site root")
    server_name: str = Field(default="localhost", description="Host name used for absolute URLs")
    pages_dir: str = Field(default="pages", description="Directory holding page modules")
    definitions: list[ParamDefinition] = Field(
        default_factory=list, description="Parameter definitions applied to every route"
    )
    routes: list[RouteConfig] = Field(default_factory=list)

    @field_validator("web_root")
    @classmethod
    def validate_web_root(cls, v: str) -> str:
        """Normalize the web root to start and end with a slash."""
        stripped = v.strip("/")
        return f"/{stripped}/" if stripped else "/"

    @field_validator("extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        """Validate extension starts with a dot."""
        if not v.startswith(".") or len(v) < 2:
            raise ValueError(f"Invalid extension: {v}. Must start with '.'")
        return v

    @field_validator("private_marker")
    @classmethod
    def validate_private_marker(cls, v: str) -> str:
        """Validate private marker is a single character."""
        if len(v) != 1:
            raise ValueError(f"Invalid private_marker: {v!r}. Must be a single character")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format (json or text)")
    output: str = Field(default="stdout", description="Log output (stdout, file path, etc.)")
    propagate: bool = Field(default=False, description="Propagate records to the root logger")
    correlation_id_header: str = Field(
        default="X-Request-ID", description="Header name for correlation ID"
    )
    redact_fields: list[str] = Field(
        default_factory=lambda: ["Authorization", "Cookie", "Set-Cookie"],
        description="Fields to redact from logs",
    )

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is valid."""
        v_lower = v.lower()
        if v_lower not in ("json", "text"):
            raise ValueError(f"Invalid log format: {v}. Must be one of ['json', 'text']")
        return v_lower


class MetricsConfig(BaseModel):
    """Metrics and observability configuration."""

    enabled: bool = Field(default=True, description="Enable metrics collection")
    endpoint: str = Field(default="/metrics", description="Metrics endpoint path")
    health_endpoint: str = Field(default="/health", description="Health check endpoint path")
    liveness_endpoint: str = Field(default="/health/live", description="Liveness endpoint path")
    readiness_endpoint: str = Field(default="/health/ready", description="Readiness endpoint path")


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(default="development", description="Environment name")
    server: ServerConfig = Field(default_factory=ServerConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


# Environment variable -> (section, key, converter); a None section is top level
ENV_OVERRIDES: dict[str, tuple[str | None, str, Callable[[str], Any]]] = {
    "PAGEROUTER_SERVER_HOST": ("server", "host", str),
    "PAGEROUTER_SERVER_PORT": ("server", "port", int),
    "PAGEROUTER_WEB_ROOT": ("router", "web_root", str),
    "PAGEROUTER_FRONT_CONTROLLER": ("router", "front_controller", str),
    "PAGEROUTER_EXTENSION": ("router", "extension", str),
    "PAGEROUTER_PAGES_DIR": ("router", "pages_dir", str),
    "PAGEROUTER_SERVER_NAME": ("router", "server_name", str),
    "PAGEROUTER_LOG_LEVEL": ("logging", "level", str),
    "PAGEROUTER_LOG_FORMAT": ("logging", "format", str),
    "PAGEROUTER_METRICS_ENABLED": ("metrics", "enabled", lambda v: v.lower() in _TRUTHY),
    "PAGEROUTER_ENV": (None, "environment", str),
}

_TRUTHY = frozenset(["1", "true", "yes", "on"])


class ConfigLoader:
    """Builds an AppConfig from a YAML file and PAGEROUTER_* environment variables.

    Environment variables win over the file. The file is looked up in this
    order: the explicit path, ``PAGEROUTER_CONFIG_PATH``,
    ``config/pagerouter.<env>.yaml``, then ``config/pagerouter.yaml``.
    A missing file means all defaults.
    """

    def __init__(self, config_path: str | None = None):
        self.config_path = self._resolve_config_path(config_path)

    @staticmethod
    def _resolve_config_path(config_path: str | None) -> Path:
        explicit = config_path or os.getenv("PAGEROUTER_CONFIG_PATH")
        if explicit:
            return Path(explicit)

        env = os.getenv("PAGEROUTER_ENV", "development")
        env_specific = Path(f"config/pagerouter.{env}.yaml")
        return env_specific if env_specific.exists() else Path("config/pagerouter.yaml")

    def load(self) -> AppConfig:
        """Load and validate configuration.

        Returns:
            Validated AppConfig instance

        Raises:
            ValueError: If the file cannot be parsed or the configuration is invalid
        """
        config_dict = self._override_from_env(self._load_from_file())

        try:
            return AppConfig.model_validate(config_dict)
        except ValidationError as e:
            raise ValueError(f"Configuration validation failed: {e}") from e

    def _load_from_file(self) -> dict[str, Any]:
        if not self.config_path.exists():
            return {}

        try:
            with open(self.config_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid configuration file {self.config_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {self.config_path} must contain a mapping")
        return data

    @staticmethod
    def _override_from_env(config_dict: dict[str, Any]) -> dict[str, Any]:
        for variable, (section, key, convert) in ENV_OVERRIDES.items():
            raw = os.getenv(variable)
            if raw is None:
                continue
            try:
                value = convert(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {variable}: {raw!r}") from e

            target = config_dict if section is None else config_dict.setdefault(section, {})
            target[key] = value

        return config_dict


def load_config(config_path: str | None = None) -> AppConfig:
    """Load configuration (convenience function).

    Args:
        config_path: Optional path to configuration file

    Returns:
        Validated AppConfig instance
    """
    return ConfigLoader(config_path).load()
