"""Server configuration loaded from environment variables.

Values come from the process environment (optionally populated from a .env
file by the server entrypoint). Nothing here is persisted.
"""

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
VALID_TRANSPORTS = ["stdio", "streamable-http"]

# Browser origins allowed to reach the HTTP transport; any port matches
DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost",
    "https://localhost",
    "http://127.0.0.1",
    "https://127.0.0.1",
)

PROJECT_ENV_VAR = "GOOGLE_CLOUD_PROJECT"


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() not in ("false", "0", "no", "off")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}, using {default}")
        return default


def sanitize_project_id(project_id: str | None) -> str | None:
    """Normalize a project ID read from the environment.

    Some env loaders produce comma-separated values; only the first entry is
    kept. Blank values become None.
    """
    if not project_id:
        return None
    if "," in project_id:
        project_id = project_id.split(",")[0]
    project_id = project_id.strip()
    return project_id or None


@dataclass
class Settings:
    """Runtime settings for the MCP server."""

    project_id: str | None = None
    lazy_auth: bool = True
    log_level: str = "INFO"
    log_format: str = "TEXT"
    environment: str = "development"
    transport: str = "stdio"
    http_host: str = "127.0.0.1"
    http_port: int = 3000
    allowed_origins: list[str] = field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS)
    )
    max_connections: int = 10
    otlp_endpoint: str | None = None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current process environment."""
        raw_project = os.environ.get(PROJECT_ENV_VAR)
        project_id = sanitize_project_id(raw_project)
        if raw_project and project_id and raw_project != project_id:
            logger.warning(
                f"Sanitized {PROJECT_ENV_VAR} from '{raw_project}' to '{project_id}'"
            )
            # Keep google.auth and client libraries in sync with the clean value
            os.environ[PROJECT_ENV_VAR] = project_id

        environment = os.environ.get("ENVIRONMENT", "development").strip().lower()

        log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
        if log_level not in VALID_LOG_LEVELS:
            log_level = "INFO"

        log_format = os.environ.get("LOG_FORMAT", "").upper()

        transport = os.environ.get("MCP_TRANSPORT", "stdio").lower()
        if transport not in VALID_TRANSPORTS:
            logger.warning(f"Unknown MCP_TRANSPORT '{transport}', using stdio")
            transport = "stdio"

        allowed_origins = [
            origin.strip().rstrip("/")
            for origin in os.environ.get("MCP_ALLOWED_ORIGINS", "").split(",")
            if origin.strip()
        ]

        settings = cls(
            project_id=project_id,
            lazy_auth=_env_flag("LAZY_AUTH", True),
            log_level=log_level,
            environment=environment,
            transport=transport,
            http_host=os.environ.get("MCP_HTTP_HOST", "127.0.0.1"),
            http_port=_env_int("MCP_HTTP_PORT", 3000),
            allowed_origins=allowed_origins or list(DEFAULT_ALLOWED_ORIGINS),
            max_connections=_env_int("MCP_MAX_CONNECTIONS", 10),
            otlp_endpoint=os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT") or None,
        )
        if log_format in ("TEXT", "JSON"):
            settings.log_format = log_format
        elif settings.is_production:
            settings.log_format = "JSON"
        return settings
