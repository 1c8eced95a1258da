"""Common utilities for MCP tools."""

from .decorators import mcp_tool
from .telemetry import get_meter, get_tracer, setup_telemetry
from .tokens import (
    generate_secure_random_bytes,
    generate_secure_random_string,
    generate_secure_session_id,
)

__all__ = [
    "generate_secure_random_bytes",
    "generate_secure_random_string",
    "generate_secure_session_id",
    "get_meter",
    "get_tracer",
    "mcp_tool",
    "setup_telemetry",
]
