"""Services module for the Google Cloud MCP server."""

from gcp_mcp.services.session import (
    MAX_ROTATIONS,
    SESSION_LIFETIME,
    SessionRecord,
    SessionRegistry,
)

__all__ = [
    "MAX_ROTATIONS",
    "SESSION_LIFETIME",
    "SessionRecord",
    "SessionRegistry",
]
