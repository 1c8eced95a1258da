"""Session statistics resource."""

import json
import logging

from mcp.server.fastmcp import FastMCP

from ..context import ServerContext

logger = logging.getLogger(__name__)


def session_stats_json(context: ServerContext) -> str:
    """JSON document with the registry's session counters."""
    return json.dumps({"sessions": context.sessions.get_session_stats()})


def register_session_resources(mcp: FastMCP, context: ServerContext) -> None:
    """Registers session resources with the MCP server."""

    @mcp.resource(
        "gcp-mcp://sessions/stats",
        name="session-stats",
        description="Active, created, expired and rotated MCP session counts",
        mime_type="application/json",
    )
    def session_stats_resource() -> str:
        return session_stats_json(context)

    logger.debug("Registered session resources")
