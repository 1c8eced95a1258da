"""Project management tools and resources.

Lets the agent read and change the Google Cloud project that every other
operation runs against.
"""

import logging

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from ..context import ServerContext
from ..errors import wrap_error
from .common import mcp_tool

logger = logging.getLogger(__name__)


def format_error(title: str, action: str, error: Exception) -> str:
    """Markdown body for a failed tool call."""
    err = wrap_error(error)
    return f"# {title}\n\nFailed to {action}: {err.message}\n\n(code: {err.code})"


@mcp_tool
async def set_project_id(context: ServerContext, project_id: str) -> str:
    """Sets the default project and returns a Markdown confirmation."""
    await context.auth.set_project_id(project_id)
    project_id = context.state.get_current_project_id() or project_id
    return (
        "# Project ID Updated\n\n"
        f"Default Google Cloud project ID has been set to: `{project_id}`\n\n"
        "This project ID will be used for all Google Cloud operations until changed."
    )


@mcp_tool
async def get_project_id(context: ServerContext) -> str:
    """Returns the current project and recently used projects as Markdown."""
    project_id = context.state.get_current_project_id()
    if not project_id:
        project_id = await context.auth.get_project_id()

    markdown = (
        "# Current Google Cloud Project\n\n"
        f"Current project ID: `{project_id}`\n\n"
    )

    recent_project_ids = context.state.get_recent_project_ids()
    if recent_project_ids:
        markdown += "## Recently Used Projects\n\n"
        for recent_id in recent_project_ids:
            current = " (current)" if recent_id == project_id else ""
            markdown += f"- `{recent_id}`{current}\n"

    return markdown


async def describe_current_project(context: ServerContext) -> str:
    """Markdown summary of the current project and auth status."""
    project_id = await context.auth.get_project_id(require_auth=False)
    auth_status = (
        "initialized" if context.state.is_auth_initialized() else "not initialized"
    )
    return (
        "# Google Cloud Project\n\n"
        f"- **Project ID:** `{project_id}`\n"
        f"- **Authentication:** {auth_status}\n"
    )


def register_project_tools(mcp: FastMCP, context: ServerContext) -> None:
    """Registers project management tools and resources with the MCP server.

    Args:
        mcp: The FastMCP server instance.
        context: Shared server context injected into every handler.
    """

    @mcp.tool(
        name="gcp-utils-set-project-id",
        title="Set Project ID",
        description="Set the default Google Cloud project ID to use for all operations",
    )
    async def set_project_id_tool(project_id: str) -> str:
        try:
            return await set_project_id(context, project_id)
        except Exception as e:
            raise ToolError(
                format_error("Error Setting Project ID", "set project ID", e)
            ) from e

    @mcp.tool(
        name="gcp-utils-get-project-id",
        title="Get Project ID",
        description="Get the current Google Cloud project ID and recent project history",
    )
    async def get_project_id_tool() -> str:
        try:
            return await get_project_id(context)
        except Exception as e:
            raise ToolError(
                format_error("Error Getting Project ID", "get project ID", e)
            ) from e

    @mcp.resource(
        "gcp-mcp://project/current",
        name="current-project",
        description="The Google Cloud project currently in use",
        mime_type="text/markdown",
    )
    async def current_project_resource() -> str:
        return await describe_current_project(context)

    logger.debug("Registered project tools")
