"""Google Cloud MCP server.

Builds a FastMCP server with every tool and resource bound to one
ServerContext, and runs it over stdio or streamable HTTP.
"""

import argparse
import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse

from . import __version__
from .config import VALID_TRANSPORTS, Settings
from .context import ServerContext
from .middleware import TransportSecurityMiddleware
from .tools.common import setup_telemetry
from .tools.project import register_project_tools
from .tools.session import register_session_resources

logger = logging.getLogger(__name__)

SERVER_NAME = "Google Cloud MCP"


def create_server(context: ServerContext) -> FastMCP:
    """Create the FastMCP server and register all handlers against `context`."""

    @asynccontextmanager
    async def connection_lifespan(_: FastMCP) -> AsyncIterator[ServerContext]:
        # One registry session per client connection
        session_id = context.sessions.create_session(
            {
                "transport": context.settings.transport,
                "connected_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        logger.info(f"Client connected, session {session_id[:16]}...")
        try:
            yield context
        finally:
            context.sessions.invalidate_session(session_id)
            logger.info(f"Client disconnected, session {session_id[:16]}... cleaned up")

    mcp = FastMCP(
        SERVER_NAME,
        instructions="Model Context Protocol server for Google Cloud services",
        lifespan=connection_lifespan,
        host=context.settings.http_host,
        port=context.settings.http_port,
        log_level=context.settings.log_level,
    )

    register_project_tools(mcp, context)
    register_session_resources(mcp, context)

    @mcp.custom_route("/health", methods=["GET"])
    async def health(request: Request) -> JSONResponse:
        """Health check for the HTTP transport."""
        return JSONResponse(
            {
                "status": "healthy",
                "version": __version__,
                "project_id": context.state.get_current_project_id(),
                "auth_initialized": context.state.is_auth_initialized(),
                "sessions": context.sessions.get_session_stats(),
            }
        )

    return mcp


def create_http_app(context: ServerContext, mcp: FastMCP) -> Starlette:
    """Streamable HTTP app for `mcp` behind the transport security middleware."""
    app = mcp.streamable_http_app()
    app.add_middleware(
        TransportSecurityMiddleware,
        allowed_origins=context.settings.allowed_origins,
        max_connections=context.settings.max_connections,
    )
    return app


async def serve(context: ServerContext, mcp: FastMCP | None = None) -> None:
    """Run the server until the transport closes.

    Owns the background work: the session expiry sweep and the startup
    credential resolution are both stopped when the server exits.
    """
    mcp = mcp or create_server(context)
    async with context.sessions:
        context.auth.start_background_initialization()
        try:
            if context.settings.transport == "streamable-http":
                settings = context.settings
                logger.info(
                    f"Starting {SERVER_NAME} on http://{settings.http_host}:"
                    f"{settings.http_port} (allowed origins: "
                    f"{', '.join(settings.allowed_origins)})"
                )
                config = uvicorn.Config(
                    create_http_app(context, mcp),
                    host=settings.http_host,
                    port=settings.http_port,
                    log_level=settings.log_level.lower(),
                )
                await uvicorn.Server(config).serve()
            else:
                logger.info(f"Starting {SERVER_NAME} on stdio")
                await mcp.run_stdio_async()
        finally:
            await context.auth.close()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Google Cloud MCP server")
    parser.add_argument(
        "--transport",
        choices=VALID_TRANSPORTS,
        help="Transport to serve on (default: MCP_TRANSPORT or stdio)",
    )
    parser.add_argument("--host", help="HTTP bind host (default: MCP_HTTP_HOST)")
    parser.add_argument("--port", type=int, help="HTTP port (default: MCP_HTTP_PORT)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Console entrypoint."""
    load_dotenv()
    args = parse_args(argv)

    settings = Settings.from_env()
    if args.transport:
        settings.transport = args.transport
    if args.host:
        settings.http_host = args.host
    if args.port:
        settings.http_port = args.port

    setup_telemetry(settings)
    context = ServerContext.create(settings)

    try:
        asyncio.run(serve(context))
    except KeyboardInterrupt:
        logger.info("Server stopped")


if __name__ == "__main__":
    main()
