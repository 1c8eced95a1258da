"""Google Cloud MCP - Model Context Protocol server for Google Cloud.

Exposes Google Cloud project, credential and session bookkeeping as MCP
tools and resources.
"""

__version__ = "0.1.0"

from .context import ServerContext  # noqa: E402

__all__ = ["ServerContext", "__version__"]
