"""MCP tools and resources for Google Cloud."""
