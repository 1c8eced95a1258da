"""Error types for the Google Cloud MCP server.

Every failure that leaves the bookkeeping core or a tool handler is a
GcpMcpError: a message, a machine-readable code and an HTTP-style status.
Session lookup misses are not errors; the registry reports them as None/False.
"""

from typing import Any


class GcpMcpError(Exception):
    """Base failure envelope for the server."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable description.
            code: Machine-readable error code.
            status_code: HTTP-style status number.
            details: Optional extra context (e.g. the wrapped exception).
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "details": {k: str(v) for k, v in self.details.items()},
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, "
            f"code={self.code!r}, status_code={self.status_code})"
        )


class InvalidArgumentError(GcpMcpError):
    """A caller supplied an unusable value (e.g. an empty project ID)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, "INVALID_ARGUMENT", 400, details)


class AuthenticationError(GcpMcpError):
    """Google Cloud credentials or a project ID could not be resolved."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, "UNAUTHENTICATED", 401, details)


def wrap_error(error: Exception) -> GcpMcpError:
    """Return the error itself if it is a GcpMcpError, else an INTERNAL_ERROR."""
    if isinstance(error, GcpMcpError):
        return error
    return GcpMcpError(str(error) or type(error).__name__, details={"original_error": error})
