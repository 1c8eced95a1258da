"""Secure identifier generation for sessions and tokens.

All entropy comes from the `secrets` module. The timestamp prefix on session
IDs only makes them sortable in logs; it adds nothing to unpredictability.
"""

import base64
import math
import secrets
import string
import time

from ...errors import InvalidArgumentError

SESSION_ID_PREFIX = "mcp"
SESSION_ID_RANDOM_BYTES = 32  # 256 bits

_BASE36_ALPHABET = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def _urlsafe_b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_secure_random_bytes(size: int) -> bytes:
    """Returns `size` bytes from a cryptographically secure source."""
    if size < 0:
        raise InvalidArgumentError(f"Byte count must not be negative, got {size}")
    return secrets.token_bytes(size)


def generate_secure_random_string(length: int = 32) -> str:
    """Returns a URL-safe random string of exactly `length` characters.

    Args:
        length: Number of characters to return. Zero gives an empty string.

    Returns:
        Base64url text drawn from ceil(length * 3 / 4) random bytes, truncated
        to `length`.
    """
    if length < 0:
        raise InvalidArgumentError(f"Token length must not be negative, got {length}")
    raw = secrets.token_bytes(math.ceil(length * 3 / 4))
    return _urlsafe_b64(raw)[:length]


def generate_secure_session_id() -> str:
    """Generate a non-deterministic session ID.

    Format: ``mcp_<base36 epoch millis>_<base64url of 32 random bytes>``.
    """
    timestamp = _to_base36(time.time_ns() // 1_000_000)
    random_part = _urlsafe_b64(secrets.token_bytes(SESSION_ID_RANDOM_BYTES))
    return f"{SESSION_ID_PREFIX}_{timestamp}_{random_part}"
