"""MCP session registry.

Tracks protocol-level session IDs for transport security:
- IDs are generated from secure randomness and are never predictable
- IDs can be rotated a bounded number of times
- Sessions expire a fixed time after creation

Expiry is enforced lazily on validation and by a background sweep task that
the owner starts and stops explicitly.
"""

import asyncio
import dataclasses
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from ..tools.common.tokens import generate_secure_session_id

logger = logging.getLogger(__name__)

SESSION_LIFETIME = timedelta(hours=24)
MAX_ROTATIONS = 10
CLEANUP_INTERVAL_SECONDS = 60 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionRecord:
    """One logical client session."""

    id: str
    created: datetime
    last_used: datetime
    rotation_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "created": self.created.isoformat(),
            "last_used": self.last_used.isoformat(),
            "rotation_count": self.rotation_count,
            "metadata": dict(self.metadata),
        }


class SessionRegistry:
    """Owns every SessionRecord, keyed by its current ID.

    Thread Safety:
        All map operations hold a threading.Lock, since tool handlers may be
        dispatched into a thread pool.

    Example:
        >>> registry = SessionRegistry()
        >>> session_id = registry.create_session({"role": "agent"})
        >>> registry.validate_session(session_id)
        True
        >>> new_id = registry.rotate_session_id(session_id)
        >>> registry.validate_session(session_id)
        False
    """

    def __init__(
        self,
        lifetime: timedelta = SESSION_LIFETIME,
        max_rotations: int = MAX_ROTATIONS,
        cleanup_interval: float = CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize an empty registry.

        Args:
            lifetime: Maximum age of a session, measured from creation.
            max_rotations: Number of rotations allowed before the session is
                dropped and the caller has to create a new one.
            cleanup_interval: Seconds between background expiry sweeps.
            clock: Returns the current time; defaults to UTC wall clock.
        """
        self._sessions: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()
        self._clock = clock or _utcnow
        self._cleanup_task: asyncio.Task[None] | None = None

        self.lifetime = lifetime
        self.max_rotations = max_rotations
        self.cleanup_interval = cleanup_interval

        self._total_created = 0
        self._total_expired = 0
        self._total_rotated = 0
        self._total_invalidated = 0
        self._total_rotation_limited = 0

    def _is_expired(self, session: SessionRecord, now: datetime) -> bool:
        return now - session.created > self.lifetime

    def create_session(self, metadata: dict[str, Any] | None = None) -> str:
        """Create a session and return its ID."""
        now = self._clock()
        session_id = generate_secure_session_id()
        record = SessionRecord(
            id=session_id,
            created=now,
            last_used=now,
            rotation_count=0,
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._sessions[session_id] = record
            self._total_created += 1
        logger.debug(f"Created session {session_id[:16]}...")
        return session_id

    def rotate_session_id(self, current_id: str) -> str | None:
        """Replace a session's ID with a fresh one.

        Args:
            current_id: The ID being rotated out.

        Returns:
            The new ID, or None if the session does not exist, has expired
            or has used up its rotations. In the last two cases the session
            is removed and the caller is expected to create a new one.
        """
        with self._lock:
            session = self._sessions.get(current_id)
            if session is None:
                return None

            now = self._clock()
            if self._is_expired(session, now):
                del self._sessions[current_id]
                self._total_expired += 1
                logger.debug(f"Session {current_id[:16]}... expired, not rotated")
                return None

            if session.rotation_count >= self.max_rotations:
                del self._sessions[current_id]
                self._total_rotation_limited += 1
                logger.info(
                    f"Session {current_id[:16]}... reached rotation limit "
                    f"({self.max_rotations}), removed"
                )
                return None

            new_id = generate_secure_session_id()
            rotated = dataclasses.replace(
                session,
                id=new_id,
                last_used=now,
                rotation_count=session.rotation_count + 1,
                metadata=dict(session.metadata),
            )
            del self._sessions[current_id]
            self._sessions[new_id] = rotated
            self._total_rotated += 1

        logger.debug(
            f"Rotated session {current_id[:16]}... -> {new_id[:16]}... "
            f"(rotation {rotated.rotation_count})"
        )
        return new_id

    def validate_session(self, session_id: str) -> bool:
        """Check that a session exists and has not expired.

        Expired sessions are removed on the spot. A valid session has its
        last_used time refreshed.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False

            now = self._clock()
            if self._is_expired(session, now):
                del self._sessions[session_id]
                self._total_expired += 1
                logger.debug(f"Session {session_id[:16]}... expired")
                return False

            session.last_used = now
            return True

    def get_session(self, session_id: str) -> SessionRecord | None:
        """Return a copy of the session record, or None."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            return dataclasses.replace(session, metadata=dict(session.metadata))

    def get_session_metadata(self, session_id: str) -> dict[str, Any] | None:
        """Return a copy of the session's metadata, or None if absent."""
        with self._lock:
            session = self._sessions.get(session_id)
            return dict(session.metadata) if session else None

    def update_session_metadata(
        self, session_id: str, metadata: dict[str, Any]
    ) -> bool:
        """Merge `metadata` into the session's metadata.

        Returns:
            False if the session does not exist.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.metadata = {**session.metadata, **metadata}
            session.last_used = self._clock()
            return True

    def invalidate_session(self, session_id: str) -> bool:
        """Remove a session. Returns whether it existed."""
        with self._lock:
            existed = self._sessions.pop(session_id, None) is not None
            if existed:
                self._total_invalidated += 1
        return existed

    def cleanup_expired_sessions(self) -> int:
        """Remove every expired session and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [
                session_id
                for session_id, session in self._sessions.items()
                if self._is_expired(session, now)
            ]
            for session_id in expired:
                del self._sessions[session_id]
            self._total_expired += len(expired)

        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired sessions")
        return len(expired)

    def get_session_stats(self) -> dict[str, int]:
        """
        Get session statistics.

        Returns:
            Dictionary with:
            - active: Sessions currently held (expired ones not yet swept
              are included until validation or the sweep removes them)
            - total: Sessions ever created with create_session
            - expired: Sessions removed because they outlived their lifetime
            - rotated: Successful ID rotations
            - invalidated: Sessions removed by invalidate_session
            - rotation_limited: Sessions removed on a rotation attempt past
              max_rotations

            Every created session is either active or counted in exactly one
            of expired, invalidated and rotation_limited.
        """
        with self._lock:
            return {
                "active": len(self._sessions),
                "total": self._total_created,
                "expired": self._total_expired,
                "rotated": self._total_rotated,
                "invalidated": self._total_invalidated,
                "rotation_limited": self._total_rotation_limited,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            try:
                self.cleanup_expired_sessions()
            except Exception as e:
                logger.error(f"Session cleanup failed: {e}", exc_info=True)

    def start(self) -> None:
        """Start the periodic expiry sweep on the running event loop."""
        if self.is_running:
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(
            self._cleanup_loop(), name="session-cleanup"
        )
        logger.info(
            f"Session cleanup task started (interval={self.cleanup_interval}s)"
        )

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        task = self._cleanup_task
        self._cleanup_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Session cleanup task stopped")

    async def __aenter__(self) -> "SessionRegistry":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()
