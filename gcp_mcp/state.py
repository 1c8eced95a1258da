"""Process-wide project and auth state.

A ProjectState is owned by a ServerContext and handed to every handler at
registration time; there is no module-level instance.
"""

import logging
import os
import threading

from .config import PROJECT_ENV_VAR
from .errors import InvalidArgumentError

logger = logging.getLogger(__name__)

MAX_RECENT_PROJECTS = 5


class ProjectState:
    """Current Google Cloud project and whether auth has completed.

    Setting a project mirrors it into GOOGLE_CLOUD_PROJECT so client
    libraries that read ambient configuration see the same value.
    """

    def __init__(self, project_id: str | None = None) -> None:
        self._lock = threading.Lock()
        self._current_project_id: str | None = None
        self._auth_initialized = False
        self._recent_project_ids: list[str] = []
        if project_id:
            self.set_current_project_id(project_id)

    def get_current_project_id(self) -> str | None:
        with self._lock:
            return self._current_project_id

    def set_current_project_id(self, project_id: str) -> None:
        """Set the project used for all Google Cloud operations.

        Raises:
            InvalidArgumentError: If project_id is empty or blank.
        """
        if not project_id or not project_id.strip():
            raise InvalidArgumentError("Project ID cannot be empty")
        project_id = project_id.strip()

        with self._lock:
            self._current_project_id = project_id
            os.environ[PROJECT_ENV_VAR] = project_id
            if project_id in self._recent_project_ids:
                self._recent_project_ids.remove(project_id)
            self._recent_project_ids.insert(0, project_id)
            del self._recent_project_ids[MAX_RECENT_PROJECTS:]

        logger.info(f"Current project ID set to: {project_id}")

    def get_recent_project_ids(self) -> list[str]:
        """Recently used project IDs, newest first."""
        with self._lock:
            return list(self._recent_project_ids)

    def is_auth_initialized(self) -> bool:
        with self._lock:
            return self._auth_initialized

    def set_auth_initialized(self, initialized: bool) -> None:
        with self._lock:
            self._auth_initialized = initialized
        logger.debug(f"Auth initialized: {initialized}")
