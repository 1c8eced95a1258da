"""Google Cloud credential and project resolution.

Credentials are resolved lazily and non-fatally: the server starts without
them and each tool resolves them when needed. The actual credential exchange
is delegated to google-auth.
"""

import asyncio
import json
import logging
import os
from typing import Any

import google.auth
import google.auth.credentials
import google.auth.transport.requests
from google.oauth2 import service_account
from starlette.concurrency import run_in_threadpool

from .config import PROJECT_ENV_VAR, Settings, sanitize_project_id
from .errors import AuthenticationError
from .state import ProjectState

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/cloud-platform",
    "https://www.googleapis.com/auth/spanner.data",
    "https://www.googleapis.com/auth/logging.read",
    "https://www.googleapis.com/auth/monitoring.read",
]

UNKNOWN_PROJECT = "unknown-project"


def _service_account_info_from_env() -> dict[str, Any] | None:
    """Builds service account info from GOOGLE_CLIENT_EMAIL/GOOGLE_PRIVATE_KEY."""
    client_email = os.environ.get("GOOGLE_CLIENT_EMAIL")
    private_key = os.environ.get("GOOGLE_PRIVATE_KEY")
    if not client_email or not private_key:
        return None
    return {
        "type": "service_account",
        "project_id": os.environ.get(PROJECT_ENV_VAR, ""),
        # Keys pasted into env files usually carry literal "\n" sequences
        "private_key": private_key.replace("\\n", "\n"),
        "client_email": client_email,
        "token_uri": "https://oauth2.googleapis.com/token",
    }


def _project_id_from_credentials_file() -> str | None:
    """Reads project_id from the file named by GOOGLE_APPLICATION_CREDENTIALS."""
    path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    if not path or not os.path.exists(path):
        return None
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Error reading credentials file {path}: {e}")
        return None
    if not isinstance(data, dict):
        return None
    return sanitize_project_id(data.get("project_id"))


class AuthResolver:
    """Resolves and caches Google Cloud credentials and the default project."""

    def __init__(self, settings: Settings, state: ProjectState) -> None:
        self._settings = settings
        self._state = state
        self._credentials: google.auth.credentials.Credentials | None = None
        self._default_project_id: str | None = None
        self._background_task: asyncio.Task[Any] | None = None

    def get_credentials_or_none(self) -> google.auth.credentials.Credentials | None:
        """Gets the cached credentials without attempting resolution."""
        return self._credentials

    def _resolve_credentials(
        self, require_auth: bool
    ) -> google.auth.credentials.Credentials:
        """Blocking credential resolution; runs in a worker thread."""
        info = _service_account_info_from_env()
        if info is not None:
            logger.debug("Using service account credentials from environment")
            credentials = service_account.Credentials.from_service_account_info(
                info, scopes=SCOPES
            )
            if info["project_id"]:
                self._default_project_id = sanitize_project_id(info["project_id"])
        else:
            logger.debug("Using Application Default Credentials")
            credentials, project_id = google.auth.default(scopes=SCOPES)
            self._default_project_id = sanitize_project_id(project_id)

        if require_auth:
            # Verify the credentials can actually mint a token
            credentials.refresh(google.auth.transport.requests.Request())  # type: ignore[no-untyped-call]
        return credentials

    async def initialize(
        self, require_auth: bool = False
    ) -> google.auth.credentials.Credentials | None:
        """Resolve Google Cloud credentials.

        Tries GOOGLE_CLIENT_EMAIL + GOOGLE_PRIVATE_KEY first, then Application
        Default Credentials.

        Args:
            require_auth: If True, verify the credentials and raise on failure.
                If False, failures are logged and None is returned.

        Returns:
            The credentials, or None if they are not available.

        Raises:
            AuthenticationError: If require_auth is True and resolution fails.
        """
        if self._credentials is not None:
            return self._credentials

        try:
            credentials = await run_in_threadpool(
                self._resolve_credentials, require_auth
            )
        except Exception as e:
            self._credentials = None
            logger.error(f"Auth error: {e}")
            if require_auth:
                raise AuthenticationError(
                    "Google Cloud authentication not available. Set "
                    "GOOGLE_APPLICATION_CREDENTIALS, or both GOOGLE_CLIENT_EMAIL "
                    f"and GOOGLE_PRIVATE_KEY. Cause: {e}",
                    details={"original_error": e},
                ) from e
            return None

        self._credentials = credentials
        self._state.set_auth_initialized(True)
        logger.info("Google Cloud authentication initialized")
        return credentials

    def start_background_initialization(self) -> asyncio.Task[Any]:
        """Kick off non-blocking credential resolution at startup."""
        if self._settings.lazy_auth:
            logger.info(
                "Lazy authentication enabled - credentials will be resolved in the background"
            )
        if self._background_task is None or self._background_task.done():
            self._background_task = asyncio.get_running_loop().create_task(
                self.initialize(require_auth=False), name="auth-init"
            )
        return self._background_task

    async def close(self) -> None:
        """Cancel a pending background initialization."""
        task = self._background_task
        self._background_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def get_project_id(self, require_auth: bool = True) -> str:
        """Gets the project ID to run Google Cloud operations against.

        Resolution order: state holder, GOOGLE_CLOUD_PROJECT, the credentials
        file, then the project reported by credential resolution. Values found
        outside the state holder are stored there for later calls.

        Args:
            require_auth: If True, raise when no project can be determined.

        Returns:
            The project ID, or "unknown-project" if none was found and
            require_auth is False.

        Raises:
            AuthenticationError: If require_auth is True and no project ID was found.
        """
        project_id = self._state.get_current_project_id()
        if project_id:
            logger.debug(f"Using project ID from state: {project_id}")
            return project_id

        project_id = sanitize_project_id(os.environ.get(PROJECT_ENV_VAR))
        if project_id:
            logger.debug(f"Using project ID from environment: {project_id}")
            self._state.set_current_project_id(project_id)
            return project_id

        project_id = _project_id_from_credentials_file()
        if project_id:
            logger.debug(f"Found project ID in credentials file: {project_id}")
            self._state.set_current_project_id(project_id)
            return project_id

        credentials = await self.initialize(require_auth=require_auth)
        if credentials is not None and self._default_project_id:
            project_id = self._default_project_id
            logger.debug(f"Got project ID from credentials: {project_id}")
            self._state.set_current_project_id(project_id)
            return project_id

        logger.warning("Could not determine Google Cloud project ID")
        if require_auth:
            raise AuthenticationError(
                "Could not determine Google Cloud project ID. Set the "
                f"{PROJECT_ENV_VAR} environment variable or use the "
                "gcp-utils-set-project-id tool."
            )
        return UNKNOWN_PROJECT

    async def set_project_id(self, project_id: str) -> None:
        """Sets the default project ID for all Google Cloud operations."""
        self._state.set_current_project_id(project_id)
