"""Server context passed to every tool and resource at registration time."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from .auth import AuthResolver
from .config import Settings
from .services.session import SessionRegistry
from .state import ProjectState


@dataclass
class ServerContext:
    """Everything a handler needs: settings, project state, auth and sessions.

    Each server instance builds its own context, so independent instances
    (e.g. under test) never share state.
    """

    settings: Settings
    state: ProjectState
    auth: AuthResolver
    sessions: SessionRegistry

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "ServerContext":
        """Build a context from settings (defaults to the environment)."""
        settings = settings or Settings.from_env()
        state = ProjectState(settings.project_id)
        return cls(
            settings=settings,
            state=state,
            auth=AuthResolver(settings, state),
            sessions=SessionRegistry(clock=clock),
        )
