import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest

from gcp_mcp.auth import SCOPES, UNKNOWN_PROJECT, AuthResolver
from gcp_mcp.config import Settings
from gcp_mcp.errors import AuthenticationError
from gcp_mcp.state import ProjectState


@pytest.fixture
def state() -> ProjectState:
    return ProjectState()


@pytest.fixture
def resolver(state) -> AuthResolver:
    return AuthResolver(Settings(), state)


@patch("gcp_mcp.auth.google.auth.default")
@pytest.mark.asyncio
async def test_initialize_uses_default_credentials(mock_default, resolver, state):
    mock_creds = MagicMock()
    mock_default.return_value = (mock_creds, "adc-project")

    creds = await resolver.initialize()

    assert creds is mock_creds
    assert resolver.get_credentials_or_none() is mock_creds
    assert state.is_auth_initialized() is True
    mock_default.assert_called_once_with(scopes=SCOPES)
    mock_creds.refresh.assert_not_called()


@patch("gcp_mcp.auth.google.auth.default")
@pytest.mark.asyncio
async def test_initialize_caches_credentials(mock_default, resolver):
    mock_default.return_value = (MagicMock(), None)

    first = await resolver.initialize()
    second = await resolver.initialize()

    assert first is second
    mock_default.assert_called_once()


@patch("gcp_mcp.auth.google.auth.default")
@pytest.mark.asyncio
async def test_initialize_failure_is_non_fatal(mock_default, resolver, state):
    mock_default.side_effect = Exception("no ADC configured")

    assert await resolver.initialize(require_auth=False) is None
    assert state.is_auth_initialized() is False


@patch("gcp_mcp.auth.google.auth.default")
@pytest.mark.asyncio
async def test_initialize_failure_raises_when_required(mock_default, resolver):
    mock_default.side_effect = Exception("no ADC configured")

    with pytest.raises(AuthenticationError) as exc_info:
        await resolver.initialize(require_auth=True)

    assert "no ADC configured" in exc_info.value.message
    assert resolver.get_credentials_or_none() is None


@patch("gcp_mcp.auth.google.auth.default")
@pytest.mark.asyncio
async def test_required_auth_verifies_token(mock_default, resolver):
    mock_creds = MagicMock()
    mock_creds.refresh.side_effect = Exception("invalid_grant")
    mock_default.return_value = (mock_creds, None)

    with pytest.raises(AuthenticationError):
        await resolver.initialize(require_auth=True)

    mock_creds.refresh.assert_called_once()
    assert resolver.get_credentials_or_none() is None


@patch("gcp_mcp.auth.google.auth.default")
@patch("gcp_mcp.auth.service_account.Credentials.from_service_account_info")
@pytest.mark.asyncio
async def test_initialize_from_env_service_account(
    mock_from_info, mock_default, resolver, monkeypatch
):
    monkeypatch.setenv("GOOGLE_CLIENT_EMAIL", "sa@proj.iam.gserviceaccount.com")
    monkeypatch.setenv("GOOGLE_PRIVATE_KEY", "-----BEGIN-----\\nabc\\n-----END-----")
    monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "sa-project")

    creds = await resolver.initialize()

    assert creds is mock_from_info.return_value
    mock_default.assert_not_called()
    info = mock_from_info.call_args.args[0]
    assert info["client_email"] == "sa@proj.iam.gserviceaccount.com"
    assert info["private_key"] == "-----BEGIN-----\nabc\n-----END-----"
    assert info["project_id"] == "sa-project"
    assert mock_from_info.call_args.kwargs["scopes"] == SCOPES


@pytest.mark.asyncio
async def test_project_id_from_state_first(resolver, state, monkeypatch):
    state.set_current_project_id("state-project")
    monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "env-project")

    assert await resolver.get_project_id() == "state-project"


@pytest.mark.asyncio
async def test_project_id_from_env_is_stored(resolver, state, monkeypatch):
    monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "env-project")

    assert await resolver.get_project_id() == "env-project"
    assert state.get_current_project_id() == "env-project"


@pytest.mark.asyncio
async def test_project_id_from_credentials_file(resolver, state, monkeypatch, tmp_path):
    creds_file = tmp_path / "sa.json"
    creds_file.write_text(json.dumps({"type": "service_account", "project_id": "file-project"}))
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(creds_file))

    assert await resolver.get_project_id() == "file-project"
    assert state.get_current_project_id() == "file-project"


@patch("gcp_mcp.auth.google.auth.default")
@pytest.mark.asyncio
async def test_unreadable_credentials_file_falls_through(
    mock_default, resolver, monkeypatch, tmp_path
):
    creds_file = tmp_path / "broken.json"
    creds_file.write_text("{not json")
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(creds_file))
    mock_default.return_value = (MagicMock(), "adc-project")

    assert await resolver.get_project_id() == "adc-project"


@patch("gcp_mcp.auth.google.auth.default")
@pytest.mark.asyncio
async def test_project_id_from_default_credentials(mock_default, resolver, state):
    mock_default.return_value = (MagicMock(), "adc-project")

    assert await resolver.get_project_id() == "adc-project"
    assert state.get_current_project_id() == "adc-project"


@patch("gcp_mcp.auth.google.auth.default")
@pytest.mark.asyncio
async def test_project_id_missing_raises_when_required(mock_default, resolver):
    mock_default.return_value = (MagicMock(), None)

    with pytest.raises(AuthenticationError) as exc_info:
        await resolver.get_project_id(require_auth=True)

    assert "gcp-utils-set-project-id" in exc_info.value.message


@patch("gcp_mcp.auth.google.auth.default")
@pytest.mark.asyncio
async def test_project_id_missing_returns_placeholder(mock_default, resolver, state):
    mock_default.side_effect = Exception("no ADC configured")

    assert await resolver.get_project_id(require_auth=False) == UNKNOWN_PROJECT
    assert state.get_current_project_id() is None


@pytest.mark.asyncio
async def test_set_project_id_delegates_to_state(resolver, state):
    await resolver.set_project_id("new-project")
    assert state.get_current_project_id() == "new-project"


@patch("gcp_mcp.auth.google.auth.default")
@pytest.mark.asyncio
async def test_background_initialization(mock_default, resolver, state):
    mock_default.return_value = (MagicMock(), None)

    task = resolver.start_background_initialization()
    assert resolver.start_background_initialization() is task
    await task

    assert state.is_auth_initialized() is True
    await resolver.close()


@pytest.mark.asyncio
async def test_close_cancels_pending_initialization(resolver):
    started = asyncio.Event()

    async def slow_initialize(require_auth: bool = False):
        started.set()
        await asyncio.sleep(10)

    with patch.object(resolver, "initialize", side_effect=slow_initialize):
        task = resolver.start_background_initialization()
        await started.wait()
        await resolver.close()

    assert task.cancelled()
