"""Test fixtures for daemon routes and lifecycle."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from agent_relay.config import RelayConfig
from agent_relay.daemon.server import create_app
from agent_relay.daemon.state import get_state
from agent_relay.sessions.client import AgentSession
from agent_relay.sessions.registry import SessionRegistry

TEST_PORT = 38100
TEST_SESSION_ID = "sess-api-1"
TEST_UNKNOWN_SESSION_ID = "sess-missing"
TEST_MODEL = "sonnet"
TEST_MESSAGE = "What does this repository do?"
TEST_ERROR_GENERIC = "test error"
TEST_LOCAL_ORIGIN = f"http://localhost:{TEST_PORT}"
TEST_FOREIGN_ORIGIN = "https://evil.example.com"


def make_client(project_root: Path) -> TestClient:
    """Test client without the lifespan; tests wire daemon state by hand."""
    app = create_app(project_root=project_root, port=TEST_PORT, tunnel_enabled=False)
    state = get_state()
    state.initialize(project_root)
    state.config = RelayConfig()
    return TestClient(app)


def make_session(session_id: str | None = None) -> AgentSession:
    client = MagicMock()
    client.disconnect = AsyncMock()
    return AgentSession(client, session_id=session_id, model=TEST_MODEL, cwd="/tmp")


def install_registry(factory: AsyncMock | None = None) -> SessionRegistry:
    """Put a registry backed by mocked sessions into daemon state."""
    if factory is None:

        async def _create(session_id, model, cwd):
            return make_session(session_id)

        factory = AsyncMock(side_effect=_create)
    registry = SessionRegistry(session_factory=factory)
    get_state().session_registry = registry
    return registry
