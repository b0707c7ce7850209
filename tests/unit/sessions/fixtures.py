"""Test fixtures for assistant sessions."""

from unittest.mock import AsyncMock, MagicMock

from agent_relay.sessions.client import AgentSession

TEST_SESSION_ID = "sess-0001"
TEST_SESSION_ID_OTHER = "sess-0002"
TEST_UNKNOWN_SESSION_ID = "sess-missing"
TEST_MODEL = "sonnet"
TEST_CWD = "/tmp/project"
TEST_MESSAGE = "List the files in this directory"
TEST_IMAGE_DATA = "aGVsbG8="
TEST_IMAGE_MEDIA_TYPE = "image/jpeg"
TEST_ERROR_GENERIC = "test error"

IDLE_TIMEOUT = 100.0


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_session(session_id: str | None = None) -> AgentSession:
    """AgentSession over a mocked SDK client."""
    client = MagicMock()
    client.disconnect = AsyncMock()
    return AgentSession(client, session_id=session_id, model=TEST_MODEL, cwd=TEST_CWD)


def make_factory() -> AsyncMock:
    """Session factory returning a fresh mocked session per call."""

    async def _create(session_id, model, cwd):
        return make_session(session_id)

    return AsyncMock(side_effect=_create)
