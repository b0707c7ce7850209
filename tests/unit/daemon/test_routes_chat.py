"""Tests for the streaming chat route.

Tests cover:
- Request validation
- Session creation, resume and failure
- SSE framing, always ending with a done frame
- Errors after streaming has started
"""

import json
from http import HTTPStatus
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from agent_relay.config import RelayConfig, SessionConfig
from agent_relay.constants import API_PATH_CHAT, SSE_MEDIA_TYPE
from agent_relay.daemon.state import get_state
from agent_relay.exceptions import SessionStartError
from agent_relay.sessions.client import ImageAttachment
from agent_relay.sessions.registry import SessionRegistry
from agent_relay.streaming.engine import TurnStreamEngine

from ..streaming.fixtures import FakeSession, init_message, text_turn
from .fixtures import TEST_ERROR_GENERIC, TEST_MESSAGE, TEST_MODEL, make_client

STREAM_SESSION_ID = "sess-stream-1"


@pytest.fixture
def client(project_root: Path) -> TestClient:
    return make_client(project_root)


def parse_sse(body: str) -> list[tuple[str, dict[str, Any]]]:
    """Split an SSE body into (event name, payload) pairs."""
    frames = []
    for block in body.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        frames.append((lines["event"], json.loads(lines["data"])))
    return frames


def install_components(session: Any) -> tuple[AsyncMock, TurnStreamEngine]:
    """Wire a registry whose factory hands out ``session`` plus a real engine."""
    factory = AsyncMock(return_value=session)
    registry = SessionRegistry(session_factory=factory)
    engine = TurnStreamEngine(registry, turn_timeout=0.05, max_duration=5.0)
    state = get_state()
    state.session_registry = registry
    state.stream_engine = engine
    return factory, engine


class TestChatValidation:
    """Requests rejected before a session is touched."""

    def test_not_initialized(self, client: TestClient) -> None:
        response = client.post(API_PATH_CHAT, json={"message": TEST_MESSAGE})
        assert response.status_code == HTTPStatus.SERVICE_UNAVAILABLE

    def test_blank_message(self, client: TestClient) -> None:
        factory, _ = install_components(FakeSession([]))

        response = client.post(API_PATH_CHAT, json={"message": "   "})

        assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
        factory.assert_not_awaited()

    def test_missing_message(self, client: TestClient) -> None:
        install_components(FakeSession([]))
        response = client.post(API_PATH_CHAT, json={"session_id": STREAM_SESSION_ID})
        assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY


class TestChatStream:
    """Successful streaming requests."""

    def test_new_session_stream(self, client: TestClient, project_root: Path) -> None:
        """Events stream as SSE frames and end with done carrying the new id."""
        session = FakeSession([[init_message(STREAM_SESSION_ID), *text_turn()]])
        factory, _ = install_components(session)

        response = client.post(API_PATH_CHAT, json={"message": TEST_MESSAGE})

        assert response.status_code == HTTPStatus.OK
        assert response.headers["content-type"].startswith(SSE_MEDIA_TYPE)
        assert response.headers["cache-control"] == "no-cache"
        frames = parse_sse(response.text)
        assert [name for name, _ in frames] == [
            "system",
            "assistant",
            "result",
            "turn_complete",
            "done",
        ]
        assert frames[-1][1] == {"type": "done", "session_id": STREAM_SESSION_ID}
        factory.assert_awaited_once_with(None, None, str(project_root))
        assert STREAM_SESSION_ID in get_state().session_registry

    def test_defaults_from_config(self, client: TestClient) -> None:
        """The configured model is used when the request names none."""
        get_state().config = RelayConfig(sessions=SessionConfig(default_model=TEST_MODEL))
        factory, _ = install_components(FakeSession([text_turn()]))

        client.post(API_PATH_CHAT, json={"message": TEST_MESSAGE, "cwd": "/srv/app"})

        factory.assert_awaited_once_with(None, TEST_MODEL, "/srv/app")

    def test_resume_session(self, client: TestClient) -> None:
        session = FakeSession([text_turn()], session_id=STREAM_SESSION_ID)
        factory, _ = install_components(session)

        response = client.post(
            API_PATH_CHAT,
            json={"message": TEST_MESSAGE, "session_id": STREAM_SESSION_ID, "model": "opus"},
        )

        frames = parse_sse(response.text)
        assert frames[-1][1]["session_id"] == STREAM_SESSION_ID
        assert factory.call_args.args[:2] == (STREAM_SESSION_ID, "opus")

    def test_images_forwarded(self, client: TestClient) -> None:
        session = FakeSession([text_turn()])
        install_components(session)

        client.post(
            API_PATH_CHAT,
            json={
                "message": TEST_MESSAGE,
                "images": [{"data": "aGVsbG8=", "media_type": "image/jpeg"}],
            },
        )

        images = session.send.call_args.args[1]
        assert images == [ImageAttachment(data="aGVsbG8=", media_type="image/jpeg")]


class TestChatErrors:
    """Failures before and during streaming."""

    def test_session_start_failure(self, client: TestClient) -> None:
        factory, _ = install_components(None)
        factory.side_effect = SessionStartError(TEST_ERROR_GENERIC)

        response = client.post(API_PATH_CHAT, json={"message": TEST_MESSAGE})

        assert response.status_code == HTTPStatus.BAD_GATEWAY
        assert response.json()["detail"] == TEST_ERROR_GENERIC

    def test_error_mid_stream(self, client: TestClient) -> None:
        """A failure after streaming began yields an error frame, then done."""
        session = FakeSession([], session_id=STREAM_SESSION_ID)
        install_components(session)

        async def failing_stream(*args, **kwargs):
            yield {"type": "assistant", "content": []}
            raise RuntimeError(TEST_ERROR_GENERIC)

        engine = MagicMock()
        engine.stream = failing_stream
        get_state().stream_engine = engine

        response = client.post(API_PATH_CHAT, json={"message": TEST_MESSAGE})

        assert response.status_code == HTTPStatus.OK
        frames = parse_sse(response.text)
        assert [name for name, _ in frames] == ["assistant", "error", "done"]
        assert frames[1][1]["error"] == TEST_ERROR_GENERIC
        assert frames[2][1]["session_id"] == STREAM_SESSION_ID
