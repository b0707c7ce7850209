"""Tests for event serialization and SSE framing."""

import json
from pathlib import Path

from agent_relay.streaming.events import (
    done_event,
    error_event,
    extract_session_id,
    format_sse,
    serialize_message,
    to_jsonable,
    turn_complete_event,
)

from .fixtures import (
    TEST_MODEL,
    TEST_SESSION_ID,
    TEST_TEXT,
    AssistantMessage,
    ResultMessage,
    TextBlock,
    ToolUseBlock,
    init_message,
)


class TestSerializeMessage:
    """Tests for serialize_message() and to_jsonable()."""

    def test_assistant_message(self) -> None:
        """Message and block classes become type-tagged dicts."""
        message = AssistantMessage(
            content=[
                TextBlock(text=TEST_TEXT),
                ToolUseBlock(id="tool-1", name="Read", input={"path": "a.py"}),
            ]
        )

        event = serialize_message(message)

        assert event["type"] == "assistant"
        assert event["model"] == TEST_MODEL
        assert event["content"][0] == {"type": "text", "text": TEST_TEXT}
        assert event["content"][1]["type"] == "tool_use"
        assert event["content"][1]["input"] == {"path": "a.py"}

    def test_system_and_result(self) -> None:
        assert serialize_message(init_message())["type"] == "system"
        result = serialize_message(ResultMessage())
        assert result["type"] == "result"
        assert result["subtype"] == "success"

    def test_non_dict_wrapped(self) -> None:
        """Plain values are wrapped in a generic message event."""
        assert serialize_message("raw") == {"type": "message", "data": "raw"}

    def test_unknown_values_stringified(self) -> None:
        value = to_jsonable({"path": Path("/tmp"), "items": (1, 2)})
        assert value == {"path": "/tmp", "items": [1, 2]}
        json.dumps(value)


class TestExtractSessionId:
    """Tests for extract_session_id()."""

    def test_from_system_data(self) -> None:
        event = serialize_message(init_message())
        assert extract_session_id(event) == TEST_SESSION_ID

    def test_from_top_level(self) -> None:
        event = {"type": "system", "session_id": TEST_SESSION_ID}
        assert extract_session_id(event) == TEST_SESSION_ID

    def test_ignores_other_events(self) -> None:
        """Only system events announce the session id."""
        assert extract_session_id(serialize_message(ResultMessage())) is None

    def test_system_without_id(self) -> None:
        assert extract_session_id({"type": "system", "data": {}}) is None


class TestSyntheticEvents:
    """Tests for the events the daemon emits itself."""

    def test_turn_complete(self) -> None:
        assert turn_complete_event(2, TEST_SESSION_ID) == {
            "type": "turn_complete",
            "turn": 2,
            "session_id": TEST_SESSION_ID,
        }

    def test_done(self) -> None:
        assert done_event(None) == {"type": "done", "session_id": None}

    def test_error(self) -> None:
        event = error_event("boom", TEST_SESSION_ID)
        assert event["type"] == "error"
        assert event["error"] == "boom"
        assert event["session_id"] == TEST_SESSION_ID


class TestFormatSse:
    """Tests for format_sse()."""

    def test_frame_named_after_type(self) -> None:
        frame = format_sse(done_event(TEST_SESSION_ID))

        assert frame.startswith("event: done\ndata: ")
        assert frame.endswith("\n\n")
        payload = frame.split("data: ", 1)[1].strip()
        assert json.loads(payload) == {"type": "done", "session_id": TEST_SESSION_ID}

    def test_frame_without_type(self) -> None:
        assert format_sse({"value": 1}).startswith("event: message\n")

    def test_unicode_kept(self) -> None:
        assert "héllo" in format_sse({"type": "assistant", "text": "héllo"})
