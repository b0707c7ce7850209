"""Outward event shapes and SSE framing.

SDK messages are dataclasses; they are flattened into JSON-safe dicts with
a ``type`` tag derived from the class name (AssistantMessage -> assistant,
ToolUseBlock -> tool_use) so clients see a stable wire shape.
"""

import dataclasses
import json
import re
from typing import Any

from agent_relay.constants import (
    EVENT_CATEGORY_SYSTEM,
    EVENT_KEY_DATA,
    EVENT_KEY_SESSION_ID,
    EVENT_KEY_TURN,
    EVENT_KEY_TYPE,
    EVENT_TYPE_DONE,
    EVENT_TYPE_ERROR,
    EVENT_TYPE_MESSAGE,
    EVENT_TYPE_TURN_COMPLETE,
)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_TYPE_SUFFIXES = ("_message", "_block")


def _type_name(obj: Any) -> str:
    name = _CAMEL_BOUNDARY.sub("_", type(obj).__name__).lower()
    for suffix in _TYPE_SUFFIXES:
        if name.endswith(suffix) and name != suffix.lstrip("_"):
            return name[: -len(suffix)]
    return name


def to_jsonable(value: Any) -> Any:
    """Recursively convert SDK objects into JSON-serializable values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        data = {
            field.name: to_jsonable(getattr(value, field.name))
            for field in dataclasses.fields(value)
        }
        data.setdefault(EVENT_KEY_TYPE, _type_name(value))
        return data
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def serialize_message(message: Any) -> dict[str, Any]:
    """Turn one SDK message into an outward event dict."""
    data = to_jsonable(message)
    if isinstance(data, dict):
        return data
    return {EVENT_KEY_TYPE: EVENT_TYPE_MESSAGE, EVENT_KEY_DATA: data}


def extract_session_id(event: dict[str, Any]) -> str | None:
    """Return the session id carried by a system event, if any."""
    if event.get(EVENT_KEY_TYPE) != EVENT_CATEGORY_SYSTEM:
        return None
    data = event.get(EVENT_KEY_DATA)
    if isinstance(data, dict) and data.get(EVENT_KEY_SESSION_ID):
        return str(data[EVENT_KEY_SESSION_ID])
    session_id = event.get(EVENT_KEY_SESSION_ID)
    return str(session_id) if session_id else None


def turn_complete_event(turn: int, session_id: str | None) -> dict[str, Any]:
    return {
        EVENT_KEY_TYPE: EVENT_TYPE_TURN_COMPLETE,
        EVENT_KEY_TURN: turn,
        EVENT_KEY_SESSION_ID: session_id,
    }


def done_event(session_id: str | None) -> dict[str, Any]:
    return {EVENT_KEY_TYPE: EVENT_TYPE_DONE, EVENT_KEY_SESSION_ID: session_id}


def error_event(message: str, session_id: str | None = None) -> dict[str, Any]:
    return {EVENT_KEY_TYPE: EVENT_TYPE_ERROR, "error": message, EVENT_KEY_SESSION_ID: session_id}


def format_sse(event: dict[str, Any]) -> str:
    """Format one event as an SSE frame named after its type."""
    name = event.get(EVENT_KEY_TYPE) or EVENT_TYPE_MESSAGE
    data_json = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    return f"event: {name}\ndata: {data_json}\n\n"
