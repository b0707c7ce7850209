"""Test fixtures for the streaming engine.

The message classes mirror the shape of the SDK's message dataclasses so
serialization produces the same ``type`` tags.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock

TEST_SESSION_ID = "sess-stream-1"
TEST_MODEL = "sonnet"
TEST_CWD = "/tmp/project"
TEST_MESSAGE = "Run the test suite in the background"
TEST_TEXT = "Working on it."
TEST_NOTIFICATION = "<task-notification>task 1 finished</task-notification>"


@dataclass
class TextBlock:
    text: str


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class AssistantMessage:
    content: list[Any]
    model: str = TEST_MODEL


@dataclass
class UserMessage:
    content: str | list[Any]


@dataclass
class SystemMessage:
    subtype: str
    data: dict[str, Any]


@dataclass
class ResultMessage:
    subtype: str = "success"
    is_error: bool = False
    num_turns: int = 1
    session_id: str = TEST_SESSION_ID
    result: str | None = None


def init_message(session_id: str = TEST_SESSION_ID) -> SystemMessage:
    """The first system message of a session, listing every tool."""
    return SystemMessage(
        subtype="init",
        data={
            "session_id": session_id,
            "tools": ["Bash", "Read", "Task", "TeamCreate", "TeamDelete"],
        },
    )


def text_turn(text: str = TEST_TEXT) -> list[Any]:
    return [AssistantMessage(content=[TextBlock(text=text)]), ResultMessage()]


def tool_turn(*blocks: ToolUseBlock) -> list[Any]:
    return [AssistantMessage(content=list(blocks)), ResultMessage()]


def background_bash(tool_id: str) -> ToolUseBlock:
    return ToolUseBlock(
        id=tool_id, name="Bash", input={"command": "pytest", "run_in_background": True}
    )


# Placed inside a scripted turn to make the stream stall at that point
HANG = object()


class FakeSession:
    """Session stand-in that replays scripted turns.

    Each receive_turn() call replays the next turn. Once the script runs
    out, receive_turn() blocks forever like an idle assistant.
    """

    def __init__(self, turns: list[list[Any]], session_id: str | None = None) -> None:
        self.turns = list(turns)
        self.session_id = session_id
        self.model = TEST_MODEL
        self.cwd = TEST_CWD
        self.send = AsyncMock()
        self.interrupt = AsyncMock()
        self.close = AsyncMock()
        self.turns_started = 0
        self.turns_closed = 0

    async def receive_turn(self):
        self.turns_started += 1
        try:
            if not self.turns:
                await asyncio.Event().wait()
            for message in self.turns.pop(0):
                if message is HANG:
                    await asyncio.Event().wait()
                yield message
        finally:
            self.turns_closed += 1
