"""Assistant session handles backed by the Claude Agent SDK.

An AgentSession wraps one connected ClaudeSDKClient. New sessions learn
their id from the first system message of the stream; resumed sessions
know it up front.
"""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from claude_agent_sdk import ClaudeAgentOptions, ClaudeSDKClient

from agent_relay.constants import DEFAULT_PERMISSION_MODE, SESSION_ERROR_START
from agent_relay.exceptions import SessionStartError

logger = logging.getLogger(__name__)


@dataclass
class ImageAttachment:
    """An inline image sent alongside a chat message.

    Attributes:
        data: Base64-encoded image bytes.
        media_type: MIME type, e.g. image/png.
    """

    data: str
    media_type: str = "image/png"

    def to_content_block(self) -> dict[str, Any]:
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": self.media_type, "data": self.data},
        }


def build_user_message(message: str, images: list[ImageAttachment]) -> dict[str, Any]:
    """Build a structured user message with a text block and image blocks."""
    content: list[dict[str, Any]] = [{"type": "text", "text": message}]
    content.extend(image.to_content_block() for image in images)
    return {
        "type": "user",
        "message": {"role": "user", "content": content},
        "parent_tool_use_id": None,
    }


class AgentSession:
    """A live assistant session.

    Args:
        client: Connected SDK client.
        session_id: Known id for resumed sessions, None for new ones.
        model: Model the session was started with.
        cwd: Working directory the assistant runs in.
    """

    def __init__(
        self,
        client: ClaudeSDKClient,
        session_id: str | None = None,
        model: str | None = None,
        cwd: str | None = None,
    ) -> None:
        self.client = client
        self.session_id = session_id
        self.model = model
        self.cwd = cwd

    async def send(self, message: str, images: list[ImageAttachment] | None = None) -> None:
        """Submit user input. Text-only input is sent as a plain prompt."""
        if not images:
            await self.client.query(message)
            return

        user_message = build_user_message(message, images)

        async def _stream() -> AsyncIterator[dict[str, Any]]:
            yield user_message

        await self.client.query(_stream())

    async def receive_turn(self) -> AsyncIterator[Any]:
        """Yield the messages of one turn, ending after its result message."""
        async for message in self.client.receive_response():
            yield message

    async def interrupt(self) -> None:
        """Ask the assistant to stop the current turn. Best effort."""
        try:
            await self.client.interrupt()
        except (RuntimeError, OSError, AttributeError) as e:
            logger.debug(f"Interrupt failed (expected if idle): {e}")

    async def close(self) -> None:
        await self.client.disconnect()


async def create_agent_session(
    session_id: str | None,
    model: str | None,
    cwd: str | None,
    permission_mode: str = DEFAULT_PERMISSION_MODE,
) -> AgentSession:
    """Spawn a new assistant session, or resume ``session_id``.

    The working directory goes straight into the spawn options, so the
    daemon's own working directory is never touched.

    Raises:
        SessionStartError: If the assistant process cannot be started.
    """
    options = ClaudeAgentOptions(permission_mode=permission_mode)
    if cwd:
        options.cwd = cwd
    if model:
        options.model = model
    if session_id:
        options.resume = session_id

    client = ClaudeSDKClient(options=options)
    try:
        await client.connect()
    except Exception as e:
        raise SessionStartError(
            SESSION_ERROR_START.format(error=e), session_id=session_id, cause=e
        ) from e

    return AgentSession(client, session_id=session_id, model=model, cwd=cwd)
