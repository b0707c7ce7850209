"""Assistant sessions: SDK-backed handles and the registry that owns them."""

from agent_relay.sessions.client import AgentSession, ImageAttachment, create_agent_session
from agent_relay.sessions.registry import SessionRegistry

__all__ = [
    "AgentSession",
    "ImageAttachment",
    "SessionRegistry",
    "create_agent_session",
]
