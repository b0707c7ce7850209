"""Streaming of chat requests as bounded sequences of events."""

from agent_relay.streaming.engine import StreamState, TurnStreamEngine
from agent_relay.streaming.events import format_sse, serialize_message
from agent_relay.streaming.markers import MultiTurnSignals, classify_event

__all__ = [
    "MultiTurnSignals",
    "StreamState",
    "TurnStreamEngine",
    "classify_event",
    "format_sse",
    "serialize_message",
]
