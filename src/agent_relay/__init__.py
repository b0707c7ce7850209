"""agent-relay: chat with a local coding assistant from anywhere over a public tunnel."""

from agent_relay.constants import VERSION

__version__ = VERSION
