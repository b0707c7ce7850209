"""HTTP daemon for the agent relay.

State management is imported directly; the FastAPI server is loaded on
demand so the state can be used without importing the web stack.
"""

from typing import Any

from agent_relay.daemon.state import DaemonState, daemon_state, get_state, reset_state


def __getattr__(name: str) -> Any:
    """Lazy import module members to avoid loading heavy dependencies."""
    if name == "create_app":
        from agent_relay.daemon.server import create_app

        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "DaemonState",
    "create_app",
    "daemon_state",
    "get_state",
    "reset_state",
]
