"""Daemon state container.

Routes reach the long-lived daemon components (tunnel manager, session
registry, stream engine) through the single DaemonState instance returned
by get_state(). The lifespan in server.py builds them at startup and tears
them down at shutdown.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from agent_relay.constants import DEFAULT_PORT, LOG_LEVEL_INFO

if TYPE_CHECKING:
    from agent_relay.config import RelayConfig
    from agent_relay.sessions.registry import SessionRegistry
    from agent_relay.streaming.engine import TurnStreamEngine
    from agent_relay.tunnel.manager import TunnelManager


@dataclass
class DaemonState:
    """State container for the relay daemon.

    Attributes:
        start_time: Daemon start timestamp (epoch seconds).
        project_root: Project the daemon serves; default cwd for sessions.
        port: Local port the daemon listens on.
        config: Loaded relay configuration.
        log_level: Effective log level.
        tunnel_enabled: Whether the tunnel may be auto-started.
        log_to_file: Write logs to .relay/relay.log instead of the console.
        tunnel_manager: Supervisor for the public tunnel.
        session_registry: Live assistant sessions.
        stream_engine: Engine that drives chat requests.
        tunnel_origin: CORS origin of the current tunnel URL.
    """

    start_time: float | None = None
    project_root: Path | None = None
    port: int = DEFAULT_PORT
    config: "RelayConfig | None" = None
    log_level: str = LOG_LEVEL_INFO
    tunnel_enabled: bool = True
    log_to_file: bool = True
    tunnel_manager: "TunnelManager | None" = None
    session_registry: "SessionRegistry | None" = None
    stream_engine: "TurnStreamEngine | None" = None
    tunnel_origin: str | None = None
    dynamic_cors_origins: set[str] = field(default_factory=set)

    def initialize(self, project_root: Path) -> None:
        """Initialize daemon state for startup."""
        self.start_time = time.time()
        self.project_root = project_root
        self.tunnel_origin = None
        self.dynamic_cors_origins = set()

    @property
    def uptime_seconds(self) -> float:
        """Get daemon uptime in seconds."""
        if self.start_time is None:
            return 0.0
        return time.time() - self.start_time

    def add_cors_origin(self, origin: str) -> None:
        self.dynamic_cors_origins.add(origin.rstrip("/"))

    def remove_cors_origin(self, origin: str) -> None:
        self.dynamic_cors_origins.discard(origin.rstrip("/"))

    def get_dynamic_cors_origins(self) -> set[str]:
        return set(self.dynamic_cors_origins)

    def set_tunnel_origin(self, url: str | None) -> None:
        """Swap the allowed tunnel origin for ``url`` (None removes it)."""
        if self.tunnel_origin:
            self.remove_cors_origin(self.tunnel_origin)
        self.tunnel_origin = url
        if url:
            self.add_cors_origin(url)

    def reset(self) -> None:
        """Reset state for testing or restart."""
        self.start_time = None
        self.project_root = None
        self.port = DEFAULT_PORT
        self.config = None
        self.log_level = LOG_LEVEL_INFO
        self.tunnel_enabled = True
        self.log_to_file = True
        self.tunnel_manager = None
        self.session_registry = None
        self.stream_engine = None
        self.tunnel_origin = None
        self.dynamic_cors_origins = set()


# Global daemon state instance, accessed by the routes
daemon_state = DaemonState()


def get_state() -> DaemonState:
    """Get the global daemon state."""
    return daemon_state


def reset_state() -> None:
    """Reset the global daemon state. Useful for testing."""
    daemon_state.reset()
