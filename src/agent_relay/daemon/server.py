"""FastAPI server for the relay daemon.

The lifespan loads configuration, configures logging, builds the session
registry, stream engine and tunnel supervisor, and auto-starts the tunnel
when configured. Shutdown stops the tunnel and disconnects every session.
"""

import functools
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI

from agent_relay.config import LogRotationConfig, load_relay_config
from agent_relay.constants import (
    CORS_ALLOWED_HEADERS,
    CORS_ALLOWED_METHODS,
    CORS_HOST_LOCALHOST,
    CORS_HOST_LOOPBACK,
    CORS_ORIGIN_TEMPLATE,
    CORS_SCHEME_HTTP,
    DAEMON_LOG_STARTING,
    DAEMON_LOG_STOPPING,
    DAEMON_LOG_TUNNEL_ACTIVE,
    DAEMON_LOG_TUNNEL_DISABLED,
    DAEMON_LOG_TUNNEL_FAILED,
    DAEMON_LOG_TUNNEL_GAVE_UP,
    DAEMON_LOG_TUNNEL_RESTARTED,
    ENV_PROJECT_ROOT,
    LOG_LEVEL_DEBUG,
    RELAY_DIR,
    RELAY_LOG_FILE,
    RELAY_LOGGER_NAME,
    VERSION,
)
from agent_relay.daemon.state import get_state
from agent_relay.exceptions import TunnelStartError, TunnelUnavailableError, ValidationError
from agent_relay.sessions.client import create_agent_session
from agent_relay.sessions.registry import SessionRegistry
from agent_relay.streaming.engine import TurnStreamEngine
from agent_relay.tunnel.manager import TunnelManager

if TYPE_CHECKING:
    from agent_relay.daemon.state import DaemonState

logger = logging.getLogger(__name__)


def _configure_logging(
    log_level: str,
    log_file: Path | None = None,
    log_rotation: LogRotationConfig | None = None,
) -> None:
    """Configure logging for the daemon.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional log file path. Console logging is used without one.
        log_rotation: Optional log rotation configuration.
    """
    from logging.handlers import RotatingFileHandler

    level = getattr(logging, log_level.upper(), logging.INFO)

    relay_logger = logging.getLogger(RELAY_LOGGER_NAME)
    relay_logger.setLevel(level)

    # Uvicorn configures the root logger before lifespan runs
    relay_logger.propagate = False
    relay_logger.handlers.clear()

    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    if level == logging.DEBUG:
        logging.getLogger("uvicorn.error").setLevel(logging.INFO)

    if level == logging.DEBUG:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s",
            datefmt="%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%H:%M:%S",
        )

    if log_file:
        try:
            rotation = log_rotation or LogRotationConfig()
            log_file.parent.mkdir(parents=True, exist_ok=True)

            file_handler: logging.Handler
            if rotation.enabled:
                file_handler = RotatingFileHandler(
                    log_file,
                    mode="a",
                    maxBytes=rotation.get_max_bytes(),
                    backupCount=rotation.backup_count,
                    encoding="utf-8",
                )
            else:
                file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")

            file_handler.setFormatter(formatter)
            relay_logger.addHandler(file_handler)

            # Route uvicorn tracebacks through the same rotated file
            logging.getLogger("uvicorn.error").addHandler(file_handler)
            return
        except OSError as e:
            relay_logger.warning(f"Could not set up file logging to {log_file}: {e}")

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    relay_logger.addHandler(stream_handler)


def _on_tunnel_restart(public_url: str) -> None:
    """Allow the new tunnel URL as a CORS origin after a restart."""
    get_state().set_tunnel_origin(public_url)
    logger.info(DAEMON_LOG_TUNNEL_RESTARTED.format(public_url=public_url))


def _on_tunnel_give_up(reason: str) -> None:
    get_state().set_tunnel_origin(None)
    logger.error(DAEMON_LOG_TUNNEL_GAVE_UP.format(reason=reason))


def _init_sessions(state: "DaemonState") -> None:
    """Create the session registry and the stream engine that uses it."""
    assert state.config is not None
    sessions_config = state.config.sessions

    registry = SessionRegistry(
        session_factory=functools.partial(
            create_agent_session, permission_mode=sessions_config.permission_mode
        ),
        idle_timeout=sessions_config.idle_timeout_seconds,
        sweep_interval=sessions_config.sweep_interval_seconds,
    )
    registry.start_idle_sweep()
    state.session_registry = registry
    state.stream_engine = TurnStreamEngine(
        registry,
        turn_timeout=sessions_config.turn_timeout_seconds,
        max_duration=sessions_config.max_request_duration_seconds,
    )


async def _init_tunnel(state: "DaemonState") -> None:
    """Create the tunnel supervisor and auto-start the tunnel if configured.

    Non-critical: failures are logged but do not prevent startup.
    """
    assert state.config is not None
    tunnel_config = state.config.tunnel

    state.tunnel_manager = TunnelManager(
        local_port=state.port,
        on_restart=_on_tunnel_restart,
        on_give_up=_on_tunnel_give_up,
        heartbeat_interval=tunnel_config.heartbeat_interval_seconds,
        max_restart_attempts=tunnel_config.max_restart_attempts,
    )

    if not state.tunnel_enabled:
        logger.info(DAEMON_LOG_TUNNEL_DISABLED)
        return
    if not tunnel_config.auto_start:
        return

    from agent_relay.daemon.routes._utils import (
        create_configured_provider,
        ensure_provider_available,
    )

    try:
        provider = create_configured_provider(state)
        ensure_provider_available(provider)
        public_url = await state.tunnel_manager.start(provider)
    except (ValidationError, TunnelUnavailableError, TunnelStartError) as e:
        logger.warning(DAEMON_LOG_TUNNEL_FAILED.format(error=e.message))
        return

    state.set_tunnel_origin(public_url)
    logger.info(DAEMON_LOG_TUNNEL_ACTIVE.format(public_url=public_url))


async def _shutdown(state: "DaemonState") -> None:
    """Graceful shutdown sequence for all subsystems."""
    logger.info(DAEMON_LOG_STOPPING)

    # 1. Stop tunnel supervision and the tunnel process
    if state.tunnel_manager is not None:
        logger.info("Stopping tunnel...")
        try:
            await state.tunnel_manager.stop()
        except (RuntimeError, OSError) as e:
            logger.warning(f"Error stopping tunnel: {e}")
        finally:
            state.set_tunnel_origin(None)

    # 2. Disconnect every session
    if state.session_registry is not None:
        logger.info("Closing sessions...")
        await state.session_registry.close_all()

    logger.info("Relay daemon shutdown complete")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage daemon lifecycle."""
    state = get_state()

    project_root = state.project_root or Path.cwd()
    state.initialize(project_root)

    config = load_relay_config(project_root)
    state.config = config

    effective_log_level = config.get_effective_log_level()
    log_file = project_root / RELAY_DIR / RELAY_LOG_FILE if state.log_to_file else None
    _configure_logging(effective_log_level, log_file=log_file, log_rotation=config.log_rotation)
    state.log_level = effective_log_level

    logger.info(DAEMON_LOG_STARTING.format(project_root=project_root, port=state.port))
    if effective_log_level == LOG_LEVEL_DEBUG:
        logger.debug("Debug logging enabled - verbose output active")

    _init_sessions(state)
    await _init_tunnel(state)

    yield

    await _shutdown(state)


def create_app(
    project_root: Path | None = None,
    port: int | None = None,
    tunnel_enabled: bool = True,
    log_to_file: bool = True,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        project_root: Root directory of the project.
        port: Port the daemon will listen on. Defaults to the configured port.
        tunnel_enabled: Allow the tunnel to auto-start.
        log_to_file: Log to .relay/relay.log instead of the console.

    Returns:
        Configured FastAPI application.
    """
    state = get_state()

    if project_root:
        state.project_root = project_root
    elif os.environ.get(ENV_PROJECT_ROOT):
        state.project_root = Path(os.environ[ENV_PROJECT_ROOT])
    else:
        state.project_root = Path.cwd()

    state.port = port if port is not None else load_relay_config(state.project_root).port
    state.tunnel_enabled = tunnel_enabled
    state.log_to_file = log_to_file

    app = FastAPI(
        title="Agent Relay",
        description="Relay chat sessions with a coding assistant over a public tunnel",
        version=VERSION,
        lifespan=lifespan,
    )

    # Localhost origins are static; the tunnel origin is swapped at runtime
    from agent_relay.daemon.middleware import DynamicCORSMiddleware

    allowed_origins = [
        CORS_ORIGIN_TEMPLATE.format(scheme=CORS_SCHEME_HTTP, host=host, port=state.port)
        for host in (CORS_HOST_LOCALHOST, CORS_HOST_LOOPBACK)
    ]
    app.add_middleware(
        DynamicCORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=list(CORS_ALLOWED_METHODS),
        allow_headers=list(CORS_ALLOWED_HEADERS),
    )

    from agent_relay.daemon.routes import chat, health, sessions, tunnel

    app.include_router(health.router)
    app.include_router(tunnel.router)
    app.include_router(chat.router)
    app.include_router(sessions.router)

    return app
