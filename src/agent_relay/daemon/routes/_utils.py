"""Shared helpers for daemon route handlers."""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING

from fastapi import HTTPException

from agent_relay.constants import (
    DAEMON_ERROR_NOT_INITIALIZED,
    TUNNEL_ERROR_PROVIDER_UNAVAILABLE,
    TUNNEL_INSTALL_HINT_CLOUDFLARED,
    TUNNEL_INSTALL_HINT_DEFAULT,
    TUNNEL_INSTALL_HINT_NGROK,
    TUNNEL_PROVIDER_CLOUDFLARED,
    TUNNEL_PROVIDER_NGROK,
)
from agent_relay.daemon.state import get_state
from agent_relay.exceptions import TunnelUnavailableError
from agent_relay.tunnel.factory import create_tunnel_provider

if TYPE_CHECKING:
    from agent_relay.daemon.state import DaemonState
    from agent_relay.sessions.registry import SessionRegistry
    from agent_relay.streaming.engine import TurnStreamEngine
    from agent_relay.tunnel.base import TunnelProvider
    from agent_relay.tunnel.manager import TunnelManager


def _not_initialized() -> HTTPException:
    return HTTPException(
        status_code=HTTPStatus.SERVICE_UNAVAILABLE,
        detail=DAEMON_ERROR_NOT_INITIALIZED,
    )


def require_registry() -> SessionRegistry:
    """Return the session registry or fail with 503 before startup."""
    registry = get_state().session_registry
    if registry is None:
        raise _not_initialized()
    return registry


def require_engine() -> TurnStreamEngine:
    engine = get_state().stream_engine
    if engine is None:
        raise _not_initialized()
    return engine


def require_tunnel_manager() -> TunnelManager:
    manager = get_state().tunnel_manager
    if manager is None:
        raise _not_initialized()
    return manager


def create_configured_provider(state: DaemonState) -> TunnelProvider:
    """Build the tunnel provider named in the loaded configuration.

    Raises:
        HTTPException: If the configuration has not been loaded.
        ValidationError: If the configured provider name is unknown.
    """
    if state.config is None:
        raise _not_initialized()
    tunnel_config = state.config.tunnel
    return create_tunnel_provider(
        provider=tunnel_config.provider,
        cloudflared_path=tunnel_config.cloudflared_path,
        ngrok_path=tunnel_config.ngrok_path,
    )


def ensure_provider_available(provider: TunnelProvider) -> None:
    """Raise if the provider binary cannot be located.

    Raises:
        TunnelUnavailableError: With an install hint for the provider.
    """
    if provider.is_available:
        return
    install_hint = {
        TUNNEL_PROVIDER_NGROK: TUNNEL_INSTALL_HINT_NGROK,
        TUNNEL_PROVIDER_CLOUDFLARED: TUNNEL_INSTALL_HINT_CLOUDFLARED,
    }.get(provider.name, TUNNEL_INSTALL_HINT_DEFAULT)
    raise TunnelUnavailableError(
        TUNNEL_ERROR_PROVIDER_UNAVAILABLE.format(provider=provider.name, install_hint=install_hint),
        provider=provider.name,
    )
