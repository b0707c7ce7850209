"""Health and status routes for the relay daemon.

``/health`` is also the path the tunnel supervisor probes through the
public URL, so it must stay cheap and dependency-free.
"""

import logging

from fastapi import APIRouter

from agent_relay.constants import (
    API_PATH_HEALTH,
    API_PATH_STATUS,
    DAEMON_STATUS_HEALTHY,
    ROUTE_TAG_HEALTH,
    VERSION,
)
from agent_relay.daemon.models import HealthResponse
from agent_relay.daemon.state import get_state

logger = logging.getLogger(__name__)

router = APIRouter(tags=[ROUTE_TAG_HEALTH])


@router.get(API_PATH_HEALTH, response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check daemon health."""
    state = get_state()
    return HealthResponse(
        status=DAEMON_STATUS_HEALTHY,
        version=VERSION,
        uptime_seconds=state.uptime_seconds,
        project_root=str(state.project_root) if state.project_root else None,
    )


@router.get(API_PATH_STATUS)
async def get_status() -> dict:
    """Get detailed daemon status including tunnel, sessions and configuration."""
    state = get_state()
    tunnel = state.tunnel_manager.get_status() if state.tunnel_manager else None
    sessions = len(state.session_registry) if state.session_registry is not None else 0

    return {
        "status": DAEMON_STATUS_HEALTHY,
        "version": VERSION,
        "uptime_seconds": state.uptime_seconds,
        "project_root": str(state.project_root) if state.project_root else None,
        "port": state.port,
        "log_level": state.log_level,
        "tunnel_enabled": state.tunnel_enabled,
        "tunnel": tunnel,
        "active_sessions": sessions,
        "config": state.config.to_dict() if state.config else None,
    }
