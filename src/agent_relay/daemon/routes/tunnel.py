"""Tunnel routes for the relay daemon.

Start, stop and inspect the supervised public tunnel. Starting through the
API also clears a previous give-up, so this is how an operator recovers
after the supervisor exhausted its restart attempts.
"""

import logging
from http import HTTPStatus

from fastapi import APIRouter, HTTPException

from agent_relay.constants import (
    API_PATH_TUNNEL_START,
    API_PATH_TUNNEL_STATUS,
    API_PATH_TUNNEL_STOP,
    DAEMON_LOG_TUNNEL_ACTIVE,
    DAEMON_LOG_TUNNEL_FAILED,
    DAEMON_LOG_TUNNEL_START,
    DAEMON_LOG_TUNNEL_STOPPED,
    ROUTE_TAG_TUNNEL,
    TUNNEL_API_STATUS_ALREADY_ACTIVE,
    TUNNEL_API_STATUS_ERROR,
    TUNNEL_API_STATUS_NOT_ACTIVE,
    TUNNEL_API_STATUS_STARTED,
    TUNNEL_API_STATUS_STOPPED,
    TUNNEL_ERROR_STOP,
    TUNNEL_RESPONSE_KEY_ACTIVE,
    TUNNEL_RESPONSE_KEY_ERROR,
    TUNNEL_RESPONSE_KEY_PROVIDER,
    TUNNEL_RESPONSE_KEY_PUBLIC_URL,
    TUNNEL_RESPONSE_KEY_STARTED_AT,
    TUNNEL_RESPONSE_KEY_STATUS,
    TUNNEL_STATE_STOPPED,
)
from agent_relay.daemon.routes._utils import (
    create_configured_provider,
    ensure_provider_available,
    require_tunnel_manager,
)
from agent_relay.daemon.state import get_state
from agent_relay.exceptions import TunnelStartError, TunnelUnavailableError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(tags=[ROUTE_TAG_TUNNEL])


def _inactive_status(provider: str | None = None, error: str | None = None) -> dict:
    return {
        TUNNEL_RESPONSE_KEY_ACTIVE: False,
        TUNNEL_RESPONSE_KEY_PUBLIC_URL: None,
        TUNNEL_RESPONSE_KEY_PROVIDER: provider,
        TUNNEL_RESPONSE_KEY_STARTED_AT: None,
        TUNNEL_RESPONSE_KEY_ERROR: error,
    }


@router.post(API_PATH_TUNNEL_START)
async def start_tunnel() -> dict:
    """Start the supervised tunnel and allow its URL as a CORS origin.

    Returns:
        Tunnel status including the public URL.
    """
    state = get_state()
    manager = require_tunnel_manager()

    if manager.is_running and manager.provider is not None:
        return {
            TUNNEL_RESPONSE_KEY_STATUS: TUNNEL_API_STATUS_ALREADY_ACTIVE,
            **manager.provider.get_status().to_dict(),
        }

    try:
        provider = create_configured_provider(state)
        ensure_provider_available(provider)
    except (ValidationError, TunnelUnavailableError) as e:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=e.message) from e

    logger.info(DAEMON_LOG_TUNNEL_START.format(provider=provider.name, port=manager.local_port))
    try:
        public_url = await manager.start(provider)
    except TunnelStartError as e:
        logger.error(DAEMON_LOG_TUNNEL_FAILED.format(error=e.message))
        return {
            TUNNEL_RESPONSE_KEY_STATUS: TUNNEL_API_STATUS_ERROR,
            **_inactive_status(provider=provider.name, error=e.message),
        }

    state.set_tunnel_origin(public_url)
    logger.info(DAEMON_LOG_TUNNEL_ACTIVE.format(public_url=public_url))
    return {
        TUNNEL_RESPONSE_KEY_STATUS: TUNNEL_API_STATUS_STARTED,
        **provider.get_status().to_dict(),
    }


@router.post(API_PATH_TUNNEL_STOP)
async def stop_tunnel() -> dict:
    """Stop the tunnel and its supervision.

    Returns:
        Status confirmation.
    """
    state = get_state()
    manager = require_tunnel_manager()

    if manager.state == TUNNEL_STATE_STOPPED:
        state.set_tunnel_origin(None)
        return {TUNNEL_RESPONSE_KEY_STATUS: TUNNEL_API_STATUS_NOT_ACTIVE}

    state.set_tunnel_origin(None)
    try:
        await manager.stop()
    except (RuntimeError, OSError) as e:
        logger.warning(TUNNEL_ERROR_STOP.format(error=e))

    logger.info(DAEMON_LOG_TUNNEL_STOPPED)
    return {TUNNEL_RESPONSE_KEY_STATUS: TUNNEL_API_STATUS_STOPPED}


@router.get(API_PATH_TUNNEL_STATUS)
async def get_tunnel_status() -> dict:
    """Get current tunnel status.

    Returns:
        Provider status merged with the supervisor's counters and state.
    """
    manager = require_tunnel_manager()
    provider = manager.provider

    if provider is None:
        status = _inactive_status()
    else:
        status = provider.get_status().to_dict()
    return {**status, "supervisor": manager.get_status()}
