"""Session management routes for the relay daemon."""

import logging
from http import HTTPStatus

from fastapi import APIRouter, HTTPException

from agent_relay.constants import (
    API_PATH_SESSION,
    API_PATH_SESSIONS,
    DAEMON_ERROR_SESSION_NOT_FOUND,
    ROUTE_TAG_SESSIONS,
)
from agent_relay.daemon.models import SessionCloseResponse, SessionInfo, SessionListResponse
from agent_relay.daemon.routes._utils import require_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=[ROUTE_TAG_SESSIONS])


@router.get(API_PATH_SESSIONS, response_model=SessionListResponse)
async def list_sessions() -> SessionListResponse:
    """List registered sessions, most recently used first."""
    registry = require_registry()
    sessions = [SessionInfo(**entry) for entry in registry.list_sessions()]
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.delete(API_PATH_SESSION, response_model=SessionCloseResponse)
async def close_session(session_id: str) -> SessionCloseResponse:
    """Disconnect a session and drop it from the registry."""
    registry = require_registry()
    if not await registry.close(session_id):
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND,
            detail=DAEMON_ERROR_SESSION_NOT_FOUND.format(session_id=session_id),
        )
    return SessionCloseResponse(session_id=session_id)
