"""Chat route for the relay daemon.

POST /api/chat resumes or creates an assistant session, sends the message
and streams every event back as SSE until the request is over. The stream
always ends with a ``done`` frame; failures after streaming has started are
reported as an ``error`` frame first.
"""

import logging
from collections.abc import AsyncIterator
from http import HTTPStatus

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from agent_relay.constants import (
    API_PATH_CHAT,
    DAEMON_LOG_CHAT_FAILED,
    ROUTE_TAG_CHAT,
    SSE_MEDIA_TYPE,
)
from agent_relay.daemon.models import ChatRequest
from agent_relay.daemon.routes._utils import require_engine, require_registry
from agent_relay.daemon.state import get_state
from agent_relay.exceptions import SessionStartError
from agent_relay.sessions.client import AgentSession, ImageAttachment
from agent_relay.streaming.engine import TurnStreamEngine
from agent_relay.streaming.events import done_event, error_event, format_sse

logger = logging.getLogger(__name__)

router = APIRouter(tags=[ROUTE_TAG_CHAT])

_SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


async def _sse_stream(
    engine: TurnStreamEngine,
    session: AgentSession,
    message: str,
    images: list[ImageAttachment],
) -> AsyncIterator[str]:
    try:
        async for event in engine.stream(session, message, images):
            yield format_sse(event)
    except Exception as e:
        logger.exception(DAEMON_LOG_CHAT_FAILED.format(error=e))
        yield format_sse(error_event(str(e), session.session_id))
    yield format_sse(done_event(session.session_id))


@router.post(API_PATH_CHAT)
async def chat(request: ChatRequest) -> StreamingResponse:
    """Send a message and stream the assistant's events.

    The model and working directory default to the configured model and the
    project root.
    """
    state = get_state()
    registry = require_registry()
    engine = require_engine()

    model = request.model
    if model is None and state.config is not None:
        model = state.config.sessions.default_model
    cwd = request.cwd or (str(state.project_root) if state.project_root else None)

    try:
        session = await registry.get_or_create(request.session_id, model, cwd)
    except SessionStartError as e:
        raise HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=e.message) from e

    images = [image.to_attachment() for image in request.images]
    return StreamingResponse(
        _sse_stream(engine, session, request.message, images),
        media_type=SSE_MEDIA_TYPE,
        headers=_SSE_HEADERS,
    )
