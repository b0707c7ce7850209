"""Turn-multiplexing stream engine.

One chat request sends a single input but may span several assistant
turns: agent teams and background tasks keep producing output after the
first turn ends. TurnStreamEngine reads turn after turn from a session and
decides when the request is over:

- Without team or background markers the request ends after one turn.
- In team mode it runs until the team is deleted.
- With background tasks it runs until every launched task has reported
  back.
- Waiting for a follow-up turn is bounded by an inactivity timeout, and
  the whole request by a wall-clock safety valve.

A synthetic ``turn_complete`` event is emitted after each turn.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

from agent_relay.constants import (
    REQUEST_MAX_DURATION_SECONDS,
    STREAM_LOG_FINISHED,
    STREAM_LOG_SAFETY_VALVE,
    STREAM_LOG_SESSION_RESOLVED,
    STREAM_LOG_TURN_COMPLETE,
    STREAM_LOG_TURN_TIMEOUT,
    TURN_INACTIVITY_TIMEOUT_SECONDS,
)
from agent_relay.sessions.client import AgentSession, ImageAttachment
from agent_relay.sessions.registry import SessionRegistry
from agent_relay.streaming.events import (
    extract_session_id,
    serialize_message,
    turn_complete_event,
)
from agent_relay.streaming.markers import classify_event

logger = logging.getLogger(__name__)


@dataclass
class StreamState:
    """Per-request bookkeeping.

    ``pending_tasks`` may go negative when a notification arrives without a
    launch seen in this request; that counts as "nothing pending".
    """

    session_id: str | None = None
    multi_turn: bool = False
    team_mode: bool = False
    teams_finished: bool = False
    background_mode: bool = False
    pending_tasks: int = 0
    turns: int = 0

    def should_continue(self) -> bool:
        """Decide whether to wait for another turn."""
        if not self.multi_turn:
            return False
        if self.team_mode:
            return not self.teams_finished
        if self.background_mode:
            return self.pending_tasks > 0
        return True


class TurnStreamEngine:
    """Drive one chat request through a session and yield outward events.

    Args:
        registry: Registry notified when a new session's id becomes known.
        turn_timeout: Seconds to wait for the first event of a follow-up turn.
        max_duration: Wall-clock cap for the whole request.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        turn_timeout: float = TURN_INACTIVITY_TIMEOUT_SECONDS,
        max_duration: float = REQUEST_MAX_DURATION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.turn_timeout = turn_timeout
        self.max_duration = max_duration
        self._clock = clock

    async def stream(
        self,
        session: AgentSession,
        message: str,
        images: list[ImageAttachment] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Send ``message`` and yield every event until the request is over."""
        state = StreamState(session_id=session.session_id)
        deadline = self._clock() + self.max_duration

        await session.send(message, images)

        while True:
            turn = state.turns + 1
            count = 0

            async with aclosing(session.receive_turn()) as events:
                while True:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        await self._stop_runaway(session)
                        self._log_finished(state)
                        return

                    waiting_for_turn = count == 0 and turn > 1
                    timeout = min(self.turn_timeout, remaining) if waiting_for_turn else remaining
                    try:
                        raw = await asyncio.wait_for(anext(events), timeout=timeout)
                    except StopAsyncIteration:
                        break
                    except TimeoutError:
                        if waiting_for_turn and self.turn_timeout < remaining:
                            logger.info(
                                STREAM_LOG_TURN_TIMEOUT.format(
                                    timeout=self.turn_timeout, turn=turn - 1
                                )
                            )
                        else:
                            await self._stop_runaway(session)
                        self._log_finished(state)
                        return

                    count += 1
                    event = serialize_message(raw)
                    self._observe(event, session, state)
                    yield event

            state.turns = turn
            logger.debug(STREAM_LOG_TURN_COMPLETE.format(turn=turn, count=count))
            yield turn_complete_event(turn, state.session_id)
            if state.session_id:
                self.registry.touch(state.session_id)

            if not state.should_continue():
                break

        self._log_finished(state)

    def _observe(self, event: dict[str, Any], session: AgentSession, state: StreamState) -> None:
        if state.session_id is None:
            session_id = extract_session_id(event)
            if session_id:
                state.session_id = session_id
                logger.info(STREAM_LOG_SESSION_RESOLVED.format(session_id=session_id))
                self.registry.register(session_id, session)

        signals = classify_event(event)
        if signals.teams_started:
            state.team_mode = True
            state.multi_turn = True
        if signals.teams_finished:
            state.teams_finished = True
        if signals.bg_task_launched:
            state.background_mode = True
            state.multi_turn = True
            state.pending_tasks += signals.bg_tasks_launched
        if signals.bg_task_completed:
            state.pending_tasks -= signals.bg_tasks_completed

    async def _stop_runaway(self, session: AgentSession) -> None:
        logger.warning(STREAM_LOG_SAFETY_VALVE.format(limit=self.max_duration))
        await session.interrupt()

    def _log_finished(self, state: StreamState) -> None:
        logger.info(
            STREAM_LOG_FINISHED.format(
                turns=state.turns, team_mode=state.team_mode, pending=state.pending_tasks
            )
        )
