"""Registry of live assistant sessions.

The registry maps session ids to handles and tracks when each session was
last used. It is created with the daemon and closed at shutdown. A periodic
sweep closes sessions that have been idle longer than the idle timeout.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from agent_relay.constants import (
    SESSION_IDLE_TIMEOUT_SECONDS,
    SESSION_LOG_CLOSED,
    SESSION_LOG_CREATE,
    SESSION_LOG_EVICTED,
    SESSION_LOG_REGISTERED,
    SESSION_LOG_RESUME,
    SESSION_SWEEP_INTERVAL_SECONDS,
)
from agent_relay.sessions.client import AgentSession, create_agent_session

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str | None, str | None, str | None], Awaitable[AgentSession]]


class SessionRegistry:
    """Owns every live session and evicts idle ones.

    Args:
        session_factory: Coroutine function ``(session_id, model, cwd)`` that
            spawns or resumes a session.
        idle_timeout: Seconds of inactivity after which a session is evicted.
        sweep_interval: Seconds between idle sweeps.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        session_factory: SessionFactory = create_agent_session,
        idle_timeout: float = SESSION_IDLE_TIMEOUT_SECONDS,
        sweep_interval: float = SESSION_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._idle_timeout = idle_timeout
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._sessions: dict[str, AgentSession] = {}
        self._last_activity: dict[str, float] = {}
        self._sweep_task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    async def get_or_create(
        self,
        session_id: str | None,
        model: str | None,
        cwd: str | None,
    ) -> AgentSession:
        """Return the session for ``session_id``, resuming or creating as needed.

        A new session (no id) is not registered here; its id is only known
        once the stream reports it.

        Raises:
            SessionStartError: If the session cannot be spawned.
        """
        if session_id and session_id in self._sessions:
            self.touch(session_id)
            return self._sessions[session_id]

        if session_id:
            logger.info(SESSION_LOG_RESUME.format(session_id=session_id, model=model, cwd=cwd))
        else:
            logger.info(SESSION_LOG_CREATE.format(model=model, cwd=cwd))

        session = await self._session_factory(session_id, model, cwd)

        if session_id:
            existing = self._sessions.get(session_id)
            if existing is not None and existing is not session:
                # A concurrent request resumed the same id first
                await self._close_quietly(session_id, session)
                self.touch(session_id)
                return existing
            self.register(session_id, session)
        return session

    def register(self, session_id: str, session: AgentSession) -> None:
        """Insert or refresh a session. Registering twice keeps one entry."""
        is_new = session_id not in self._sessions
        session.session_id = session_id
        self._sessions[session_id] = session
        self._last_activity[session_id] = self._clock()
        if is_new:
            logger.info(SESSION_LOG_REGISTERED.format(session_id=session_id))

    def touch(self, session_id: str) -> None:
        if session_id in self._sessions:
            self._last_activity[session_id] = self._clock()

    def get(self, session_id: str) -> AgentSession | None:
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[dict[str, Any]]:
        """Describe registered sessions, most recently used first."""
        now = self._clock()
        entries = [
            {
                "session_id": session_id,
                "model": session.model,
                "cwd": session.cwd,
                "idle_seconds": round(now - self._last_activity.get(session_id, now), 1),
            }
            for session_id, session in self._sessions.items()
        ]
        return sorted(entries, key=lambda entry: entry["idle_seconds"])

    async def close(self, session_id: str) -> bool:
        """Disconnect and forget a session.

        Returns:
            True if the session was registered.
        """
        session = self._sessions.pop(session_id, None)
        self._last_activity.pop(session_id, None)
        if session is None:
            return False
        await self._close_quietly(session_id, session)
        logger.info(SESSION_LOG_CLOSED.format(session_id=session_id))
        return True

    async def _close_quietly(self, session_id: str, session: AgentSession) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.debug(f"Error closing session {session_id}: {e}")

    async def close_all(self) -> None:
        """Close every session and stop the idle sweep."""
        self.stop_idle_sweep()
        sessions = list(self._sessions.items())
        self._sessions.clear()
        self._last_activity.clear()
        for session_id, session in sessions:
            await self._close_quietly(session_id, session)
        if sessions:
            logger.info(f"Closed {len(sessions)} session(s)")

    # ------------------------------------------------------------------
    # Idle sweep
    # ------------------------------------------------------------------

    async def sweep_idle(self) -> list[str]:
        """Close sessions idle longer than the idle timeout.

        Returns:
            Ids of the evicted sessions.
        """
        now = self._clock()
        stale = [
            (session_id, now - last)
            for session_id, last in self._last_activity.items()
            if now - last > self._idle_timeout
        ]
        for session_id, idle in stale:
            logger.info(SESSION_LOG_EVICTED.format(session_id=session_id, idle=idle))
            await self.close(session_id)
        return [session_id for session_id, _ in stale]

    async def _sweep_loop(self) -> None:
        logger.debug(f"Idle sweep started (interval={self._sweep_interval}s)")
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.sweep_idle()
            except Exception as e:
                logger.error(f"Error in idle sweep: {e}")

    def start_idle_sweep(self) -> None:
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    def stop_idle_sweep(self) -> None:
        if self._sweep_task is not None and not self._sweep_task.done():
            self._sweep_task.cancel()
        self._sweep_task = None
