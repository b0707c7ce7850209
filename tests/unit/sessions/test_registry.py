"""Tests for the session registry.

Tests cover:
- Resume and create through get_or_create
- Idempotent registration
- Concurrent resume of the same id
- Idle eviction
- Close and close_all
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from agent_relay.exceptions import SessionStartError
from agent_relay.sessions.registry import SessionRegistry

from .fixtures import (
    IDLE_TIMEOUT,
    TEST_CWD,
    TEST_ERROR_GENERIC,
    TEST_MODEL,
    TEST_SESSION_ID,
    TEST_SESSION_ID_OTHER,
    TEST_UNKNOWN_SESSION_ID,
    FakeClock,
    make_factory,
    make_session,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def factory() -> AsyncMock:
    return make_factory()


@pytest.fixture
def registry(factory: AsyncMock, clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(session_factory=factory, idle_timeout=IDLE_TIMEOUT, clock=clock)


class TestGetOrCreate:
    """Tests for get_or_create()."""

    @pytest.mark.anyio
    async def test_new_session_not_registered(
        self, registry: SessionRegistry, factory: AsyncMock
    ) -> None:
        """A session without an id is spawned but not registered."""
        session = await registry.get_or_create(None, TEST_MODEL, TEST_CWD)

        factory.assert_awaited_once_with(None, TEST_MODEL, TEST_CWD)
        assert session.session_id is None
        assert len(registry) == 0

    @pytest.mark.anyio
    async def test_resume_registers(self, registry: SessionRegistry, factory: AsyncMock) -> None:
        """An unknown id is resumed and registered."""
        session = await registry.get_or_create(TEST_SESSION_ID, TEST_MODEL, TEST_CWD)

        factory.assert_awaited_once_with(TEST_SESSION_ID, TEST_MODEL, TEST_CWD)
        assert TEST_SESSION_ID in registry
        assert registry.get(TEST_SESSION_ID) is session

    @pytest.mark.anyio
    async def test_existing_session_reused(
        self, registry: SessionRegistry, factory: AsyncMock, clock: FakeClock
    ) -> None:
        """A registered id returns the live handle without spawning."""
        session = make_session()
        registry.register(TEST_SESSION_ID, session)
        clock.advance(50)

        result = await registry.get_or_create(TEST_SESSION_ID, TEST_MODEL, TEST_CWD)

        assert result is session
        factory.assert_not_awaited()
        assert registry.list_sessions()[0]["idle_seconds"] == 0

    @pytest.mark.anyio
    async def test_spawn_failure_propagates(
        self, registry: SessionRegistry, factory: AsyncMock
    ) -> None:
        """A failed spawn leaves the registry untouched."""
        factory.side_effect = SessionStartError(TEST_ERROR_GENERIC, session_id=TEST_SESSION_ID)

        with pytest.raises(SessionStartError):
            await registry.get_or_create(TEST_SESSION_ID, TEST_MODEL, TEST_CWD)

        assert len(registry) == 0

    @pytest.mark.anyio
    async def test_concurrent_resume_keeps_first(self, clock: FakeClock) -> None:
        """Two resumes racing on one id end with a single live session."""
        first = make_session()
        second = make_session()
        gate = asyncio.Event()
        sessions = iter([first, second])

        async def slow_factory(session_id, model, cwd):
            session = next(sessions)
            if session is first:
                await gate.wait()
            return session

        registry = SessionRegistry(session_factory=slow_factory, clock=clock)
        slow = asyncio.create_task(registry.get_or_create(TEST_SESSION_ID, TEST_MODEL, TEST_CWD))
        await asyncio.sleep(0)
        fast = await registry.get_or_create(TEST_SESSION_ID, TEST_MODEL, TEST_CWD)
        gate.set()
        result = await slow

        assert fast is second
        assert result is second
        assert len(registry) == 1
        first.client.disconnect.assert_awaited_once()
        second.client.disconnect.assert_not_awaited()


class TestRegister:
    """Tests for register()."""

    def test_register_twice_keeps_one_entry(self, registry: SessionRegistry) -> None:
        session = make_session()
        registry.register(TEST_SESSION_ID, session)
        registry.register(TEST_SESSION_ID, session)

        assert len(registry) == 1
        assert session.session_id == TEST_SESSION_ID

    def test_list_sessions_most_recent_first(
        self, registry: SessionRegistry, clock: FakeClock
    ) -> None:
        registry.register(TEST_SESSION_ID, make_session())
        clock.advance(30)
        registry.register(TEST_SESSION_ID_OTHER, make_session())
        clock.advance(10)

        listed = registry.list_sessions()

        assert [entry["session_id"] for entry in listed] == [
            TEST_SESSION_ID_OTHER,
            TEST_SESSION_ID,
        ]
        assert listed[0]["idle_seconds"] == 10
        assert listed[1]["idle_seconds"] == 40
        assert listed[0]["model"] == TEST_MODEL
        assert listed[0]["cwd"] == TEST_CWD


class TestSweepIdle:
    """Tests for idle eviction."""

    @pytest.mark.anyio
    async def test_evicts_only_stale_sessions(
        self, registry: SessionRegistry, clock: FakeClock
    ) -> None:
        stale = make_session()
        active = make_session()
        registry.register(TEST_SESSION_ID, stale)
        registry.register(TEST_SESSION_ID_OTHER, active)
        clock.advance(IDLE_TIMEOUT - 1)
        registry.touch(TEST_SESSION_ID_OTHER)
        clock.advance(2)

        evicted = await registry.sweep_idle()

        assert evicted == [TEST_SESSION_ID]
        assert TEST_SESSION_ID not in registry
        assert TEST_SESSION_ID_OTHER in registry
        stale.client.disconnect.assert_awaited_once()
        active.client.disconnect.assert_not_awaited()

    @pytest.mark.anyio
    async def test_nothing_to_evict(self, registry: SessionRegistry) -> None:
        registry.register(TEST_SESSION_ID, make_session())
        assert await registry.sweep_idle() == []
        assert len(registry) == 1

    @pytest.mark.anyio
    async def test_sweep_task_lifecycle(self, registry: SessionRegistry) -> None:
        """Starting twice keeps one task; stopping cancels it."""
        registry.start_idle_sweep()
        task = registry._sweep_task
        registry.start_idle_sweep()
        assert registry._sweep_task is task

        registry.stop_idle_sweep()
        await asyncio.sleep(0)
        assert task is not None and task.cancelled()
        assert registry._sweep_task is None


class TestClose:
    """Tests for close() and close_all()."""

    @pytest.mark.anyio
    async def test_close_unknown(self, registry: SessionRegistry) -> None:
        assert await registry.close(TEST_UNKNOWN_SESSION_ID) is False

    @pytest.mark.anyio
    async def test_close_swallows_disconnect_error(self, registry: SessionRegistry) -> None:
        """A session whose disconnect fails is still removed."""
        session = make_session()
        session.client.disconnect.side_effect = RuntimeError(TEST_ERROR_GENERIC)
        registry.register(TEST_SESSION_ID, session)

        assert await registry.close(TEST_SESSION_ID) is True
        assert TEST_SESSION_ID not in registry

    @pytest.mark.anyio
    async def test_close_all(self, registry: SessionRegistry) -> None:
        first = make_session()
        second = make_session()
        registry.register(TEST_SESSION_ID, first)
        registry.register(TEST_SESSION_ID_OTHER, second)
        registry.start_idle_sweep()

        await registry.close_all()

        assert len(registry) == 0
        assert registry._sweep_task is None
        first.client.disconnect.assert_awaited_once()
        second.client.disconnect.assert_awaited_once()
