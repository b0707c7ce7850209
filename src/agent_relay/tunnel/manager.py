"""Self-healing supervisor for the tunnel process.

TunnelManager keeps one provider alive for the lifetime of the daemon:

- A heartbeat probes the public URL at a fixed interval. Three consecutive
  failures trigger a restart.
- A process monitor triggers a restart when the tunnel process exits or
  its wait fails.
- Restarts are serialized by a reentrancy flag and bounded by an attempt
  counter. Once the bound is exceeded the manager gives up, notifies the
  operator and performs no further automatic restarts until start() is
  called again.

Everything runs on the daemon's event loop. Restarts triggered by the
heartbeat or the monitor run in their own task so they can cancel the
loops that triggered them.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from agent_relay.constants import (
    MANAGER_ERROR_NOT_READY,
    MANAGER_LOG_CALLBACK_FAILED,
    MANAGER_LOG_GAVE_UP,
    MANAGER_LOG_HEARTBEAT_FAILED,
    MANAGER_LOG_HEARTBEAT_RECOVERED,
    MANAGER_LOG_PROCESS_ERROR,
    MANAGER_LOG_PROCESS_EXITED,
    MANAGER_LOG_RESTART_ABORTED,
    MANAGER_LOG_RESTART_BEGIN,
    MANAGER_LOG_RESTART_FAILED,
    MANAGER_LOG_RESTART_IN_PROGRESS,
    MANAGER_LOG_RESTART_STOPPED,
    MANAGER_LOG_RESTART_SUCCESS,
    MANAGER_LOG_STARTED,
    MANAGER_LOG_STOPPED,
    RESTART_REASON_HEARTBEAT_FAIL,
    RESTART_REASON_PROC_ERROR,
    RESTART_REASON_PROC_EXIT,
    RESTART_REASON_RETRY_AFTER_FAIL,
    TUNNEL_ERROR_START_UNKNOWN,
    TUNNEL_ERROR_STOPPED_DURING_START,
    TUNNEL_HEARTBEAT_FAIL_THRESHOLD,
    TUNNEL_HEARTBEAT_INTERVAL_SECONDS,
    TUNNEL_MAX_RESTART_ATTEMPTS,
    TUNNEL_READY_POLL_INTERVAL_SECONDS,
    TUNNEL_READY_TIMEOUT_SECONDS,
    TUNNEL_RESTART_DELAY_SECONDS,
    TUNNEL_RESTART_RETRY_DELAY_SECONDS,
    TUNNEL_STATE_GAVE_UP,
    TUNNEL_STATE_RESTARTING,
    TUNNEL_STATE_RUNNING,
    TUNNEL_STATE_STOPPED,
)
from agent_relay.exceptions import TunnelStartError
from agent_relay.tunnel.base import TunnelProvider

logger = logging.getLogger(__name__)

ManagerCallback = Callable[[str], Awaitable[None] | None]


class TunnelManager:
    """Supervise a tunnel provider with heartbeat checks and bounded restarts.

    Args:
        local_port: Port the tunnel forwards to.
        on_restart: Called with the new public URL after a successful restart.
        on_give_up: Called with the triggering reason when restart attempts
            are exhausted.
        heartbeat_interval: Seconds between health probes.
        fail_threshold: Consecutive probe failures that trigger a restart.
        max_restart_attempts: Restarts allowed before giving up.
        restart_delay: Seconds to wait between stop and start during a restart.
        retry_delay: Seconds before retrying after a failed restart.
        ready_timeout: Seconds a restarted tunnel has to pass a health probe.
        ready_poll_interval: Seconds between readiness probes.
    """

    def __init__(
        self,
        local_port: int,
        on_restart: ManagerCallback | None = None,
        on_give_up: ManagerCallback | None = None,
        heartbeat_interval: float = TUNNEL_HEARTBEAT_INTERVAL_SECONDS,
        fail_threshold: int = TUNNEL_HEARTBEAT_FAIL_THRESHOLD,
        max_restart_attempts: int = TUNNEL_MAX_RESTART_ATTEMPTS,
        restart_delay: float = TUNNEL_RESTART_DELAY_SECONDS,
        retry_delay: float = TUNNEL_RESTART_RETRY_DELAY_SECONDS,
        ready_timeout: float = TUNNEL_READY_TIMEOUT_SECONDS,
        ready_poll_interval: float = TUNNEL_READY_POLL_INTERVAL_SECONDS,
    ) -> None:
        self.local_port = local_port
        self.on_restart = on_restart
        self.on_give_up = on_give_up
        self._heartbeat_interval = heartbeat_interval
        self._fail_threshold = fail_threshold
        self._max_restart_attempts = max_restart_attempts
        self._restart_delay = restart_delay
        self._retry_delay = retry_delay
        self._ready_timeout = ready_timeout
        self._ready_poll_interval = ready_poll_interval

        self._provider: TunnelProvider | None = None
        self._url: str | None = None
        self._stopped = True
        self._restarting = False
        self._gave_up = False
        self._fail_count = 0
        self._restart_attempts = 0
        # Bumped by start() and stop() so in-flight restarts can tell they are stale
        self._generation = 0

        self._heartbeat_task: asyncio.Task[None] | None = None
        self._monitor_task: asyncio.Task[None] | None = None
        self._retry_task: asyncio.Task[None] | None = None
        self._restart_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def provider(self) -> TunnelProvider | None:
        return self._provider

    @property
    def state(self) -> str:
        if self._gave_up:
            return TUNNEL_STATE_GAVE_UP
        if self._restarting:
            return TUNNEL_STATE_RESTARTING
        if self._stopped:
            return TUNNEL_STATE_STOPPED
        return TUNNEL_STATE_RUNNING

    @property
    def is_running(self) -> bool:
        return not self._stopped and self._url is not None

    def get_url(self) -> str | None:
        return self._url

    def get_status(self) -> dict[str, Any]:
        """Snapshot of the supervisor state for the status API."""
        return {
            "is_running": self.is_running,
            "tunnel_url": self._url,
            "is_restarting": self._restarting,
            "fail_count": self._fail_count,
            "restart_attempts": self._restart_attempts,
            "provider": self._provider.name if self._provider else None,
            "gave_up": self._gave_up,
            "state": self.state,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, provider: TunnelProvider) -> str:
        """Start the tunnel and begin supervising it.

        Clears any previous give-up so automatic recovery is active again.

        Returns:
            The public URL.

        Raises:
            TunnelStartError: If the provider does not come up.
        """
        if not self._stopped or self._provider is not None:
            await self.stop()

        self._generation += 1
        generation = self._generation
        self._provider = provider
        self._stopped = False
        self._gave_up = False
        self._restarting = False
        self._fail_count = 0
        self._restart_attempts = 0

        status = await provider.start(self.local_port)
        if not self._is_current(generation):
            await self._discard(provider)
            raise TunnelStartError(
                TUNNEL_ERROR_STOPPED_DURING_START.format(provider=provider.name),
                provider=provider.name,
            )
        if not status.active or not status.public_url:
            self._stopped = True
            raise TunnelStartError(status.error or TUNNEL_ERROR_START_UNKNOWN, provider=provider.name)

        self._url = status.public_url
        self._attach_monitor()
        self._start_heartbeat()
        logger.info(MANAGER_LOG_STARTED.format(url=self._url))
        return self._url

    async def stop(self) -> None:
        """Stop supervision and the tunnel.

        Pending restart triggers are suppressed. A restart that is already
        running is not cancelled; it notices the change at its next step and
        tears down whatever it started.
        """
        self._stopped = True
        self._generation += 1
        self._restarting = False
        self._cancel_heartbeat()
        self._cancel_monitor()
        self._cancel_retry()

        provider = self._provider
        self._url = None
        self._fail_count = 0
        self._restart_attempts = 0
        self._gave_up = False

        if provider is not None:
            await provider.stop()
        logger.info(MANAGER_LOG_STOPPED)

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def _start_heartbeat(self) -> None:
        self._cancel_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def _cancel_heartbeat(self) -> None:
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
        self._heartbeat_task = None

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            await self.check_health()

    async def check_health(self) -> None:
        """Run one heartbeat tick."""
        provider = self._provider
        if self._restarting or self._stopped or provider is None:
            return

        try:
            healthy = await provider.health_check()
        except Exception as e:
            logger.debug(f"Health probe raised: {e}")
            healthy = False

        # State may have changed while the probe was in flight
        if self._restarting or self._stopped:
            return

        if healthy:
            if self._fail_count:
                logger.info(MANAGER_LOG_HEARTBEAT_RECOVERED.format(count=self._fail_count))
            self._fail_count = 0
            return

        self._fail_count += 1
        logger.warning(
            MANAGER_LOG_HEARTBEAT_FAILED.format(
                count=self._fail_count, threshold=self._fail_threshold
            )
        )
        if self._fail_count >= self._fail_threshold:
            self._fail_count = 0
            self._trigger_restart(RESTART_REASON_HEARTBEAT_FAIL)

    # ------------------------------------------------------------------
    # Process monitor
    # ------------------------------------------------------------------

    def _attach_monitor(self) -> None:
        self._cancel_monitor()
        process = self._provider.process if self._provider else None
        if process is not None:
            self._monitor_task = asyncio.create_task(self._monitor_process(process))

    def _cancel_monitor(self) -> None:
        if self._monitor_task is not None and not self._monitor_task.done():
            self._monitor_task.cancel()
        self._monitor_task = None

    async def _monitor_process(self, process: asyncio.subprocess.Process) -> None:
        try:
            code = await process.wait()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._stopped:
                return
            logger.error(MANAGER_LOG_PROCESS_ERROR.format(error=e))
            self._trigger_restart(RESTART_REASON_PROC_ERROR)
            return

        if self._stopped:
            return
        logger.warning(MANAGER_LOG_PROCESS_EXITED.format(code=code))
        self._trigger_restart(RESTART_REASON_PROC_EXIT)

    # ------------------------------------------------------------------
    # Restart
    # ------------------------------------------------------------------

    def _trigger_restart(self, reason: str) -> None:
        """Run restart() in its own task."""
        if self._stopped:
            return
        self._restart_task = asyncio.create_task(self.restart(reason))

    def _schedule_retry(self) -> None:
        self._cancel_retry()
        self._retry_task = asyncio.create_task(self._retry_after_delay())

    def _cancel_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
        self._retry_task = None

    async def _retry_after_delay(self) -> None:
        await asyncio.sleep(self._retry_delay)
        # Past this point stop() no longer cancels us; restart() checks the flag
        self._retry_task = None
        await self.restart(RESTART_REASON_RETRY_AFTER_FAIL)

    async def restart(self, reason: str) -> None:
        """Restart the tunnel, at most one sequence at a time.

        Never raises. Failures are logged and retried until the attempt
        bound is exceeded, at which point the manager gives up.
        """
        if self._restarting:
            logger.info(MANAGER_LOG_RESTART_IN_PROGRESS.format(reason=reason))
            return
        if self._stopped:
            logger.info(MANAGER_LOG_RESTART_STOPPED.format(reason=reason))
            return
        provider = self._provider
        if provider is None:
            return
        generation = self._generation

        self._restart_attempts += 1
        if self._restart_attempts > self._max_restart_attempts:
            await self._give_up(reason)
            return

        self._restarting = True
        logger.warning(
            MANAGER_LOG_RESTART_BEGIN.format(
                reason=reason,
                attempt=self._restart_attempts,
                max_attempts=self._max_restart_attempts,
            )
        )
        self._cancel_heartbeat()
        self._cancel_monitor()
        self._url = None

        try:
            url = await self._restart_provider(provider, generation)
        except Exception as e:
            if not self._is_current(generation):
                logger.info(MANAGER_LOG_RESTART_ABORTED.format(reason=reason))
                return
            self._restarting = False
            logger.error(MANAGER_LOG_RESTART_FAILED.format(error=e, delay=self._retry_delay))
            self._schedule_retry()
            return

        if url is None:
            logger.info(MANAGER_LOG_RESTART_ABORTED.format(reason=reason))
            return

        self._url = url
        self._fail_count = 0
        self._attach_monitor()
        self._start_heartbeat()
        self._restart_attempts = 0
        self._restarting = False
        logger.info(MANAGER_LOG_RESTART_SUCCESS.format(url=url))
        await self._notify(self.on_restart, "restart", url)

    async def _restart_provider(self, provider: TunnelProvider, generation: int) -> str | None:
        """Stop, wait, start and wait for readiness.

        Returns:
            The new URL, or None if stop() or start() was called along the
            way (anything started has been torn down again).

        Raises:
            TunnelStartError: If the provider fails to start or never
                becomes healthy.
        """
        await provider.stop()
        if not self._is_current(generation):
            return None

        await asyncio.sleep(self._restart_delay)
        if not self._is_current(generation):
            return None

        status = await provider.start(self.local_port)
        if not self._is_current(generation):
            await self._discard(provider)
            return None
        if not status.active or not status.public_url:
            raise TunnelStartError(status.error or TUNNEL_ERROR_START_UNKNOWN, provider=provider.name)

        ready = await self._wait_until_ready(provider, generation)
        if not self._is_current(generation):
            await self._discard(provider)
            return None
        if not ready:
            await provider.stop()
            raise TunnelStartError(
                MANAGER_ERROR_NOT_READY.format(timeout=self._ready_timeout),
                provider=provider.name,
            )
        return status.public_url

    async def _wait_until_ready(self, provider: TunnelProvider, generation: int) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._ready_timeout
        while self._is_current(generation):
            if await provider.health_check():
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self._ready_poll_interval)
        return False

    def _is_current(self, generation: int) -> bool:
        """True while no stop() or start() has happened since ``generation``."""
        return not self._stopped and self._generation == generation

    async def _discard(self, provider: TunnelProvider) -> None:
        """Stop a provider started on behalf of a stale generation.

        A provider that a newer start() has adopted is left running.
        """
        if self._stopped or self._provider is not provider:
            await provider.stop()

    async def _give_up(self, reason: str) -> None:
        logger.error(MANAGER_LOG_GAVE_UP.format(attempts=self._max_restart_attempts))

        # Counters stay as they are so get_status() shows why recovery halted
        self._gave_up = True
        self._stopped = True
        self._cancel_heartbeat()
        self._cancel_monitor()
        self._cancel_retry()
        self._url = None

        await self._notify(self.on_give_up, "give_up", reason)
        if self._provider is not None:
            try:
                await self._provider.stop()
            except (RuntimeError, OSError) as e:
                logger.debug(f"Error stopping tunnel after give-up: {e}")

    async def _notify(self, callback: Callable[[str], Any] | None, name: str, arg: str) -> None:
        if callback is None:
            return
        try:
            result = callback(arg)
            if inspect.isawaitable(result):
                await result
        except (RuntimeError, OSError, AttributeError) as e:
            logger.error(MANAGER_LOG_CALLBACK_FAILED.format(callback=name, error=e))
