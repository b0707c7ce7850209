"""Base classes for tunnel providers.

Defines the abstract interface, the shared status structure, and a
subprocess-backed implementation that concrete providers specialise by
supplying their command line and URL extraction rule.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx

from agent_relay.constants import (
    TUNNEL_ENCODING_ERROR_REPLACE,
    TUNNEL_ENCODING_UTF8,
    TUNNEL_ERROR_BINARY_MISSING,
    TUNNEL_ERROR_BINARY_NOT_FOUND,
    TUNNEL_ERROR_EXITED,
    TUNNEL_ERROR_EXITED_UNEXPECTED,
    TUNNEL_ERROR_START,
    TUNNEL_ERROR_STOP,
    TUNNEL_ERROR_STOPPED_DURING_START,
    TUNNEL_ERROR_TIMEOUT_URL,
    TUNNEL_HEALTH_CHECK_TIMEOUT_SECONDS,
    TUNNEL_HEALTH_PATH,
    TUNNEL_LOG_HEALTH_FAILED,
    TUNNEL_LOG_KILL_ORPHAN,
    TUNNEL_LOG_OUTPUT_PREFIX,
    TUNNEL_LOG_START,
    TUNNEL_LOG_STOP,
    TUNNEL_LOG_STOP_DONE,
    TUNNEL_LOG_STOP_KILL,
    TUNNEL_LOG_TUNNEL_URL,
    TUNNEL_RESPONSE_KEY_ACTIVE,
    TUNNEL_RESPONSE_KEY_ERROR,
    TUNNEL_RESPONSE_KEY_PROVIDER,
    TUNNEL_RESPONSE_KEY_PUBLIC_URL,
    TUNNEL_RESPONSE_KEY_STARTED_AT,
    TUNNEL_SHUTDOWN_TIMEOUT_SECONDS,
    TUNNEL_URL_PARSE_TIMEOUT_SECONDS,
)
from agent_relay.utils.platform import (
    IS_WINDOWS,
    find_executable,
    find_pids_by_command,
    get_process_group_kwargs,
    kill_process_group,
    terminate_process,
)

logger = logging.getLogger(__name__)


@dataclass
class TunnelStatus:
    """Status of a tunnel connection.

    Attributes:
        active: Whether the tunnel is currently active.
        public_url: The public URL of the tunnel (None if inactive).
        provider_name: Name of the tunnel provider.
        started_at: ISO timestamp when the tunnel was started.
        error: Error message if the tunnel failed to start.
    """

    active: bool
    public_url: str | None = None
    provider_name: str | None = None
    started_at: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            TUNNEL_RESPONSE_KEY_ACTIVE: self.active,
            TUNNEL_RESPONSE_KEY_PUBLIC_URL: self.public_url,
            TUNNEL_RESPONSE_KEY_PROVIDER: self.provider_name,
            TUNNEL_RESPONSE_KEY_STARTED_AT: self.started_at,
            TUNNEL_RESPONSE_KEY_ERROR: self.error,
        }


class TunnelProvider(ABC):
    """Abstract base class for tunnel providers.

    Implementations must provide start/stop/status methods, expose the live
    process handle, and indicate whether the provider binary is available.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""
        ...

    @property
    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider binary is installed."""
        ...

    @property
    @abstractmethod
    def process(self) -> asyncio.subprocess.Process | None:
        """The running tunnel process, if any."""
        ...

    @abstractmethod
    async def start(self, local_port: int) -> TunnelStatus:
        """Start the tunnel to the given local port.

        Args:
            local_port: The local port the daemon is listening on.

        Returns:
            TunnelStatus with the public URL on success, or an inactive
            status carrying the error.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the tunnel if running."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Probe the tunnel end to end. Never raises."""
        ...

    @abstractmethod
    def get_status(self) -> TunnelStatus:
        """Get current tunnel status."""
        ...


class ProcessTunnelProvider(TunnelProvider):
    """Tunnel provider backed by an external CLI process.

    Spawns the binary in its own process group with stdout and stderr
    merged, scans the output line by line for the public URL, and keeps
    draining output afterwards so the child never blocks on a full pipe.

    Subclasses define the binary name, command arguments, lookup hints and
    how a URL is recognised in a single output line.

    Args:
        binary_path: Custom path to the binary. If None, it is searched for.
        start_timeout: Seconds to wait for the public URL.
        health_timeout: Seconds before a health probe counts as failed.
    """

    binary_name: str = ""
    binary_env_var: str | None = None
    default_paths_posix: tuple[str, ...] = ()
    default_paths_windows: tuple[str, ...] = ()

    def __init__(
        self,
        binary_path: str | None = None,
        start_timeout: float = TUNNEL_URL_PARSE_TIMEOUT_SECONDS,
        health_timeout: float = TUNNEL_HEALTH_CHECK_TIMEOUT_SECONDS,
    ) -> None:
        self._binary_path = binary_path
        self._start_timeout = start_timeout
        self._health_timeout = health_timeout
        self._process: asyncio.subprocess.Process | None = None
        self._drain_task: asyncio.Task[None] | None = None
        self._local_port: int | None = None
        self._public_url: str | None = None
        self._started_at: str | None = None
        self._error: str | None = None

    @property
    def name(self) -> str:
        return self.binary_name

    @property
    def is_available(self) -> bool:
        """Check if the binary can be located."""
        return self._resolve_binary() is not None

    @property
    def process(self) -> asyncio.subprocess.Process | None:
        return self._process

    @property
    def public_url(self) -> str | None:
        return self._public_url

    def _resolve_binary(self) -> str | None:
        return find_executable(
            self.binary_name,
            configured_path=self._binary_path,
            env_var=self.binary_env_var,
            default_paths=self.default_paths_windows if IS_WINDOWS else self.default_paths_posix,
        )

    @abstractmethod
    def build_args(self, local_port: int) -> list[str]:
        """Command-line arguments (after the binary) for the given port."""
        ...

    @abstractmethod
    def extract_url(self, line: str) -> str | None:
        """Return the public URL if this output line announces it."""
        ...

    def orphan_pattern(self, local_port: int) -> str:
        """Command-line pattern identifying stray tunnels for ``local_port``."""
        return re.escape(" ".join([self.binary_name, *self.build_args(local_port)]))

    def _failed(self, error: str) -> TunnelStatus:
        self._error = error
        return TunnelStatus(active=False, provider_name=self.name, error=error)

    async def start(self, local_port: int) -> TunnelStatus:
        """Spawn the tunnel and wait for its public URL.

        Args:
            local_port: Local port the daemon is listening on.

        Returns:
            TunnelStatus with the public URL on success.
        """
        if self._process is not None and self._process.returncode is None:
            return self.get_status()

        binary = self._resolve_binary()
        if binary is None:
            error = TUNNEL_ERROR_BINARY_MISSING.format(
                provider=self.name, env_var=self.binary_env_var
            )
            logger.error(error)
            return self._failed(error)

        self._error = None
        self._public_url = None
        self._local_port = local_port

        cmd = [binary, *self.build_args(local_port)]
        logger.info(TUNNEL_LOG_START.format(provider=self.name, command=" ".join(cmd)))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                **get_process_group_kwargs(),
            )
        except FileNotFoundError:
            error = TUNNEL_ERROR_BINARY_NOT_FOUND.format(provider=self.name, path=binary)
            logger.error(error)
            return self._failed(error)
        except OSError as e:
            error = TUNNEL_ERROR_START.format(provider=self.name, error=e)
            logger.error(error)
            return self._failed(error)
        self._process = process

        error = None
        try:
            url = await asyncio.wait_for(self._scan_for_url(process), timeout=self._start_timeout)
        except TimeoutError:
            url = None
            error = TUNNEL_ERROR_TIMEOUT_URL.format(timeout=self._start_timeout)

        if self._process is not process:
            # stop() ran while we were waiting for the URL
            return self._failed(TUNNEL_ERROR_STOPPED_DURING_START.format(provider=self.name))

        if url is None:
            if error is None:
                code = await process.wait()
                error = TUNNEL_ERROR_EXITED.format(provider=self.name, code=code)
            logger.error(error)
            await self.stop()
            return self._failed(error)

        self._public_url = url
        self._started_at = datetime.now(UTC).isoformat()
        logger.info(TUNNEL_LOG_TUNNEL_URL.format(public_url=url))
        self._drain_task = asyncio.create_task(self._drain_output(process))
        return TunnelStatus(
            active=True,
            public_url=url,
            provider_name=self.name,
            started_at=self._started_at,
        )

    async def _read_line(self, process: asyncio.subprocess.Process) -> str | None:
        assert process.stdout is not None
        raw_line = await process.stdout.readline()
        if not raw_line:
            return None
        line = raw_line.decode(TUNNEL_ENCODING_UTF8, errors=TUNNEL_ENCODING_ERROR_REPLACE).strip()
        logger.debug(TUNNEL_LOG_OUTPUT_PREFIX.format(provider=self.name, line=line))
        return line

    async def _scan_for_url(self, process: asyncio.subprocess.Process) -> str | None:
        """Read output until a URL appears. None means the output ended."""
        while True:
            line = await self._read_line(process)
            if line is None:
                return None
            url = self.extract_url(line)
            if url:
                return url

    async def _drain_output(self, process: asyncio.subprocess.Process) -> None:
        while await self._read_line(process) is not None:
            pass

    async def stop(self) -> None:
        """Kill the tunnel process group and any stray tunnels for the same port."""
        process = self._process
        local_port = self._local_port
        drain_task = self._drain_task

        self._process = None
        self._drain_task = None
        self._public_url = None
        self._started_at = None
        self._error = None

        if drain_task is not None:
            drain_task.cancel()

        if process is not None and process.returncode is None:
            logger.info(TUNNEL_LOG_STOP.format(provider=self.name, pid=process.pid))
            try:
                kill_process_group(process.pid)
                try:
                    await asyncio.wait_for(process.wait(), timeout=TUNNEL_SHUTDOWN_TIMEOUT_SECONDS)
                except TimeoutError:
                    logger.warning(TUNNEL_LOG_STOP_KILL)
                    process.kill()
            except (OSError, ProcessLookupError) as e:
                logger.warning(TUNNEL_ERROR_STOP.format(error=e))

        if local_port is not None:
            await asyncio.to_thread(self._kill_orphans, local_port)

        if process is not None:
            logger.info(TUNNEL_LOG_STOP_DONE.format(provider=self.name))

    def _kill_orphans(self, local_port: int) -> None:
        for pid in find_pids_by_command(self.orphan_pattern(local_port)):
            logger.info(TUNNEL_LOG_KILL_ORPHAN.format(pid=pid, port=local_port))
            terminate_process(pid, graceful=False)

    async def health_check(self) -> bool:
        """GET {url}/health through the public tunnel.

        Returns:
            True on a 2xx response. Network errors and timeouts give False.
        """
        url = self._public_url
        if not url:
            return False
        try:
            async with httpx.AsyncClient(timeout=self._health_timeout) as client:
                response = await client.get(f"{url}{TUNNEL_HEALTH_PATH}")
            return response.is_success
        except (httpx.HTTPError, OSError) as e:
            logger.debug(TUNNEL_LOG_HEALTH_FAILED.format(error=e))
            return False

    def get_status(self) -> TunnelStatus:
        """Get current tunnel status."""
        if self._process is not None and self._process.returncode is None:
            return TunnelStatus(
                active=True,
                public_url=self._public_url,
                provider_name=self.name,
                started_at=self._started_at,
            )

        # Process died unexpectedly
        if self._process is not None:
            self._error = TUNNEL_ERROR_EXITED_UNEXPECTED.format(
                provider=self.name, code=self._process.returncode
            )
            self._process = None
            self._public_url = None
            self._started_at = None

        return TunnelStatus(
            active=False,
            public_url=None,
            provider_name=self.name,
            error=self._error,
        )
