"""Test fixtures for tunnel providers and the tunnel supervisor."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from agent_relay.constants import TUNNEL_PROVIDER_CLOUDFLARED, TUNNEL_PROVIDER_NGROK
from agent_relay.tunnel.base import TunnelProvider, TunnelStatus

TEST_PORT = 38100
TEST_PID = 4242
TEST_TIMEOUT_SECONDS = 0.05

# Providers
TEST_PROVIDER_CLOUDFLARED = TUNNEL_PROVIDER_CLOUDFLARED
TEST_PROVIDER_NGROK = TUNNEL_PROVIDER_NGROK
TEST_PROVIDER_FAKE = "fake"
TEST_PROVIDER_UNKNOWN = "unknown-provider"

# URLs
TEST_URL_CLOUDFLARE = "https://test.trycloudflare.com"
TEST_URL_CLOUDFLARE_ABC = "https://abc-xyz.trycloudflare.com"
TEST_URL_CLOUDFLARE_RESTARTED = "https://restarted.trycloudflare.com"
TEST_URL_CLOUDFLARE_STALE = "https://stale.trycloudflare.com"
TEST_URL_NGROK = "https://abc123.ngrok-free.app"

# Binary paths
TEST_CLOUDFLARED_PATH = "/usr/local/bin/cloudflared"
TEST_NGROK_PATH = "/usr/local/bin/ngrok"

# Log lines
TEST_CLOUDFLARED_LOG_LINES = [
    b"2024-01-01T00:00:00Z INF Requesting new quick Tunnel on trycloudflare.com...\n",
    b"2024-01-01T00:00:00Z INF +--------------------------------------------+\n",
    b"2024-01-01T00:00:00Z INF |  https://abc-xyz.trycloudflare.com        |\n",
    b"2024-01-01T00:00:00Z INF +--------------------------------------------+\n",
]
TEST_NGROK_START_LINE = '{"lvl":"info","msg":"starting web service","addr":"127.0.0.1:4040"}'
TEST_NGROK_TUNNEL_LINE = (
    '{"lvl":"info","msg":"started tunnel","name":"command_line",'
    '"addr":"http://localhost:38100","url":"https://abc123.ngrok-free.app"}'
)
TEST_NGROK_INVALID_LINE = "not json at all"

TEST_ERROR_GENERIC = "test error"


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process.

    ``lines`` are returned from stdout.readline() followed by EOF. ``wait()``
    blocks until exit() is called unless ``exit_code`` is given up front.
    """

    def __init__(
        self,
        lines: list[bytes] | None = None,
        pid: int = TEST_PID,
        exit_code: int | None = None,
    ) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self._exit_code = exit_code
        self._exited = asyncio.Event()
        self.stdout = MagicMock()
        self.stdout.readline = AsyncMock(side_effect=[*(lines or []), b""])
        self.kill = MagicMock(side_effect=lambda: self.exit(-9))

    def exit(self, code: int = 1) -> None:
        self.returncode = code
        self._exited.set()

    async def wait(self) -> int:
        if self._exit_code is not None and not self._exited.is_set():
            self.exit(self._exit_code)
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode


class FakeTunnelProvider(TunnelProvider):
    """Scriptable provider for supervisor tests.

    Args:
        urls: URLs handed out by successive successful starts (the last repeats).
        healthy: Result of every health probe.
        with_process: Expose a FakeProcess so the supervisor monitors it.
    """

    def __init__(
        self,
        urls: list[str] | None = None,
        healthy: bool = True,
        with_process: bool = False,
    ) -> None:
        self.urls = list(urls or [TEST_URL_CLOUDFLARE])
        self.healthy = healthy
        self.with_process = with_process
        self.start_error: str | None = None
        self.start_gate: asyncio.Event | None = None
        self.start_calls = 0
        self.stop_calls = 0
        self.health_calls = 0
        self._process: FakeProcess | None = None
        self._url: str | None = None

    @property
    def name(self) -> str:
        return TEST_PROVIDER_FAKE

    @property
    def is_available(self) -> bool:
        return True

    @property
    def process(self):  # type: ignore[override]
        return self._process

    async def start(self, local_port: int) -> TunnelStatus:
        self.start_calls += 1
        if self.start_gate is not None:
            await self.start_gate.wait()
        if self.start_error:
            return TunnelStatus(active=False, provider_name=self.name, error=self.start_error)
        self._url = self.urls[min(self.start_calls - 1, len(self.urls) - 1)]
        if self.with_process:
            self._process = FakeProcess()
        return TunnelStatus(active=True, public_url=self._url, provider_name=self.name)

    async def stop(self) -> None:
        self.stop_calls += 1
        self._url = None
        self._process = None

    async def health_check(self) -> bool:
        self.health_calls += 1
        return self.healthy

    def get_status(self) -> TunnelStatus:
        return TunnelStatus(
            active=self._url is not None, public_url=self._url, provider_name=self.name
        )
