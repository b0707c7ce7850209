"""Tests for cloudflared tunnel provider."""

from unittest.mock import MagicMock, patch

from agent_relay.tunnel.cloudflared import CloudflaredProvider

from .fixtures import (
    TEST_CLOUDFLARED_LOG_LINES,
    TEST_CLOUDFLARED_PATH,
    TEST_PORT,
    TEST_PROVIDER_CLOUDFLARED,
    TEST_URL_CLOUDFLARE_ABC,
)


class TestCloudflaredProvider:
    """Tests for CloudflaredProvider."""

    def test_name(self) -> None:
        """Provider name is 'cloudflared'."""
        assert CloudflaredProvider().name == TEST_PROVIDER_CLOUDFLARED

    def test_build_args(self) -> None:
        """Quick tunnel pointed at the loopback port."""
        args = CloudflaredProvider().build_args(TEST_PORT)
        assert args == ["tunnel", "--url", f"http://127.0.0.1:{TEST_PORT}"]

    def test_extract_url_from_banner(self) -> None:
        """The trycloudflare hostname is found inside the boxed banner line."""
        line = TEST_CLOUDFLARED_LOG_LINES[2].decode().strip()
        assert CloudflaredProvider().extract_url(line) == TEST_URL_CLOUDFLARE_ABC

    def test_extract_url_ignores_other_lines(self) -> None:
        """Lines without a quick-tunnel URL yield nothing."""
        provider = CloudflaredProvider()
        assert provider.extract_url(TEST_CLOUDFLARED_LOG_LINES[0].decode()) is None
        assert provider.extract_url("https://www.cloudflare.com/") is None

    @patch("agent_relay.tunnel.base.find_executable", return_value=TEST_CLOUDFLARED_PATH)
    def test_is_available_found(self, mock_find: MagicMock) -> None:
        """is_available passes the configured path and env override to the lookup."""
        provider = CloudflaredProvider(binary_path=TEST_CLOUDFLARED_PATH)
        assert provider.is_available is True
        kwargs = mock_find.call_args.kwargs
        assert kwargs["configured_path"] == TEST_CLOUDFLARED_PATH
        assert kwargs["env_var"] == "AGENT_RELAY_CLOUDFLARED_PATH"

    @patch("agent_relay.tunnel.base.find_executable", return_value=None)
    def test_is_available_not_found(self, mock_find: MagicMock) -> None:
        """is_available is False when the binary cannot be located."""
        assert CloudflaredProvider().is_available is False

    def test_orphan_pattern_names_port(self) -> None:
        """Stray-process matching is specific to the forwarded port."""
        pattern = CloudflaredProvider().orphan_pattern(TEST_PORT)
        assert pattern.startswith("cloudflared")
        assert str(TEST_PORT) in pattern
