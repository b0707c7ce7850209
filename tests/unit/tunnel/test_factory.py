"""Tests for the tunnel provider factory."""

import pytest

from agent_relay.exceptions import ValidationError
from agent_relay.tunnel.cloudflared import CloudflaredProvider
from agent_relay.tunnel.factory import create_tunnel_provider
from agent_relay.tunnel.ngrok_provider import NgrokProvider

from .fixtures import (
    TEST_CLOUDFLARED_PATH,
    TEST_NGROK_PATH,
    TEST_PROVIDER_CLOUDFLARED,
    TEST_PROVIDER_NGROK,
    TEST_PROVIDER_UNKNOWN,
)


class TestCreateTunnelProvider:
    """Tests for create_tunnel_provider."""

    def test_create_cloudflared(self) -> None:
        """Creates a CloudflaredProvider with its custom path."""
        provider = create_tunnel_provider(
            TEST_PROVIDER_CLOUDFLARED, cloudflared_path=TEST_CLOUDFLARED_PATH
        )
        assert isinstance(provider, CloudflaredProvider)
        assert provider._binary_path == TEST_CLOUDFLARED_PATH

    def test_create_ngrok(self) -> None:
        """Creates an NgrokProvider with its custom path."""
        provider = create_tunnel_provider(TEST_PROVIDER_NGROK, ngrok_path=TEST_NGROK_PATH)
        assert isinstance(provider, NgrokProvider)
        assert provider._binary_path == TEST_NGROK_PATH

    def test_unknown_provider(self) -> None:
        """Unknown names raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            create_tunnel_provider(TEST_PROVIDER_UNKNOWN)
        assert exc_info.value.details["field"] == "provider"
