"""Tests for shared route helpers."""

from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from agent_relay.config import RelayConfig, TunnelConfig
from agent_relay.constants import TUNNEL_INSTALL_HINT_NGROK
from agent_relay.daemon.routes._utils import (
    create_configured_provider,
    ensure_provider_available,
    require_registry,
)
from agent_relay.daemon.state import get_state
from agent_relay.exceptions import TunnelUnavailableError
from agent_relay.tunnel.ngrok_provider import NgrokProvider


class TestRequireComponents:
    def test_missing_registry(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            require_registry()
        assert exc_info.value.status_code == 503


class TestCreateConfiguredProvider:
    """Tests for create_configured_provider()."""

    def test_uses_configured_provider(self) -> None:
        state = get_state()
        state.config = RelayConfig(tunnel=TunnelConfig(provider="ngrok"))
        assert isinstance(create_configured_provider(state), NgrokProvider)

    def test_config_not_loaded(self) -> None:
        with pytest.raises(HTTPException):
            create_configured_provider(get_state())


class TestEnsureProviderAvailable:
    """Tests for ensure_provider_available()."""

    def test_available(self) -> None:
        provider = MagicMock(is_available=True)
        ensure_provider_available(provider)

    def test_missing_binary_has_install_hint(self) -> None:
        provider = MagicMock(is_available=False)
        provider.name = "ngrok"

        with pytest.raises(TunnelUnavailableError) as exc_info:
            ensure_provider_available(provider)

        assert TUNNEL_INSTALL_HINT_NGROK in exc_info.value.message
        assert exc_info.value.provider == "ngrok"
