"""Factory for creating tunnel providers from configuration."""

from agent_relay.constants import (
    TUNNEL_ERROR_UNKNOWN_PROVIDER,
    TUNNEL_ERROR_UNKNOWN_PROVIDER_EXPECTED,
    TUNNEL_PROVIDER_CLOUDFLARED,
    TUNNEL_PROVIDER_NGROK,
    VALID_TUNNEL_PROVIDERS,
)
from agent_relay.exceptions import ValidationError
from agent_relay.tunnel.base import TunnelProvider
from agent_relay.tunnel.cloudflared import CloudflaredProvider
from agent_relay.tunnel.ngrok_provider import NgrokProvider


def create_tunnel_provider(
    provider: str,
    cloudflared_path: str | None = None,
    ngrok_path: str | None = None,
) -> TunnelProvider:
    """Create a tunnel provider from configuration.

    Args:
        provider: Provider name ("cloudflared" or "ngrok").
        cloudflared_path: Custom path to cloudflared binary.
        ngrok_path: Custom path to ngrok binary.

    Returns:
        Configured TunnelProvider instance.

    Raises:
        ValidationError: If the provider name is invalid.
    """
    if provider == TUNNEL_PROVIDER_CLOUDFLARED:
        return CloudflaredProvider(binary_path=cloudflared_path)
    if provider == TUNNEL_PROVIDER_NGROK:
        return NgrokProvider(binary_path=ngrok_path)
    raise ValidationError(
        TUNNEL_ERROR_UNKNOWN_PROVIDER.format(provider=provider),
        field="provider",
        value=provider,
        expected=TUNNEL_ERROR_UNKNOWN_PROVIDER_EXPECTED.format(providers=VALID_TUNNEL_PROVIDERS),
    )
