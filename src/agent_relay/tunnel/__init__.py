"""Public tunnel for the relay daemon.

Provides cloudflared and ngrok providers plus a supervisor that keeps the
tunnel alive across crashes and silent failures.
"""

from agent_relay.tunnel.base import ProcessTunnelProvider, TunnelProvider, TunnelStatus
from agent_relay.tunnel.factory import create_tunnel_provider
from agent_relay.tunnel.manager import TunnelManager

__all__ = [
    "ProcessTunnelProvider",
    "TunnelManager",
    "TunnelProvider",
    "TunnelStatus",
    "create_tunnel_provider",
]
