"""Cloudflared tunnel provider.

Uses Cloudflare's `cloudflared` CLI to create quick tunnels via trycloudflare.com.
No account or configuration required - just install cloudflared.
"""

import re

from agent_relay.constants import (
    CLOUDFLARED_DEFAULT_PATHS_POSIX,
    CLOUDFLARED_DEFAULT_PATHS_WINDOWS,
    CLOUDFLARED_URL_PATTERN,
    ENV_CLOUDFLARED_PATH,
    TUNNEL_CLOUDFLARED_FLAG_URL,
    TUNNEL_CLOUDFLARED_SUBCOMMAND,
    TUNNEL_LOCALHOST_URL_TEMPLATE,
    TUNNEL_PROVIDER_CLOUDFLARED,
)
from agent_relay.tunnel.base import ProcessTunnelProvider

_URL_RE = re.compile(CLOUDFLARED_URL_PATTERN)


class CloudflaredProvider(ProcessTunnelProvider):
    """Tunnel provider using cloudflared quick tunnels.

    Starts `cloudflared tunnel --url http://127.0.0.1:{port}` and picks the
    generated trycloudflare.com hostname out of its log output.
    """

    binary_name = TUNNEL_PROVIDER_CLOUDFLARED
    binary_env_var = ENV_CLOUDFLARED_PATH
    default_paths_posix = CLOUDFLARED_DEFAULT_PATHS_POSIX
    default_paths_windows = CLOUDFLARED_DEFAULT_PATHS_WINDOWS

    def build_args(self, local_port: int) -> list[str]:
        return [
            TUNNEL_CLOUDFLARED_SUBCOMMAND,
            TUNNEL_CLOUDFLARED_FLAG_URL,
            TUNNEL_LOCALHOST_URL_TEMPLATE.format(port=local_port),
        ]

    def extract_url(self, line: str) -> str | None:
        match = _URL_RE.search(line)
        return match.group(0) if match else None
