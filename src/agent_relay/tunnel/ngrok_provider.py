"""ngrok tunnel provider.

Uses the ngrok CLI to create tunnels via the ngrok service.
Requires the ngrok binary to be installed and configured (auth token set via
``ngrok config add-authtoken``).
"""

import json

from agent_relay.constants import (
    ENV_NGROK_PATH,
    NGROK_DEFAULT_PATHS_POSIX,
    NGROK_DEFAULT_PATHS_WINDOWS,
    NGROK_LOG_KEY_MSG,
    NGROK_LOG_KEY_URL,
    NGROK_LOG_MSG_STARTED,
    TUNNEL_NGROK_FLAG_LOG,
    TUNNEL_NGROK_FLAG_LOG_FORMAT,
    TUNNEL_NGROK_LOG_FORMAT_JSON,
    TUNNEL_NGROK_LOG_TARGET_STDOUT,
    TUNNEL_NGROK_SUBCOMMAND_HTTP,
    TUNNEL_PROVIDER_NGROK,
)
from agent_relay.tunnel.base import ProcessTunnelProvider


class NgrokProvider(ProcessTunnelProvider):
    """Tunnel provider using the ngrok CLI.

    Starts ``ngrok http <port> --log stdout --log-format json`` and parses the
    public URL from the JSON log output.
    """

    binary_name = TUNNEL_PROVIDER_NGROK
    binary_env_var = ENV_NGROK_PATH
    default_paths_posix = NGROK_DEFAULT_PATHS_POSIX
    default_paths_windows = NGROK_DEFAULT_PATHS_WINDOWS

    def build_args(self, local_port: int) -> list[str]:
        return [
            TUNNEL_NGROK_SUBCOMMAND_HTTP,
            str(local_port),
            TUNNEL_NGROK_FLAG_LOG,
            TUNNEL_NGROK_LOG_TARGET_STDOUT,
            TUNNEL_NGROK_FLAG_LOG_FORMAT,
            TUNNEL_NGROK_LOG_FORMAT_JSON,
        ]

    def extract_url(self, line: str) -> str | None:
        try:
            log_entry = json.loads(line)
        except json.JSONDecodeError:
            return None
        # ngrok emits {"msg":"started tunnel","url":"https://..."}
        if not isinstance(log_entry, dict):
            return None
        if log_entry.get(NGROK_LOG_KEY_MSG) == NGROK_LOG_MSG_STARTED:
            return log_entry.get(NGROK_LOG_KEY_URL) or None
        return None
