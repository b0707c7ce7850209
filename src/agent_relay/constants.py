"""Constants for the agent relay daemon.

This module centralizes the magic strings and numbers used throughout the
relay so that log messages, API paths and timeouts are defined in one place.

Constants are organized by domain:
- Paths and environment variables
- Tunnel providers and supervision
- Sessions and streaming
- API paths and response keys
- Logging
"""

from typing import Final

VERSION: Final[str] = "0.1.0"

# =============================================================================
# Paths and Environment
# =============================================================================

RELAY_DIR: Final[str] = ".relay"
RELAY_CONFIG_FILE: Final[str] = "config.yaml"
RELAY_LOG_FILE: Final[str] = "relay.log"

ENV_PREFIX: Final[str] = "AGENT_RELAY_"
ENV_PROJECT_ROOT: Final[str] = "AGENT_RELAY_PROJECT_ROOT"
ENV_PORT: Final[str] = "AGENT_RELAY_PORT"
ENV_DEBUG: Final[str] = "AGENT_RELAY_DEBUG"
ENV_LOG_LEVEL: Final[str] = "AGENT_RELAY_LOG_LEVEL"
ENV_TUNNEL_PROVIDER: Final[str] = "AGENT_RELAY_TUNNEL_PROVIDER"
ENV_CLOUDFLARED_PATH: Final[str] = "AGENT_RELAY_CLOUDFLARED_PATH"
ENV_NGROK_PATH: Final[str] = "AGENT_RELAY_NGROK_PATH"
ENV_DEFAULT_MODEL: Final[str] = "AGENT_RELAY_MODEL"

DEFAULT_HOST: Final[str] = "127.0.0.1"
DEFAULT_PORT: Final[int] = 38100

# =============================================================================
# Tunnel Providers
# =============================================================================

TUNNEL_PROVIDER_CLOUDFLARED: Final[str] = "cloudflared"
TUNNEL_PROVIDER_NGROK: Final[str] = "ngrok"
VALID_TUNNEL_PROVIDERS: Final[tuple[str, ...]] = (
    TUNNEL_PROVIDER_CLOUDFLARED,
    TUNNEL_PROVIDER_NGROK,
)
DEFAULT_TUNNEL_PROVIDER: Final[str] = TUNNEL_PROVIDER_CLOUDFLARED

CLOUDFLARED_URL_PATTERN: Final[str] = r"https://[a-z0-9-]+\.trycloudflare\.com"
TUNNEL_CLOUDFLARED_SUBCOMMAND: Final[str] = "tunnel"
TUNNEL_CLOUDFLARED_FLAG_URL: Final[str] = "--url"
TUNNEL_LOCALHOST_URL_TEMPLATE: Final[str] = "http://127.0.0.1:{port}"

TUNNEL_NGROK_SUBCOMMAND_HTTP: Final[str] = "http"
TUNNEL_NGROK_FLAG_LOG: Final[str] = "--log"
TUNNEL_NGROK_LOG_TARGET_STDOUT: Final[str] = "stdout"
TUNNEL_NGROK_FLAG_LOG_FORMAT: Final[str] = "--log-format"
TUNNEL_NGROK_LOG_FORMAT_JSON: Final[str] = "json"
NGROK_LOG_KEY_MSG: Final[str] = "msg"
NGROK_LOG_KEY_URL: Final[str] = "url"
NGROK_LOG_MSG_STARTED: Final[str] = "started tunnel"

# Install locations searched after PATH, in order
CLOUDFLARED_DEFAULT_PATHS_POSIX: Final[tuple[str, ...]] = (
    "/opt/homebrew/bin/cloudflared",
    "/usr/local/bin/cloudflared",
    "/usr/bin/cloudflared",
    "~/.local/bin/cloudflared",
)
CLOUDFLARED_DEFAULT_PATHS_WINDOWS: Final[tuple[str, ...]] = (
    "C:\\Program Files\\cloudflared\\cloudflared.exe",
    "C:\\Program Files (x86)\\cloudflared\\cloudflared.exe",
)
NGROK_DEFAULT_PATHS_POSIX: Final[tuple[str, ...]] = (
    "/opt/homebrew/bin/ngrok",
    "/usr/local/bin/ngrok",
    "/usr/bin/ngrok",
    "~/.local/bin/ngrok",
)
NGROK_DEFAULT_PATHS_WINDOWS: Final[tuple[str, ...]] = (
    "C:\\Program Files\\ngrok\\ngrok.exe",
)

TUNNEL_ENCODING_UTF8: Final[str] = "utf-8"
TUNNEL_ENCODING_ERROR_REPLACE: Final[str] = "replace"

# =============================================================================
# Tunnel Timeouts and Supervision
# =============================================================================

TUNNEL_URL_PARSE_TIMEOUT_SECONDS: Final[float] = 15.0
TUNNEL_HEALTH_CHECK_TIMEOUT_SECONDS: Final[float] = 10.0
TUNNEL_SHUTDOWN_TIMEOUT_SECONDS: Final[float] = 5.0
TUNNEL_HEALTH_PATH: Final[str] = "/health"

TUNNEL_HEARTBEAT_INTERVAL_SECONDS: Final[float] = 60.0
TUNNEL_HEARTBEAT_FAIL_THRESHOLD: Final[int] = 3
TUNNEL_MAX_RESTART_ATTEMPTS: Final[int] = 5
TUNNEL_RESTART_DELAY_SECONDS: Final[float] = 2.0
TUNNEL_RESTART_RETRY_DELAY_SECONDS: Final[float] = 5.0
TUNNEL_READY_TIMEOUT_SECONDS: Final[float] = 30.0
TUNNEL_READY_POLL_INTERVAL_SECONDS: Final[float] = 2.0

TUNNEL_STATE_STOPPED: Final[str] = "stopped"
TUNNEL_STATE_RUNNING: Final[str] = "running"
TUNNEL_STATE_RESTARTING: Final[str] = "restarting"
TUNNEL_STATE_GAVE_UP: Final[str] = "gave_up"

RESTART_REASON_HEARTBEAT_FAIL: Final[str] = "heartbeat_fail"
RESTART_REASON_PROC_EXIT: Final[str] = "proc_exit"
RESTART_REASON_PROC_ERROR: Final[str] = "proc_error"
RESTART_REASON_RETRY_AFTER_FAIL: Final[str] = "retry_after_fail"

# =============================================================================
# Tunnel Messages
# =============================================================================

TUNNEL_LOG_START: Final[str] = "Starting {provider} tunnel: {command}"
TUNNEL_LOG_OUTPUT_PREFIX: Final[str] = "[{provider}] {line}"
TUNNEL_LOG_TUNNEL_URL: Final[str] = "Tunnel URL: {public_url}"
TUNNEL_LOG_STOP: Final[str] = "Stopping {provider} tunnel (pid={pid})"
TUNNEL_LOG_STOP_KILL: Final[str] = "Tunnel process did not exit in time, killing"
TUNNEL_LOG_STOP_DONE: Final[str] = "{provider} tunnel stopped"
TUNNEL_LOG_KILL_ORPHAN: Final[str] = "Killing orphaned process {pid} bound to port {port}"
TUNNEL_LOG_HEALTH_FAILED: Final[str] = "Tunnel health probe failed: {error}"

TUNNEL_ERROR_BINARY_MISSING: Final[str] = (
    "{provider} binary not found. Install it or set {env_var} to its location."
)
TUNNEL_ERROR_BINARY_NOT_FOUND: Final[str] = "{provider} binary not found at {path}"
TUNNEL_ERROR_START: Final[str] = "Failed to start {provider}: {error}"
TUNNEL_ERROR_EXITED: Final[str] = "{provider} exited with code {code} before reporting a URL"
TUNNEL_ERROR_EXITED_UNEXPECTED: Final[str] = "{provider} exited unexpectedly with code {code}"
TUNNEL_ERROR_TIMEOUT_URL: Final[str] = "Timed out after {timeout}s waiting for tunnel URL"
TUNNEL_ERROR_STOP: Final[str] = "Error stopping tunnel: {error}"
TUNNEL_ERROR_STOPPED_DURING_START: Final[str] = "{provider} was stopped before reporting a URL"
TUNNEL_ERROR_UNKNOWN_PROVIDER: Final[str] = "Unknown tunnel provider: {provider}"
TUNNEL_ERROR_UNKNOWN_PROVIDER_EXPECTED: Final[str] = "one of {providers}"
TUNNEL_ERROR_START_UNKNOWN: Final[str] = "Tunnel failed to start (unknown error)"

MANAGER_LOG_STARTED: Final[str] = "Tunnel supervisor running: {url}"
MANAGER_LOG_STOPPED: Final[str] = "Tunnel supervisor stopped"
MANAGER_LOG_HEARTBEAT_RECOVERED: Final[str] = "Tunnel heartbeat recovered after {count} failure(s)"
MANAGER_LOG_HEARTBEAT_FAILED: Final[str] = "Tunnel heartbeat failed ({count}/{threshold})"
MANAGER_LOG_PROCESS_EXITED: Final[str] = "Tunnel process exited with code {code}"
MANAGER_LOG_PROCESS_ERROR: Final[str] = "Tunnel process monitor failed: {error}"
MANAGER_LOG_RESTART_IN_PROGRESS: Final[str] = "Restart already in progress, ignoring ({reason})"
MANAGER_LOG_RESTART_STOPPED: Final[str] = "Tunnel stopped, ignoring restart ({reason})"
MANAGER_LOG_RESTART_BEGIN: Final[str] = "Restarting tunnel ({reason}), attempt {attempt}/{max_attempts}"
MANAGER_LOG_RESTART_SUCCESS: Final[str] = "Tunnel restarted: {url}"
MANAGER_LOG_RESTART_FAILED: Final[str] = "Tunnel restart failed: {error}; retrying in {delay}s"
MANAGER_LOG_RESTART_ABORTED: Final[str] = "Tunnel stopped during restart, abandoning ({reason})"
MANAGER_LOG_GAVE_UP: Final[str] = (
    "Tunnel restart attempts exhausted ({attempts}); automatic recovery halted"
)
MANAGER_LOG_CALLBACK_FAILED: Final[str] = "Tunnel {callback} callback failed: {error}"
MANAGER_ERROR_NOT_READY: Final[str] = "Tunnel did not pass health check within {timeout}s"

# =============================================================================
# Sessions
# =============================================================================

SESSION_IDLE_TIMEOUT_SECONDS: Final[float] = 1800.0
SESSION_SWEEP_INTERVAL_SECONDS: Final[float] = 300.0
DEFAULT_PERMISSION_MODE: Final[str] = "bypassPermissions"
VALID_PERMISSION_MODES: Final[tuple[str, ...]] = (
    "default",
    "acceptEdits",
    "plan",
    "bypassPermissions",
)

SESSION_LOG_RESUME: Final[str] = "Resuming session {session_id} (model={model}, cwd={cwd})"
SESSION_LOG_CREATE: Final[str] = "Creating new session (model={model}, cwd={cwd})"
SESSION_LOG_REGISTERED: Final[str] = "Registered session {session_id}"
SESSION_LOG_CLOSED: Final[str] = "Closed session {session_id}"
SESSION_LOG_EVICTED: Final[str] = "Evicting idle session {session_id} (idle {idle:.0f}s)"
SESSION_ERROR_START: Final[str] = "Failed to start assistant session: {error}"

# =============================================================================
# Streaming
# =============================================================================

TURN_INACTIVITY_TIMEOUT_SECONDS: Final[float] = 300.0
REQUEST_MAX_DURATION_SECONDS: Final[float] = 1800.0

EVENT_TYPE_TURN_COMPLETE: Final[str] = "turn_complete"
EVENT_TYPE_DONE: Final[str] = "done"
EVENT_TYPE_ERROR: Final[str] = "error"
EVENT_TYPE_MESSAGE: Final[str] = "message"
EVENT_KEY_TYPE: Final[str] = "type"
EVENT_KEY_SESSION_ID: Final[str] = "session_id"
EVENT_KEY_TURN: Final[str] = "turn"
EVENT_KEY_SUBTYPE: Final[str] = "subtype"
EVENT_KEY_DATA: Final[str] = "data"
EVENT_CATEGORY_SYSTEM: Final[str] = "system"

TOOL_TEAM_CREATE: Final[str] = "TeamCreate"
TOOL_TEAM_DELETE: Final[str] = "TeamDelete"
BACKGROUND_CAPABLE_TOOLS: Final[tuple[str, ...]] = ("Task", "Agent", "Bash")
TOOL_INPUT_RUN_IN_BACKGROUND: Final[str] = "run_in_background"
TASK_NOTIFICATION_MARKER: Final[str] = "<task-notification>"
RUN_IN_BACKGROUND_PATTERN: Final[str] = r'"run_in_background"\s*:\s*true'

STREAM_LOG_SESSION_RESOLVED: Final[str] = "Session id resolved from stream: {session_id}"
STREAM_LOG_TURN_COMPLETE: Final[str] = "Turn {turn} complete ({count} events)"
STREAM_LOG_TURN_TIMEOUT: Final[str] = "No activity for {timeout}s after turn {turn}; ending stream"
STREAM_LOG_SAFETY_VALVE: Final[str] = "Request exceeded {limit}s; ending stream"
STREAM_LOG_FINISHED: Final[str] = (
    "Stream finished after {turns} turn(s) (team_mode={team_mode}, pending_tasks={pending})"
)

SSE_MEDIA_TYPE: Final[str] = "text/event-stream"

# =============================================================================
# API Paths and Response Keys
# =============================================================================

API_PATH_HEALTH: Final[str] = "/health"
API_PATH_STATUS: Final[str] = "/api/status"
API_PATH_TUNNEL_START: Final[str] = "/api/tunnel/start"
API_PATH_TUNNEL_STOP: Final[str] = "/api/tunnel/stop"
API_PATH_TUNNEL_STATUS: Final[str] = "/api/tunnel/status"
API_PATH_CHAT: Final[str] = "/api/chat"
API_PATH_SESSIONS: Final[str] = "/api/sessions"
API_PATH_SESSION: Final[str] = "/api/sessions/{session_id}"

TUNNEL_RESPONSE_KEY_STATUS: Final[str] = "status"
TUNNEL_RESPONSE_KEY_ACTIVE: Final[str] = "active"
TUNNEL_RESPONSE_KEY_PUBLIC_URL: Final[str] = "public_url"
TUNNEL_RESPONSE_KEY_PROVIDER: Final[str] = "provider"
TUNNEL_RESPONSE_KEY_STARTED_AT: Final[str] = "started_at"
TUNNEL_RESPONSE_KEY_ERROR: Final[str] = "error"

TUNNEL_API_STATUS_STARTED: Final[str] = "started"
TUNNEL_API_STATUS_ALREADY_ACTIVE: Final[str] = "already_active"
TUNNEL_API_STATUS_STOPPED: Final[str] = "stopped"
TUNNEL_API_STATUS_NOT_ACTIVE: Final[str] = "not_active"
TUNNEL_API_STATUS_ERROR: Final[str] = "error"

DAEMON_STATUS_HEALTHY: Final[str] = "healthy"

CORS_ORIGIN_TEMPLATE: Final[str] = "{scheme}://{host}:{port}"
CORS_SCHEME_HTTP: Final[str] = "http"
CORS_HOST_LOCALHOST: Final[str] = "localhost"
CORS_HOST_LOOPBACK: Final[str] = "127.0.0.1"
CORS_ALLOWED_METHODS: Final[tuple[str, ...]] = ("GET", "POST", "DELETE", "OPTIONS")
CORS_ALLOWED_HEADERS: Final[tuple[str, ...]] = ("Content-Type", "Authorization")
CORS_MAX_AGE_SECONDS: Final[int] = 600
CORS_WILDCARD: Final[str] = "*"


ROUTE_TAG_HEALTH: Final[str] = "health"
ROUTE_TAG_TUNNEL: Final[str] = "tunnel"
ROUTE_TAG_CHAT: Final[str] = "chat"
ROUTE_TAG_SESSIONS: Final[str] = "sessions"

DAEMON_ERROR_NOT_INITIALIZED: Final[str] = "Relay daemon not initialized"
DAEMON_ERROR_SESSION_NOT_FOUND: Final[str] = "Session not found: {session_id}"
DAEMON_ERROR_EMPTY_MESSAGE: Final[str] = "Message must not be empty"

DAEMON_LOG_STARTING: Final[str] = "Relay daemon starting (project={project_root}, port={port})"
DAEMON_LOG_STOPPING: Final[str] = "Relay daemon shutting down"
DAEMON_LOG_TUNNEL_DISABLED: Final[str] = "Tunnel disabled; serving on localhost only"
DAEMON_LOG_TUNNEL_ACTIVE: Final[str] = "Tunnel active: {public_url}"
DAEMON_LOG_TUNNEL_FAILED: Final[str] = "Tunnel failed to start: {error}"
DAEMON_LOG_TUNNEL_RESTARTED: Final[str] = "Tunnel URL changed after restart: {public_url}"
DAEMON_LOG_TUNNEL_GAVE_UP: Final[str] = (
    "Tunnel supervisor gave up ({reason}); use POST /api/tunnel/start to retry"
)
DAEMON_LOG_TUNNEL_START: Final[str] = "Starting {provider} tunnel on port {port}"
DAEMON_LOG_TUNNEL_STOPPED: Final[str] = "Tunnel stopped"
DAEMON_LOG_CHAT_FAILED: Final[str] = "Chat stream failed: {error}"
DAEMON_LOG_PORT_IN_USE: Final[str] = "Port {port} already in use by pid {pid}"

TUNNEL_ERROR_PROVIDER_UNAVAILABLE: Final[str] = "{provider} is not installed. {install_hint}"
TUNNEL_INSTALL_HINT_CLOUDFLARED: Final[str] = (
    "Install cloudflared: https://developers.cloudflare.com/cloudflare-one/"
    "connections/connect-networks/downloads/"
)
TUNNEL_INSTALL_HINT_NGROK: Final[str] = "Install ngrok: https://ngrok.com/download"
TUNNEL_INSTALL_HINT_DEFAULT: Final[str] = "Check the tunnel provider configuration."

# =============================================================================
# Logging
# =============================================================================

LOG_LEVEL_DEBUG: Final[str] = "DEBUG"
LOG_LEVEL_INFO: Final[str] = "INFO"
LOG_LEVEL_WARNING: Final[str] = "WARNING"
LOG_LEVEL_ERROR: Final[str] = "ERROR"
VALID_LOG_LEVELS: Final[tuple[str, ...]] = (
    LOG_LEVEL_DEBUG,
    LOG_LEVEL_INFO,
    LOG_LEVEL_WARNING,
    LOG_LEVEL_ERROR,
)

DEFAULT_LOG_ROTATION_ENABLED: Final[bool] = True
DEFAULT_LOG_MAX_SIZE_MB: Final[int] = 10
DEFAULT_LOG_BACKUP_COUNT: Final[int] = 3
MIN_LOG_MAX_SIZE_MB: Final[int] = 1
MAX_LOG_MAX_SIZE_MB: Final[int] = 100
MAX_LOG_BACKUP_COUNT: Final[int] = 10

RELAY_LOGGER_NAME: Final[str] = "agent_relay"
