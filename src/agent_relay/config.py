"""Configuration management for the agent relay daemon.

Configuration follows a priority hierarchy:
1. Environment variables (AGENT_RELAY_*)
2. Project config (.relay/config.yaml)
3. Hardcoded defaults in this module
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from agent_relay.constants import (
    DEFAULT_LOG_BACKUP_COUNT,
    DEFAULT_LOG_MAX_SIZE_MB,
    DEFAULT_LOG_ROTATION_ENABLED,
    DEFAULT_PERMISSION_MODE,
    DEFAULT_PORT,
    DEFAULT_TUNNEL_PROVIDER,
    ENV_DEBUG,
    ENV_DEFAULT_MODEL,
    ENV_LOG_LEVEL,
    ENV_PORT,
    ENV_TUNNEL_PROVIDER,
    LOG_LEVEL_DEBUG,
    LOG_LEVEL_INFO,
    MAX_LOG_BACKUP_COUNT,
    MAX_LOG_MAX_SIZE_MB,
    MIN_LOG_MAX_SIZE_MB,
    RELAY_CONFIG_FILE,
    RELAY_DIR,
    REQUEST_MAX_DURATION_SECONDS,
    SESSION_IDLE_TIMEOUT_SECONDS,
    SESSION_SWEEP_INTERVAL_SECONDS,
    TUNNEL_ERROR_UNKNOWN_PROVIDER,
    TUNNEL_ERROR_UNKNOWN_PROVIDER_EXPECTED,
    TUNNEL_HEARTBEAT_INTERVAL_SECONDS,
    TUNNEL_MAX_RESTART_ATTEMPTS,
    TURN_INACTIVITY_TIMEOUT_SECONDS,
    VALID_LOG_LEVELS,
    VALID_PERMISSION_MODES,
    VALID_TUNNEL_PROVIDERS,
)
from agent_relay.exceptions import ValidationError

logger = logging.getLogger(__name__)

TRUTHY_ENV_VALUES = ("1", "true", "yes")


@dataclass
class TunnelConfig:
    """Configuration for the public tunnel.

    Attributes:
        provider: Tunnel provider (cloudflared, ngrok).
        auto_start: Whether to start the tunnel when the daemon starts.
        cloudflared_path: Custom path to cloudflared binary (None = search).
        ngrok_path: Custom path to ngrok binary (None = search).
        heartbeat_interval_seconds: Seconds between tunnel health probes.
        max_restart_attempts: Consecutive failed restarts before giving up.
    """

    provider: str = DEFAULT_TUNNEL_PROVIDER
    auto_start: bool = True
    cloudflared_path: str | None = None
    ngrok_path: str | None = None
    heartbeat_interval_seconds: float = TUNNEL_HEARTBEAT_INTERVAL_SECONDS
    max_restart_attempts: int = TUNNEL_MAX_RESTART_ATTEMPTS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValidationError: If any configuration value is invalid.
        """
        if self.provider not in VALID_TUNNEL_PROVIDERS:
            raise ValidationError(
                TUNNEL_ERROR_UNKNOWN_PROVIDER.format(provider=self.provider),
                field="provider",
                value=self.provider,
                expected=TUNNEL_ERROR_UNKNOWN_PROVIDER_EXPECTED.format(
                    providers=VALID_TUNNEL_PROVIDERS
                ),
            )
        if self.heartbeat_interval_seconds <= 0:
            raise ValidationError(
                "heartbeat_interval_seconds must be positive",
                field="heartbeat_interval_seconds",
                value=self.heartbeat_interval_seconds,
                expected="> 0",
            )
        if self.max_restart_attempts < 1:
            raise ValidationError(
                "max_restart_attempts must be at least 1",
                field="max_restart_attempts",
                value=self.max_restart_attempts,
                expected=">= 1",
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TunnelConfig":
        """Create config from dictionary."""
        return cls(
            provider=data.get("provider", DEFAULT_TUNNEL_PROVIDER),
            auto_start=data.get("auto_start", True),
            cloudflared_path=data.get("cloudflared_path"),
            ngrok_path=data.get("ngrok_path"),
            heartbeat_interval_seconds=data.get(
                "heartbeat_interval_seconds", TUNNEL_HEARTBEAT_INTERVAL_SECONDS
            ),
            max_restart_attempts=data.get("max_restart_attempts", TUNNEL_MAX_RESTART_ATTEMPTS),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "provider": self.provider,
            "auto_start": self.auto_start,
            "cloudflared_path": self.cloudflared_path,
            "ngrok_path": self.ngrok_path,
            "heartbeat_interval_seconds": self.heartbeat_interval_seconds,
            "max_restart_attempts": self.max_restart_attempts,
        }


@dataclass
class SessionConfig:
    """Configuration for assistant sessions and request streaming.

    Attributes:
        default_model: Model used when a chat request does not name one.
        idle_timeout_seconds: Sessions idle longer than this are evicted.
        sweep_interval_seconds: Seconds between idle sweeps.
        turn_timeout_seconds: Inactivity limit while waiting for a follow-up turn.
        max_request_duration_seconds: Wall-clock cap for one chat request.
        permission_mode: Permission mode passed to the assistant.
    """

    default_model: str | None = None
    idle_timeout_seconds: float = SESSION_IDLE_TIMEOUT_SECONDS
    sweep_interval_seconds: float = SESSION_SWEEP_INTERVAL_SECONDS
    turn_timeout_seconds: float = TURN_INACTIVITY_TIMEOUT_SECONDS
    max_request_duration_seconds: float = REQUEST_MAX_DURATION_SECONDS
    permission_mode: str = DEFAULT_PERMISSION_MODE

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValidationError: If any configuration value is invalid.
        """
        for name in (
            "idle_timeout_seconds",
            "sweep_interval_seconds",
            "turn_timeout_seconds",
            "max_request_duration_seconds",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ValidationError(
                    f"{name} must be positive",
                    field=name,
                    value=value,
                    expected="> 0",
                )
        if self.permission_mode not in VALID_PERMISSION_MODES:
            raise ValidationError(
                f"Invalid permission mode: {self.permission_mode}",
                field="permission_mode",
                value=self.permission_mode,
                expected=f"one of {VALID_PERMISSION_MODES}",
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionConfig":
        """Create config from dictionary."""
        return cls(
            default_model=data.get("default_model"),
            idle_timeout_seconds=data.get("idle_timeout_seconds", SESSION_IDLE_TIMEOUT_SECONDS),
            sweep_interval_seconds=data.get(
                "sweep_interval_seconds", SESSION_SWEEP_INTERVAL_SECONDS
            ),
            turn_timeout_seconds=data.get("turn_timeout_seconds", TURN_INACTIVITY_TIMEOUT_SECONDS),
            max_request_duration_seconds=data.get(
                "max_request_duration_seconds", REQUEST_MAX_DURATION_SECONDS
            ),
            permission_mode=data.get("permission_mode", DEFAULT_PERMISSION_MODE),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "default_model": self.default_model,
            "idle_timeout_seconds": self.idle_timeout_seconds,
            "sweep_interval_seconds": self.sweep_interval_seconds,
            "turn_timeout_seconds": self.turn_timeout_seconds,
            "max_request_duration_seconds": self.max_request_duration_seconds,
            "permission_mode": self.permission_mode,
        }


@dataclass
class LogRotationConfig:
    """Configuration for log file rotation.

    Attributes:
        enabled: Whether to enable log rotation.
        max_size_mb: Maximum log file size in megabytes before rotation.
        backup_count: Number of backup files to keep (relay.log.1, .2, ...).
    """

    enabled: bool = DEFAULT_LOG_ROTATION_ENABLED
    max_size_mb: int = DEFAULT_LOG_MAX_SIZE_MB
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValidationError: If any configuration value is invalid.
        """
        if not MIN_LOG_MAX_SIZE_MB <= self.max_size_mb <= MAX_LOG_MAX_SIZE_MB:
            raise ValidationError(
                f"max_size_mb must be between {MIN_LOG_MAX_SIZE_MB} and {MAX_LOG_MAX_SIZE_MB}",
                field="max_size_mb",
                value=self.max_size_mb,
                expected=f"{MIN_LOG_MAX_SIZE_MB}-{MAX_LOG_MAX_SIZE_MB}",
            )
        if not 0 <= self.backup_count <= MAX_LOG_BACKUP_COUNT:
            raise ValidationError(
                f"backup_count must be between 0 and {MAX_LOG_BACKUP_COUNT}",
                field="backup_count",
                value=self.backup_count,
                expected=f"0-{MAX_LOG_BACKUP_COUNT}",
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogRotationConfig":
        """Create config from dictionary."""
        return cls(
            enabled=data.get("enabled", DEFAULT_LOG_ROTATION_ENABLED),
            max_size_mb=data.get("max_size_mb", DEFAULT_LOG_MAX_SIZE_MB),
            backup_count=data.get("backup_count", DEFAULT_LOG_BACKUP_COUNT),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "enabled": self.enabled,
            "max_size_mb": self.max_size_mb,
            "backup_count": self.backup_count,
        }

    def get_max_bytes(self) -> int:
        """Get maximum log file size in bytes."""
        return self.max_size_mb * 1024 * 1024


@dataclass
class RelayConfig:
    """Top-level relay configuration.

    Attributes:
        port: Local port the daemon listens on (and the tunnel forwards to).
        tunnel: Tunnel configuration.
        sessions: Session and streaming configuration.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_rotation: Log file rotation configuration.
    """

    port: int = DEFAULT_PORT
    tunnel: TunnelConfig = field(default_factory=TunnelConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)
    log_level: str = LOG_LEVEL_INFO
    log_rotation: LogRotationConfig = field(default_factory=LogRotationConfig)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValidationError: If any configuration value is invalid.
        """
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ValidationError(
                f"Invalid log level: {self.log_level}",
                field="log_level",
                value=self.log_level,
                expected=f"one of {VALID_LOG_LEVELS}",
            )
        if not 0 < self.port < 65536:
            raise ValidationError(
                f"Invalid port: {self.port}",
                field="port",
                value=self.port,
                expected="1-65535",
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RelayConfig":
        """Create config from dictionary.

        Raises:
            ValidationError: If configuration values are invalid.
        """
        return cls(
            port=data.get("port", DEFAULT_PORT),
            tunnel=TunnelConfig.from_dict(data.get("tunnel") or {}),
            sessions=SessionConfig.from_dict(data.get("sessions") or {}),
            log_level=data.get("log_level", LOG_LEVEL_INFO),
            log_rotation=LogRotationConfig.from_dict(data.get("log_rotation") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "port": self.port,
            "tunnel": self.tunnel.to_dict(),
            "sessions": self.sessions.to_dict(),
            "log_level": self.log_level,
            "log_rotation": self.log_rotation.to_dict(),
        }

    def get_effective_log_level(self) -> str:
        """Get effective log level, considering environment variable overrides.

        Priority (highest to lowest):
        1. AGENT_RELAY_DEBUG=1 → DEBUG
        2. AGENT_RELAY_LOG_LEVEL environment variable
        3. Config file log_level setting
        4. Default: INFO
        """
        if os.environ.get(ENV_DEBUG, "").lower() in TRUTHY_ENV_VALUES:
            return LOG_LEVEL_DEBUG

        env_level = os.environ.get(ENV_LOG_LEVEL, "").upper()
        if env_level in VALID_LOG_LEVELS:
            return env_level

        if self.log_level.upper() in VALID_LOG_LEVELS:
            return self.log_level.upper()

        return LOG_LEVEL_INFO


def get_config_path(project_root: Path) -> Path:
    """Return the path of the project config file."""
    return project_root / RELAY_DIR / RELAY_CONFIG_FILE


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay AGENT_RELAY_* environment variables onto raw config data."""
    merged = dict(data)

    port = os.environ.get(ENV_PORT)
    if port:
        try:
            merged["port"] = int(port)
        except ValueError:
            logger.warning(f"Ignoring non-numeric {ENV_PORT}={port!r}")

    provider = os.environ.get(ENV_TUNNEL_PROVIDER)
    if provider:
        merged["tunnel"] = {**(merged.get("tunnel") or {}), "provider": provider}

    model = os.environ.get(ENV_DEFAULT_MODEL)
    if model:
        merged["sessions"] = {**(merged.get("sessions") or {}), "default_model": model}

    return merged


def load_relay_config(project_root: Path) -> RelayConfig:
    """Load relay configuration for a project.

    Args:
        project_root: Project root directory.

    Returns:
        RelayConfig with settings (defaults if not configured).

    Note:
        Returns defaults on error rather than raising, so the daemon can
        start even with an invalid config file.
    """
    config_file = get_config_path(project_root)
    config_data: dict[str, Any] = {}

    if config_file.exists():
        try:
            with open(config_file, encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.warning(f"Failed to parse config YAML from {config_file}: {e}")
        except OSError as e:
            logger.warning(f"Failed to read config from {config_file}: {e}")
    else:
        logger.debug(f"No config file at {config_file}, using defaults")

    if not isinstance(config_data, dict):
        logger.warning(f"Config file {config_file} is not a mapping, ignoring")
        config_data = {}

    try:
        config = RelayConfig.from_dict(_apply_env_overrides(config_data))
    except ValidationError as e:
        logger.warning(f"Invalid relay config in {config_file}: {e}")
        logger.info("Using default configuration")
        return RelayConfig()

    logger.debug(
        f"Loaded relay config: port={config.port}, tunnel={config.tunnel.provider}, "
        f"model={config.sessions.default_model}"
    )
    return config

