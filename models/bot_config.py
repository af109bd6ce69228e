"""
Bot Config Model
Runtime configuration read from environment variables
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from models.retry_policy import RetryPolicy
from utils.formatting import is_valid_username

logger = logging.getLogger("mc-session-bot")

AUTH_TYPES = ("offline", "microsoft", "mojang")
TRUE_VALUES = ("1", "true", "yes", "on")


class ConfigError(ValueError):
    """Raised when the configuration cannot be used"""


@dataclass
class SchedulerConfig:
    """Configuration for the idle scheduler"""
    idle_threshold: float = 300.0  # seconds without chat before acting
    anti_idle_interval: float = 60.0  # seconds between anti-idle checks
    health_report_interval: float = 1800.0  # seconds between health reports
    anti_idle_enabled: bool = True


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in TRUE_VALUES


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _env_seconds(name: str, default_ms: str) -> float:
    """Read a millisecond setting as seconds"""
    return _env_int(name, default_ms) / 1000.0


@dataclass
class BotConfig:
    """Configuration of the bot process"""
    # Server connection
    host: str = "localhost"
    port: int = 25565
    version: Optional[str] = None  # None auto-detects

    # Authentication
    username: str = "MinecraftBot"
    password: Optional[str] = None
    auth_type: str = "offline"

    # Behavior
    command_prefix: str = "!"
    join_message: Optional[str] = "Bot connected! Type !help for commands."
    welcome_messages: bool = True

    # Logging
    log_level: str = "info"
    log_dir: str = "logs"

    # Anti-idle and health report
    anti_idle_enabled: bool = True
    idle_timeout: float = 300.0
    anti_idle_interval: float = 60.0
    health_report_interval: float = 1800.0

    # Reconnection
    max_reconnect_attempts: int = 10
    reconnect_delay: float = 5.0
    connect_timeout: float = 30.0

    # Runtime
    protocol_backend: str = "mineflayer"
    health_port: int = 8004

    @classmethod
    def from_env(cls) -> "BotConfig":
        """Build the configuration from environment variables"""
        return cls(
            host=os.getenv("SERVER_HOST", "localhost"),
            port=_env_int("SERVER_PORT", "25565"),
            version=os.getenv("MC_VERSION") or None,
            username=os.getenv("BOT_USERNAME", "MinecraftBot"),
            password=os.getenv("BOT_PASSWORD") or None,
            auth_type=os.getenv("AUTH_TYPE", "offline").lower(),
            command_prefix=os.getenv("COMMAND_PREFIX", "!"),
            join_message=os.getenv("JOIN_MESSAGE", "Bot connected! Type !help for commands.") or None,
            welcome_messages=_env_bool("WELCOME_MESSAGES", "true"),
            log_level=os.getenv("LOG_LEVEL", "info"),
            log_dir=os.getenv("LOG_DIR", "logs"),
            anti_idle_enabled=_env_bool("ANTI_IDLE_ENABLED", "true"),
            idle_timeout=_env_seconds("IDLE_TIMEOUT", "300000"),
            anti_idle_interval=_env_seconds("ANTI_IDLE_INTERVAL", "60000"),
            health_report_interval=_env_seconds("HEALTH_REPORT_INTERVAL", "1800000"),
            max_reconnect_attempts=_env_int("MAX_RECONNECT_ATTEMPTS", "10"),
            reconnect_delay=_env_seconds("RECONNECT_DELAY", "5000"),
            connect_timeout=_env_seconds("CONNECT_TIMEOUT", "30000"),
            protocol_backend=os.getenv("PROTOCOL_BACKEND", "mineflayer"),
            health_port=_env_int("HEALTH_PORT", "8004"),
        )

    def validate(self) -> "BotConfig":
        """Check required settings; raises ConfigError"""
        missing = [name for name, value in (
            ("SERVER_HOST", self.host),
            ("BOT_USERNAME", self.username),
            ("COMMAND_PREFIX", self.command_prefix),
        ) if not value]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

        if not 0 < self.port < 65536:
            raise ConfigError(f"SERVER_PORT out of range: {self.port}")
        if not 0 <= self.health_port < 65536:
            raise ConfigError(f"HEALTH_PORT out of range: {self.health_port}")
        if self.auth_type not in AUTH_TYPES:
            raise ConfigError(f"AUTH_TYPE must be one of {', '.join(AUTH_TYPES)}, got {self.auth_type!r}")
        if self.max_reconnect_attempts < 0:
            raise ConfigError("MAX_RECONNECT_ATTEMPTS must not be negative")
        if self.reconnect_delay < 0:
            raise ConfigError("RECONNECT_DELAY must not be negative")
        for name, value in (
            ("IDLE_TIMEOUT", self.idle_timeout),
            ("ANTI_IDLE_INTERVAL", self.anti_idle_interval),
            ("HEALTH_REPORT_INTERVAL", self.health_report_interval),
            ("CONNECT_TIMEOUT", self.connect_timeout),
        ):
            if value <= 0:
                raise ConfigError(f"{name} must be positive")

        if self.auth_type == "offline" and not is_valid_username(self.username):
            logger.warning(f"BOT_USERNAME {self.username!r} is not a valid offline-mode username")
        return self

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_reconnect_attempts,
            base_delay=self.reconnect_delay,
        )

    @property
    def scheduler_config(self) -> SchedulerConfig:
        return SchedulerConfig(
            idle_threshold=self.idle_timeout,
            anti_idle_interval=self.anti_idle_interval,
            health_report_interval=self.health_report_interval,
            anti_idle_enabled=self.anti_idle_enabled,
        )

    def log_summary(self):
        """Log the configuration, leaving out secrets"""
        logger.info("Bot Configuration:")
        logger.info(f"- Server: {self.host}:{self.port}")
        logger.info(f"- Bot Username: {self.username}")
        logger.info(f"- Auth Type: {self.auth_type}")
        logger.info(f"- Command Prefix: {self.command_prefix}")
        logger.info(f"- MC Version: {self.version or 'Auto-detect'}")
        logger.info(f"- Log Level: {self.log_level}")
        logger.info(f"- Reconnect: {self.max_reconnect_attempts} attempts, base delay {self.reconnect_delay:g}s")
