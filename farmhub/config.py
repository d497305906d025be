"""
Configuration for the FarmHub device backend
============================================
Runtime settings loaded from ``FARMHUB_*`` environment variables, plus the
logging setup used by the app factory and the CLI entry point.
"""

import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

from farmhub.enums.device import CommandChannelType


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("FARMHUB_ENV", "development"))
    secret_key: str = field(default_factory=lambda: os.getenv("FARMHUB_SECRET_KEY", "FarmHubDevSecretKey"))
    database_path: str = field(default_factory=lambda: os.getenv("FARMHUB_DATABASE_PATH", "database/farmhub.db"))

    DEBUG: bool = field(default_factory=lambda: _env_bool("FARMHUB_DEBUG", False))
    log_level: str = field(default_factory=lambda: os.getenv("FARMHUB_LOG_LEVEL", "INFO"))
    log_file: str = field(default_factory=lambda: os.getenv("FARMHUB_LOG_FILE", "logs/farmhub.log"))
    audit_log_path: str = field(default_factory=lambda: os.getenv("FARMHUB_AUDIT_LOG_PATH", "logs/audit.log"))
    socketio_cors_origins: str = field(default_factory=lambda: os.getenv("FARMHUB_SOCKETIO_CORS", "*"))

    eventbus_queue_size: int = field(default_factory=lambda: _env_int("FARMHUB_EVENTBUS_QUEUE_SIZE", 1024))
    eventbus_worker_count: int = field(default_factory=lambda: _env_int("FARMHUB_EVENTBUS_WORKER_COUNT", 2))
    scheduler_max_workers: int = field(default_factory=lambda: _env_int("FARMHUB_SCHEDULER_MAX_WORKERS", 2))

    # Outbound device commands
    command_channel: str = field(
        default_factory=lambda: os.getenv(
            "FARMHUB_COMMAND_CHANNEL",
            # Real devices are only contacted outside development.
            CommandChannelType.SIMULATED.value
            if os.getenv("FARMHUB_ENV", "development") == "development"
            else CommandChannelType.HTTP.value,
        )
    )
    device_api_base_url: str = field(
        default_factory=lambda: os.getenv("FARMHUB_DEVICE_API_BASE_URL", "http://localhost:8000")
    )
    command_timeout_seconds: float = field(default_factory=lambda: _env_float("FARMHUB_COMMAND_TIMEOUT", 5.0))
    simulated_command_delay_seconds: float = field(
        default_factory=lambda: _env_float("FARMHUB_SIMULATED_COMMAND_DELAY", 1.0)
    )

    enable_mqtt: bool = field(default_factory=lambda: _env_bool("FARMHUB_ENABLE_MQTT", False))
    mqtt_broker_host: str = field(default_factory=lambda: os.getenv("FARMHUB_MQTT_HOST", "localhost"))
    mqtt_broker_port: int = field(default_factory=lambda: _env_int("FARMHUB_MQTT_PORT", 1883))
    mqtt_command_topic_prefix: str = field(default_factory=lambda: os.getenv("FARMHUB_MQTT_COMMAND_PREFIX", "farm"))

    # Health monitoring: scan every N seconds, device is offline after M seconds of silence
    health_scan_interval_seconds: int = field(default_factory=lambda: _env_int("FARMHUB_HEALTH_SCAN_INTERVAL", 30))
    device_offline_timeout_seconds: int = field(default_factory=lambda: _env_int("FARMHUB_DEVICE_OFFLINE_TIMEOUT", 60))
    enable_health_monitor: bool = field(default_factory=lambda: _env_bool("FARMHUB_ENABLE_HEALTH_MONITOR", True))

    # Change feed for writes made by other processes sharing the database
    change_feed_poll_seconds: int = field(default_factory=lambda: _env_int("FARMHUB_CHANGE_FEED_POLL", 5))

    seed_demo_devices: bool = field(default_factory=lambda: _env_bool("FARMHUB_SEED_DEMO_DEVICES", False))

    _DEFAULT_SECRET_KEY: str = field(default="FarmHubDevSecretKey", init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.environment == "production" and self.secret_key == self._DEFAULT_SECRET_KEY:
            raise RuntimeError(
                "SECURITY ERROR: Cannot use default secret key in production!\n"
                "Set FARMHUB_SECRET_KEY environment variable to a secure random value.\n"
                'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
            )
        try:
            CommandChannelType(self.command_channel)
        except ValueError:
            raise ValueError(
                f"FARMHUB_COMMAND_CHANNEL must be one of "
                f"{', '.join(c.value for c in CommandChannelType)}; got '{self.command_channel}'"
            ) from None
        if self.health_scan_interval_seconds <= 0:
            raise ValueError("FARMHUB_HEALTH_SCAN_INTERVAL must be positive.")
        if self.device_offline_timeout_seconds <= 0:
            raise ValueError("FARMHUB_DEVICE_OFFLINE_TIMEOUT must be positive.")

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "SECRET_KEY": self.secret_key,
            "DATABASE_PATH": self.database_path,
            "MQTT_BROKER_HOST": self.mqtt_broker_host,
            "MQTT_BROKER_PORT": self.mqtt_broker_port,
            "SOCKETIO_CORS_ALLOWED_ORIGINS": self.socketio_cors_origins,
            "AUDIT_LOG_PATH": self.audit_log_path,
            "DEBUG": self.DEBUG,
        }


def setup_logging(debug: bool = False, *, log_level: str = "INFO", log_file: str = "logs/farmhub.log") -> None:
    """Setup logging configuration."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    log_level_value = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)

    # Root logger
    root = logging.getLogger()
    root.setLevel(log_level_value)

    # Keep existing handlers but avoid adding duplicates when create_app is called multiple times
    has_console = any(getattr(h, "name", "") == "farmhub_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "farmhub_file" for h in root.handlers)
    added_handler = False

    # Console handler (force UTF-8 to avoid UnicodeEncodeError on Windows terminals)
    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "farmhub_console"
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file and log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "farmhub_file"
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    # Ensure handler levels follow the desired log level
    for handler in root.handlers:
        if getattr(handler, "name", "") in {"farmhub_console", "farmhub_file"}:
            handler.setLevel(log_level_value)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(log_level_value))

    if _env_bool("FARMHUB_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

    # Socket.IO polling is chatty
    if _env_bool("FARMHUB_SILENCE_SOCKETIO", True):
        logging.getLogger("socketio").setLevel(logging.WARNING)
        logging.getLogger("engineio").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    return AppConfig()
