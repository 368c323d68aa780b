"""Configuration loader for the Smart Monitor Bluetooth audio service.

Reads options from a JSON file (``SMART_MONITOR_BT_OPTIONS``, default
/etc/smart-monitor/bluetooth.json).  A missing file means defaults.
``LOG_LEVEL`` and ``PORT`` in the environment override the file.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

logger = logging.getLogger(__name__)

OPTIONS_ENV = "SMART_MONITOR_BT_OPTIONS"
OPTIONS_PATH = "/etc/smart-monitor/bluetooth.json"


@dataclass
class AppConfig:
    """Application configuration."""

    log_level: str = "info"
    host: str = "0.0.0.0"
    port: int = 5000
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # External tools
    bluetoothctl_path: str = "bluetoothctl"
    pacmd_path: str = "pacmd"
    pactl_path: str = "pactl"

    # Timeouts and windows (seconds)
    command_timeout_seconds: float = 5
    connect_timeout_seconds: float = 15
    scan_duration_seconds: float = 8

    # Settle delays (seconds)
    connect_settle_seconds: float = 3
    audio_ready_seconds: float = 2
    reconnect_settle_seconds: float = 2
    disconnect_settle_seconds: float = 2
    prior_disconnect_settle_seconds: float = 1

    # Audio
    builtin_sink: str = "alsa_output.platform-bcm2835_audio.analog-mono"
    confirmation_sound: str | None = None
    tone_player: str = "mpg123 -q"

    # bluetooth systemd unit
    manage_service: bool = True
    bluetooth_unit: str = "bluetooth.service"
    status_check_interval_seconds: float = 60

    def apply(self, data: dict) -> None:
        """Copy known keys from *data*; unknown keys are logged and ignored."""
        known = {f.name for f in fields(self)}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown option %r", key)
                continue
            setattr(self, key, value)

    @classmethod
    def load(cls, path: str | None = None) -> "AppConfig":
        """Load configuration from the options file and environment."""
        config = cls()

        opts_path = Path(path or os.environ.get(OPTIONS_ENV, OPTIONS_PATH))
        if opts_path.exists():
            try:
                data = json.loads(opts_path.read_text())
                if not isinstance(data, dict):
                    raise ValueError("top level must be an object")
                config.apply(data)
                logger.info("Loaded options from %s", opts_path)
            except (OSError, ValueError) as e:
                logger.error("Failed to parse options: %s, using defaults", e)

        if os.environ.get("LOG_LEVEL"):
            config.log_level = os.environ["LOG_LEVEL"]
        if os.environ.get("PORT"):
            try:
                config.port = int(os.environ["PORT"])
            except ValueError:
                logger.error("Ignoring invalid PORT %r", os.environ["PORT"])
        return config
