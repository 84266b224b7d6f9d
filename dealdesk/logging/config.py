"""
Logging settings for DealDesk.

Buffer caps for the structured logger plus the optional JSONL mirror.
Storage is the primary sink; the file mirror is opt-in.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

_TRUTHY = ("1", "true", "yes")


@dataclass
class LogConfig:
    """Settings read by StructuredLogger."""

    max_buffer_size: int = 100
    max_critical_size: int = 50

    # Level for the stdlib "dealdesk.events" logger
    level: str = "INFO"

    file_enabled: bool = False
    log_dir: Path = field(default_factory=lambda: Path.home() / ".dealdesk" / "logs")
    max_file_size_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    @classmethod
    def from_env(cls) -> "LogConfig":
        """Build settings from DEALDESK_LOG_* variables."""
        env = os.environ
        config = cls(
            level=env.get("DEALDESK_LOG_LEVEL") or "INFO",
            file_enabled=env.get("DEALDESK_LOG_FILE", "").lower() in _TRUTHY,
        )
        if env.get("DEALDESK_LOG_DIR"):
            config.log_dir = Path(env["DEALDESK_LOG_DIR"])

        size_mb = env.get("DEALDESK_LOG_MAX_SIZE_MB", "")
        if size_mb.isdigit():
            config.max_file_size_bytes = int(size_mb) * 1024 * 1024

        return config

    @property
    def events_log_path(self) -> Path:
        return self.log_dir / "events.jsonl"


_active: LogConfig | None = None


def get_config() -> LogConfig:
    """Process-wide settings, read from the environment on first use."""
    global _active
    if _active is None:
        _active = LogConfig.from_env()
    return _active


def set_config(config: LogConfig) -> None:
    """Replace the process-wide settings."""
    global _active
    _active = config
