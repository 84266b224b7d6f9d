"""
DealDesk - Configuration Management

Handles the remote REST store connection settings and local state paths.
Values come from ~/.config/dealdesk/config.json, overridden by environment
variables.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dealdesk.exceptions import ConfigError

# Configuration paths
CONFIG_DIR = Path.home() / ".config" / "dealdesk"
CONFIG_FILE = CONFIG_DIR / "config.json"
STATE_DB_PATH = CONFIG_DIR / "state.db"


@dataclass
class DealDeskConfig:
    """Main configuration container for DealDesk."""

    rest_url: str = ""
    api_key: str = ""
    access_token: str = ""
    request_timeout: float = 30.0
    state_db_path: str = field(default_factory=lambda: str(STATE_DB_PATH))

    # Tenant profile lookup
    profile_table: str = "user_profiles"
    org_column: str = "dealer_id"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization (secrets excluded)."""
        return {
            "rest_url": self.rest_url,
            "request_timeout": self.request_timeout,
            "state_db_path": self.state_db_path,
            "profile_table": self.profile_table,
            "org_column": self.org_column,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DealDeskConfig":
        """Create config from dictionary."""
        config = cls()
        for key, value in data.items():
            if key in cls.__dataclass_fields__:
                setattr(config, key, value)
        config.request_timeout = float(config.request_timeout)
        return config


def _apply_env(config: DealDeskConfig) -> None:
    if url := os.environ.get("DEALDESK_REST_URL"):
        config.rest_url = url
    if key := os.environ.get("DEALDESK_API_KEY"):
        config.api_key = key
    if token := os.environ.get("DEALDESK_ACCESS_TOKEN"):
        config.access_token = token
    if db_path := os.environ.get("DEALDESK_STATE_DB"):
        config.state_db_path = db_path
    if timeout := os.environ.get("DEALDESK_TIMEOUT"):
        try:
            config.request_timeout = float(timeout)
        except ValueError:
            raise ConfigError(
                "DEALDESK_TIMEOUT must be a number of seconds",
                {"value": timeout},
            )


def load_config(path: Path | None = None) -> DealDeskConfig:
    """
    Load configuration from file and environment.

    Args:
        path: Config file to read. Defaults to ~/.config/dealdesk/config.json

    Returns:
        DealDeskConfig with all settings loaded

    Raises:
        ConfigError: If the config file is invalid
    """
    config_file = path or CONFIG_FILE
    config = DealDeskConfig()

    if config_file.exists():
        try:
            with open(config_file) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(
                f"Invalid JSON in {config_file}",
                {"error": str(e)},
            )
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a JSON object in {config_file}")
        try:
            config = DealDeskConfig.from_dict(data)
        except (TypeError, ValueError) as e:
            raise ConfigError(
                f"Invalid value in {config_file}",
                {"error": str(e)},
            )

    _apply_env(config)
    return config


def save_config(config: DealDeskConfig, path: Path | None = None) -> None:
    """Save non-secret settings to the config file."""
    config_file = path or CONFIG_FILE
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        json.dump(config.to_dict(), f, indent=2)


def require_rest_credentials(config: DealDeskConfig) -> tuple[str, str]:
    """
    Get the REST endpoint and API key.

    Raises:
        ConfigError: If either is not set
    """
    if not config.rest_url:
        raise ConfigError(
            "REST endpoint not configured",
            {"hint": "Export DEALDESK_REST_URL=https://<project>.example.co/rest/v1"},
        )
    if not config.api_key:
        raise ConfigError(
            "DEALDESK_API_KEY environment variable not set",
            {"hint": "Export DEALDESK_API_KEY=your-key-here"},
        )
    return config.rest_url, config.api_key
