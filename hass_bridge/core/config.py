"""
Bridge Configuration

Centralized configuration management using Pydantic Settings.
Values come from (highest priority first) explicit keyword arguments, an
optional YAML config file, ``HASS_BRIDGE_*`` environment variables and a
``.env`` file.
"""

import logging
from pathlib import Path
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.config_loader import load_yaml_config, normalize_option_names

DEFAULT_PORT = 8123
DEFAULT_VIS_URL = "http://localhost:8082/vis/"
DEFAULT_SERVICE_NAME = "ioBroker"


class BridgeSettings(BaseSettings):
    """Bridge settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="HASS_BRIDGE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    # ==================== HTTP Gateway ====================
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    vis_url: str = DEFAULT_VIS_URL

    # ==================== Authentication ====================
    auth_required: bool = False
    username: str = "admin"
    password: str = ""
    session_ttl_seconds: int = 600
    sweep_interval_seconds: float = 300
    token_expires_in: int = 1800

    # ==================== mDNS Announcement ====================
    mdns_enabled: bool = True
    service_name: str = DEFAULT_SERVICE_NAME
    service_dir: str = "/etc/avahi/services"
    service_file_name: str = "homeassistant-bridge.service"

    # ==================== Status Store ====================
    # JSON file mirroring info.connection / info.clients; in-memory when unset
    status_file: str | None = None

    # ==================== Logging Settings ====================
    log_level: str = "INFO"
    log_format: str = "%(asctime)s,p%(process)s,{%(filename)s:%(lineno)d},%(levelname)s,%(message)s"

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 <= v <= 65535:
            raise ValueError(f"port must be between 0 and 65535, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"log_level must be a standard logging level, got '{v}'")
        return level

    @property
    def vis_url_is_local(self) -> bool:
        """True when the redirect target points at the bridge host itself."""
        url = self.vis_url.lower()
        return "localhost" in url or "127.0.0.1" in url

    def configure_logging(self) -> None:
        """Configure application-wide logging with consistent format and level.

        This should be called once at startup. Individual modules use
        logging.getLogger(__name__) without calling basicConfig again.
        """
        numeric_level = getattr(logging, self.log_level, logging.INFO)

        logging.basicConfig(
            level=numeric_level,
            format=self.log_format,
            force=True,
        )


def load_settings(config_file: str | Path | None = None, **overrides: Any) -> BridgeSettings:
    """
    Build settings from an optional YAML file plus explicit overrides.

    Overrides whose value is None are ignored so unset CLI flags do not mask
    file or environment values.
    """
    options: dict[str, Any] = {}
    if config_file:
        options.update(load_yaml_config(config_file))
    options.update(normalize_option_names({k: v for k, v in overrides.items() if v is not None}))
    return BridgeSettings(**options)
