"""
Configuration - Loads and validates connector configuration.

Merges an optional YAML file with environment variables. Environment
variables take precedence over YAML values so credentials can stay out
of files checked into deployments.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = "config/config.yaml"


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------

def _truthy(v: str) -> bool:
    return v.strip().lower() in ("1", "true", "yes", "on")


_ENV_MAPPINGS = {
    "BTCE_BASE_URL": ("exchange", "base_url"),
    "BTCE_API_KEY": ("exchange", "api_key"),
    "BTCE_API_SECRET": ("exchange", "api_secret"),
    "BTCE_PROXY": ("exchange", "proxy"),
    "BTCE_TIMEOUT": ("exchange", "timeout", float),
    "BTCE_MAX_RETRIES": ("exchange", "max_retries", int),
    "BTCE_RETRY_INTERVAL": ("exchange", "retry_interval", float),
    "LOG_LEVEL": ("app", "log_level"),
    "LOG_DIR": ("app", "log_dir"),
    "LOG_JSON": ("app", "json_logs", _truthy),
}


def _apply_env_overrides(config: Dict[str, Any]) -> None:
    """Override YAML values with environment variables where set."""
    for env_key, mapping in _ENV_MAPPINGS.items():
        value = os.getenv(env_key)
        if value is None:
            continue
        section, key = mapping[0], mapping[1]
        converter = mapping[2] if len(mapping) > 2 else str
        try:
            converted = converter(value)
        except (ValueError, TypeError) as e:
            logging.getLogger("config").warning(
                "Env %s=%r failed to convert: %s. Using YAML value.",
                env_key, value, e,
            )
            continue
        if not isinstance(config.get(section), dict):
            config[section] = {}
        config[section][key] = converted


# ---------------------------------------------------------------------------
# Pydantic Configuration Models
# ---------------------------------------------------------------------------

class ExchangeConfig(BaseModel):
    base_url: str = "https://btc-e.com"
    api_key: str = ""
    api_secret: str = ""
    proxy: Optional[str] = None
    timeout: float = 30.0
    # Retries after the first attempt, for HTTP 5xx only.
    max_retries: int = 3
    retry_interval: float = 1.0
    trade_path: str = "tapi"
    info_path: str = "api/3/info"
    depth_path: str = "api/3/depth/{pair}"
    default_depth_limit: int = 150

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return (v or "").strip().rstrip("/") or "https://btc-e.com"

    @field_validator("proxy")
    @classmethod
    def blank_proxy_is_none(cls, v):
        v = (v or "").strip()
        return v or None

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v):
        if v < 0:
            raise ValueError("max_retries must be >= 0")
        return v

    @field_validator("retry_interval", "timeout")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    json_logs: bool = False


class ConnectorConfig(BaseModel):
    """Root configuration model."""
    app: AppConfig = Field(default_factory=AppConfig)
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _read_yaml(config_path: str) -> Dict[str, Any]:
    config_file = Path(config_path)
    if not config_file.exists():
        return {}
    with open(config_file, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must contain a mapping at the top level")
    return data


def load_config_with_overrides(
    config_path: str = DEFAULT_CONFIG_PATH,
    overrides: Optional[Dict[str, Any]] = None,
) -> ConnectorConfig:
    """Load a fresh config (.env + YAML + env) with optional deep overrides."""
    load_dotenv()

    yaml_config = _read_yaml(config_path)
    _apply_env_overrides(yaml_config)

    def _deep_update(dst: Dict[str, Any], src: Dict[str, Any]) -> None:
        for key, value in (src or {}).items():
            if isinstance(value, dict) and isinstance(dst.get(key), dict):
                _deep_update(dst[key], value)
            else:
                dst[key] = value

    if overrides:
        _deep_update(yaml_config, overrides)

    return ConnectorConfig(**yaml_config)
