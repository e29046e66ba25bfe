from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from dotenv import load_dotenv

DEFAULT_CONFIG: Dict[str, Any] = {
    "api_base_url": "http://localhost:8000",
    "realtime_namespace": "/messages",
    "realtime_transports": "websocket,polling",
    "request_timeout": 15.0,
    "with_credentials": True,
    "refresh_path": "/auth/refresh",
    "login_path": "/auth/login",
    "me_path": "/auth/me",
    "login_redirect": "/login",
    "cache_default_ttl": 300.0,
    "dedupe_refresh": False,
    "session_db_path": "hireloop_session.db",
    "log_level": "INFO",
}

CLIENT_CONFIG: Dict[str, Any] = DEFAULT_CONFIG.copy()


class ConfigError(Exception):
    """Raised when configuration values are invalid."""

    pass


def load_config(env_path: str = ".env") -> Dict[str, Any]:
    """Load client configuration from env file/environment variables."""
    if os.path.exists(env_path):
        load_dotenv(env_path)

    for key, default_value in DEFAULT_CONFIG.items():
        env_key = f"HIRELOOP_{key.upper()}"
        value = os.getenv(env_key, default_value)
        CLIENT_CONFIG[key] = _coerce_type(value, type(default_value))

    validate_config(CLIENT_CONFIG)
    logging.getLogger().setLevel(CLIENT_CONFIG["log_level"])
    return CLIENT_CONFIG


def _coerce_type(value: Any, target_type: type) -> Any:
    if isinstance(value, target_type):
        return value
    try:
        if target_type is bool:
            return str(value).lower() in ("1", "true", "yes", "on")
        return target_type(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Cannot convert {value} to {target_type}") from exc


def validate_config(config: Dict[str, Any]) -> None:
    if not str(config["api_base_url"]).startswith(("http://", "https://")):
        raise ConfigError("api_base_url must be an http(s) URL")
    if not str(config["realtime_namespace"]).startswith("/"):
        raise ConfigError("realtime_namespace must start with '/'")
    if config["request_timeout"] <= 0:
        raise ConfigError("request_timeout must be positive")
    if config["cache_default_ttl"] <= 0:
        raise ConfigError("cache_default_ttl must be positive")


def realtime_url(config: Optional[Dict[str, Any]] = None) -> str:
    """Origin of the duplex connection, derived from the REST base URL."""
    parts = urlsplit((config or CLIENT_CONFIG)["api_base_url"])
    return f"{parts.scheme}://{parts.netloc}"


def realtime_transports(config: Optional[Dict[str, Any]] = None) -> List[str]:
    raw = (config or CLIENT_CONFIG)["realtime_transports"]
    return [item.strip() for item in str(raw).split(",") if item.strip()]


__all__ = [
    "CLIENT_CONFIG",
    "DEFAULT_CONFIG",
    "ConfigError",
    "load_config",
    "realtime_transports",
    "realtime_url",
    "validate_config",
]
