"""Client configuration loaded from YAML with environment overrides."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from inquest.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8080/api"
COMPLETION_EXPIRY_SECONDS = 60.0
STREAM_RETRY_SECONDS = 3.0
REQUEST_TIMEOUT_SECONDS = 30.0

CONFIG_ENV = "INQUEST_CONFIG"
_ENV_OVERRIDES = {
    "base_url": "INQUEST_BASE_URL",
    "access_token": "INQUEST_ACCESS_TOKEN",
    "log_level": "INQUEST_LOG_LEVEL",
    "log_file": "INQUEST_LOG_FILE",
}


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    async_start_path: str = "/sessions/async"
    stream_path: str = "/sessions/async/stream"
    refresh_path: str = "/auth/refresh"
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    stream_retry_delay: float = STREAM_RETRY_SECONDS
    completion_expiry: float = COMPLETION_EXPIRY_SECONDS
    access_token: str | None = None
    log_level: str = "INFO"
    log_file: str | None = None

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigurationError(f"Config file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file must contain a mapping: {path}")
    return data


def load_config(path: Path | str | None = None) -> ClientConfig:
    """Build a config from an optional YAML file, then apply INQUEST_* variables."""
    source = path or os.getenv(CONFIG_ENV)
    values: dict[str, Any] = {}
    if source:
        values = _read_yaml(Path(source))
        logger.debug("Loaded client config from %s", source)
    known = {f.name for f in fields(ClientConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {', '.join(unknown)}")
    try:
        config = ClientConfig(**values)
    except TypeError as exc:
        raise ConfigurationError(str(exc)) from exc
    overrides = {
        name: os.environ[env]
        for name, env in _ENV_OVERRIDES.items()
        if os.environ.get(env)
    }
    return replace(config, **overrides) if overrides else config
