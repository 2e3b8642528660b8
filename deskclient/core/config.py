from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from utils.constants import DEFAULT_POLL_INTERVAL_SECONDS, DEFAULT_TIMEOUT_SECONDS


class ConfigError(RuntimeError):
    pass


@dataclass(slots=True)
class ApiConfig:
    base_url: str
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS


@dataclass(slots=True)
class PollingConfig:
    interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS


@dataclass(slots=True)
class StorageConfig:
    backend: str = "memory"
    url: str = "redis://localhost:6379/0"
    namespace: str = "desk:"


@dataclass(slots=True)
class SessionSeedConfig:
    token: str | None = None
    user: str | None = None


@dataclass(slots=True)
class UiConfig:
    notification_ttl_seconds: float = 6.0


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    directory: str = "logs"
    file_name: str = "deskclient.log"
    max_bytes: int = 10_000_000
    backup_count: int = 10
    json_console: bool = False


@dataclass(slots=True)
class AppConfig:
    api: ApiConfig
    polling: PollingConfig = field(default_factory=PollingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    session: SessionSeedConfig = field(default_factory=SessionSeedConfig)
    ui: UiConfig = field(default_factory=UiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _get_env_str(key: str, fallback: str | None = None) -> str | None:
    value = os.getenv(key)
    if value is None:
        return fallback
    cleaned = value.strip()
    return cleaned if cleaned else fallback


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _deep_get(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    node: Any = data
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")
    return raw


def load_config(config_path: Path) -> AppConfig:
    env_path = config_path.parent.parent / ".env"
    load_dotenv(env_path)
    raw = _load_yaml(config_path)

    base_url = _get_env_str("DESK_SERVER_URL", _deep_get(raw, "api", "base_url"))
    if not base_url or "${" in base_url:
        raise ConfigError("DESK_SERVER_URL is required")

    api_cfg = ApiConfig(
        base_url=str(base_url).rstrip("/"),
        timeout_seconds=_as_int(
            _get_env_str("DESK_API_TIMEOUT_SECONDS"),
            _as_int(_deep_get(raw, "api", "timeout_seconds"), DEFAULT_TIMEOUT_SECONDS),
        ),
    )

    polling_cfg = PollingConfig(
        interval_seconds=_as_float(
            _get_env_str("DESK_POLL_INTERVAL_SECONDS"),
            _as_float(_deep_get(raw, "polling", "interval_seconds"), DEFAULT_POLL_INTERVAL_SECONDS),
        ),
    )
    if polling_cfg.interval_seconds <= 0:
        raise ConfigError("polling.interval_seconds must be positive")

    storage_backend = str(
        _get_env_str("DESK_STORAGE_BACKEND", _deep_get(raw, "storage", "backend", default="memory"))
    ).lower()
    if storage_backend not in {"memory", "redis"}:
        raise ConfigError(f"Unsupported storage backend: {storage_backend}")

    storage_cfg = StorageConfig(
        backend=storage_backend,
        url=str(_get_env_str("REDIS_URL", _deep_get(raw, "storage", "url", default="redis://localhost:6379/0"))),
        namespace=str(_deep_get(raw, "storage", "namespace", default="desk:")),
    )

    session_cfg = SessionSeedConfig(
        token=_get_env_str("DESK_TOKEN", _deep_get(raw, "session", "token")),
        user=_get_env_str("DESK_USER", _deep_get(raw, "session", "user")),
    )

    ui_cfg = UiConfig(
        notification_ttl_seconds=_as_float(_deep_get(raw, "ui", "notification_ttl_seconds"), 6.0),
    )

    logging_cfg = LoggingConfig(
        level=str(_get_env_str("LOG_LEVEL", _deep_get(raw, "logging", "level", default="INFO"))),
        directory=str(_deep_get(raw, "logging", "directory", default="logs")),
        file_name=str(_deep_get(raw, "logging", "file_name", default="deskclient.log")),
        max_bytes=_as_int(_deep_get(raw, "logging", "max_bytes"), 10_000_000),
        backup_count=_as_int(_deep_get(raw, "logging", "backup_count"), 10),
        json_console=_as_bool(_deep_get(raw, "logging", "json_console"), False),
    )

    return AppConfig(
        api=api_cfg,
        polling=polling_cfg,
        storage=storage_cfg,
        session=session_cfg,
        ui=ui_cfg,
        logging=logging_cfg,
    )
