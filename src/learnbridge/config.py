"""Persisted workflow configuration and environment timeout knobs."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Protocol

from learnbridge.constants import (
    DEFAULT_DISAPPEAR_POLL_MS,
    DEFAULT_DISAPPEAR_TIMEOUT_MS,
    DEFAULT_GENERATION_MAX_WAIT_MS,
    DEFAULT_GENERATION_POLL_MS,
    DEFAULT_LOCATOR_TIMEOUT_MS,
    DEFAULT_PING_ATTEMPTS,
    DEFAULT_PING_INTERVAL_MS,
    DEFAULT_PING_TIMEOUT_MS,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_REACTIVE_GRACE_MS,
    DEFAULT_RESPONSE_TIMEOUT_MS,
    DEFAULT_SETTLE_MS,
    DEFAULT_TAB_MAX_ATTEMPTS,
    DEFAULT_TAB_POLL_MS,
    DEFAULT_TAB_SETTLE_MS,
)
from learnbridge.web_common import is_valid_url

CONFIG_PATH = Path("runs") / "config.json"
ENV_PREFIX = "LEARNBRIDGE_"


class Storage(Protocol):
    def load(self) -> dict[str, Any]: ...

    def save(self, data: dict[str, Any]) -> None: ...


class JsonFileStorage:
    def __init__(self, path: Path = CONFIG_PATH) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            try:
                payload = json.load(fh)
            except json.JSONDecodeError as exc:
                raise SystemExit(f"Config file is not valid JSON: {self.path}") from exc
        if not isinstance(payload, dict):
            raise SystemExit(f"Config file must hold a JSON object: {self.path}")
        return payload

    def save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, ensure_ascii=False)
            fh.write("\n")


class MemoryStorage:
    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data = dict(data or {})

    def load(self) -> dict[str, Any]:
        return dict(self.data)

    def save(self, data: dict[str, Any]) -> None:
        self.data = dict(data)


@dataclass
class WorkflowConfig:
    kindle_file: str = ""
    selected_chapter: str = ""
    rewrite_api_key: str = ""
    notes_token: str = ""
    notes_database_url: str = ""
    notebook_url: str = ""
    chat_url: str = ""
    last_actions: str = ""

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "WorkflowConfig":
        known = {item.name for item in fields(cls)}
        values: dict[str, str] = {}
        for key, value in payload.items():
            if key not in known:
                continue
            if value is None:
                continue
            if not isinstance(value, str):
                raise ValueError(f"Config value '{key}' must be a string")
            values[key] = value
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value}

    def redacted(self) -> dict[str, Any]:
        out = self.to_dict()
        for key in ("rewrite_api_key", "notes_token"):
            if out.get(key):
                out[key] = out[key][:4] + "..." if len(out[key]) > 8 else "***"
        return out


def config_keys() -> list[str]:
    return [item.name for item in fields(WorkflowConfig)]


def load_config(storage: Storage) -> WorkflowConfig:
    try:
        return WorkflowConfig.from_dict(storage.load())
    except ValueError as exc:
        raise SystemExit(f"Invalid config: {exc}") from exc


def save_config(storage: Storage, config: WorkflowConfig) -> None:
    storage.save(config.to_dict())


def update_config(storage: Storage, key: str, value: str) -> WorkflowConfig:
    if key not in config_keys():
        raise SystemExit(f"Unknown config key: {key}. Known keys: {', '.join(config_keys())}")
    value = value.strip()
    if key.endswith("_url") and value and not is_valid_url(value):
        raise SystemExit(f"Config value {key} must be an http(s) URL, got {value!r}")
    config = load_config(storage)
    setattr(config, key, value)
    save_config(storage, config)
    return config


@dataclass(frozen=True)
class TimeoutSettings:
    locator_timeout_ms: int = DEFAULT_LOCATOR_TIMEOUT_MS
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    reactive_grace_ms: int = DEFAULT_REACTIVE_GRACE_MS
    disappear_timeout_ms: int = DEFAULT_DISAPPEAR_TIMEOUT_MS
    disappear_poll_ms: int = DEFAULT_DISAPPEAR_POLL_MS
    settle_ms: int = DEFAULT_SETTLE_MS
    ping_interval_ms: int = DEFAULT_PING_INTERVAL_MS
    ping_attempts: int = DEFAULT_PING_ATTEMPTS
    ping_timeout_ms: int = DEFAULT_PING_TIMEOUT_MS
    response_timeout_ms: int = DEFAULT_RESPONSE_TIMEOUT_MS
    tab_poll_ms: int = DEFAULT_TAB_POLL_MS
    tab_max_attempts: int = DEFAULT_TAB_MAX_ATTEMPTS
    tab_settle_ms: int = DEFAULT_TAB_SETTLE_MS
    generation_max_wait_ms: int = DEFAULT_GENERATION_MAX_WAIT_MS
    generation_poll_ms: int = DEFAULT_GENERATION_POLL_MS

    @classmethod
    def from_env(cls) -> "TimeoutSettings":
        values: dict[str, int] = {}
        for item in fields(cls):
            env_name = ENV_PREFIX + item.name.upper()
            raw = os.getenv(env_name, "").strip()
            if not raw:
                continue
            try:
                value = int(float(raw))
            except ValueError as exc:
                raise SystemExit(f"{env_name} must be a number, got {raw!r}") from exc
            values[item.name] = max(0, value)
        return cls(**values)
