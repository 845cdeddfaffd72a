"""Data models and strict parsing for the page-agent wire contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from learnbridge.constants import (
    ALLOWED_OUTCOME_STATUSES,
    REQUEST_ACTION_KEY,
    RESPONSE_KEYS,
    STATUS_OK,
)


@dataclass(frozen=True)
class ActionRequest:
    action: str
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, message: dict[str, Any]) -> "ActionRequest":
        if not isinstance(message, dict):
            raise ValueError("request must be a JSON object")
        action = message.get(REQUEST_ACTION_KEY)
        if not isinstance(action, str) or not action.strip():
            raise ValueError(f"'{REQUEST_ACTION_KEY}' must be a non-empty string")
        payload = {k: v for k, v in message.items() if k != REQUEST_ACTION_KEY}
        return cls(action=action.strip(), payload=payload)

    def to_dict(self) -> dict[str, Any]:
        if REQUEST_ACTION_KEY in self.payload:
            raise ValueError(f"payload must not redefine '{REQUEST_ACTION_KEY}'")
        return {REQUEST_ACTION_KEY: self.action, **self.payload}


@dataclass(frozen=True)
class ActionResponse:
    success: bool
    message: str = ""
    error: str = ""
    data: Any = None

    @classmethod
    def ok(cls, message: str = "", data: Any = None) -> "ActionResponse":
        return cls(success=True, message=message, data=data)

    @classmethod
    def failed(cls, error: str, *, error_kind: str = "", data: Any = None) -> "ActionResponse":
        if error_kind:
            if isinstance(data, dict):
                merged = dict(data)
            else:
                merged = {} if data is None else {"value": data}
            merged["error_kind"] = error_kind
            data = merged
        return cls(success=False, error=error, data=data)

    @property
    def error_kind(self) -> str:
        if isinstance(self.data, dict):
            return str(self.data.get("error_kind", "") or "")
        return ""

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ActionResponse":
        if not isinstance(payload, dict):
            raise ValueError("response must be a JSON object")
        extra = sorted(set(payload.keys()) - set(RESPONSE_KEYS))
        if extra:
            raise ValueError(f"Invalid response keys. extra={extra}")
        success = payload.get("success")
        if not isinstance(success, bool):
            raise ValueError("'success' must be a boolean")
        return cls(
            success=success,
            message=_optional_str(payload, "message"),
            error=_optional_str(payload, "error"),
            data=payload.get("data"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        if self.message:
            out["message"] = self.message
        if self.error:
            out["error"] = self.error
        if self.data is not None:
            out["data"] = self.data
        return out


@dataclass(frozen=True)
class StepResult:
    ok: bool
    error_kind: str = ""
    detail: str = ""

    @classmethod
    def success(cls, detail: str = "") -> "StepResult":
        return cls(ok=True, detail=detail)

    @classmethod
    def failure(cls, error_kind: str, detail: str) -> "StepResult":
        return cls(ok=False, error_kind=error_kind, detail=detail)


@dataclass(frozen=True)
class WaitOutcome:
    found: Any
    elapsed_ms: int

    @property
    def ok(self) -> bool:
        return self.found is not None


@dataclass(frozen=True)
class ActionOutcome:
    name: str
    status: str
    message: str
    error_kind: str = ""

    def __post_init__(self) -> None:
        if self.status not in ALLOWED_OUTCOME_STATUSES:
            raise ValueError(
                f"Invalid status '{self.status}'. Must be one of "
                f"{sorted(ALLOWED_OUTCOME_STATUSES)}"
            )

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def to_dict(self) -> dict[str, Any]:
        out = {"name": self.name, "ok": self.ok, "status": self.status, "message": self.message}
        if self.error_kind:
            out["error_kind"] = self.error_kind
        return out


def _optional_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value
