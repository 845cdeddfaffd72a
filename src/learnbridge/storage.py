"""File storage helpers for workflow run artifacts."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


RUNS_DIR = Path("runs")
STATUS_PATH = RUNS_DIR / "status.json"


@dataclass(frozen=True)
class RunContext:
    run_id: str
    run_dir: Path
    bridge_log: Path
    report_path: Path

    def log(self, message: str) -> None:
        stamp = datetime.now(timezone.utc).isoformat()
        append_log(self.bridge_log, f"[{stamp}] {message}")


def create_run_context() -> RunContext:
    RUNS_DIR.mkdir(parents=True, exist_ok=True)
    run_dir: Path | None = None
    run_id = ""
    for attempt in range(100):
        base = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        suffix = f"-{attempt:02d}" if attempt else ""
        run_id = f"{base}{suffix}"
        candidate = RUNS_DIR / run_id
        if candidate.exists():
            continue
        candidate.mkdir(parents=True, exist_ok=False)
        run_dir = candidate
        break
    if run_dir is None:
        raise RuntimeError("Could not allocate unique run directory")
    return RunContext(
        run_id=run_id,
        run_dir=run_dir,
        bridge_log=run_dir / "bridge.log",
        report_path=run_dir / "report.json",
    )


def append_log(path: Path, message: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(message.rstrip() + "\n")


def write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, ensure_ascii=False)
        fh.write("\n")


def write_status(
    *,
    run_id: str,
    run_dir: Path,
    actions: list[str],
    result: str,
    report_path: Path,
    state: str = "completed",
    current_action: str | None = None,
    step_current: int | None = None,
    step_total: int | None = None,
) -> None:
    payload: dict[str, Any] = {
        "run_id": run_id,
        "run_dir": str(run_dir),
        "actions": list(actions),
        "result": result,
        "state": state,
        "report_path": str(report_path),
        "updated_at_utc": datetime.now(timezone.utc).isoformat(),
    }
    if current_action:
        payload["current_action"] = current_action
    if step_current is not None:
        payload["step_current"] = step_current
    if step_total is not None:
        payload["step_total"] = step_total
    write_json(STATUS_PATH, payload)


def status_payload() -> dict[str, Any]:
    if not STATUS_PATH.exists():
        return {"status": "no-runs"}
    with STATUS_PATH.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def latest_run_dir() -> Path | None:
    payload = status_payload()
    run_dir = payload.get("run_dir")
    if not run_dir:
        return None
    path = Path(run_dir)
    return path if path.exists() else None


def tail_lines(path: Path, line_count: int) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8") as fh:
        lines = fh.readlines()
    return [line.rstrip("\n") for line in lines[-line_count:]]
