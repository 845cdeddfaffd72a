"""Workflow report model plus persistence of report.json and runs/status.json."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from learnbridge.constants import STATUS_FAILED, STATUS_NOT_ATTEMPTED, STATUS_OK
from learnbridge.models import ActionOutcome
from learnbridge.storage import RunContext, write_json, write_status


@dataclass
class WorkflowReport:
    run_id: str = ""
    outcomes: list[ActionOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def result(self) -> str:
        if not self.outcomes:
            return "empty"
        if all(outcome.ok for outcome in self.outcomes):
            return "success"
        if any(outcome.ok for outcome in self.outcomes):
            return "partial"
        return "failed"

    @property
    def summary(self) -> str:
        counts = {STATUS_OK: 0, STATUS_FAILED: 0, STATUS_NOT_ATTEMPTED: 0}
        for outcome in self.outcomes:
            counts[outcome.status] += 1
        parts = [f"{counts[STATUS_OK]} ok", f"{counts[STATUS_FAILED]} failed"]
        if counts[STATUS_NOT_ATTEMPTED]:
            parts.append(f"{counts[STATUS_NOT_ATTEMPTED]} not attempted")
        line = f"{len(self.outcomes)} action(s): " + ", ".join(parts)
        if self.cancelled:
            line += " (cancelled)"
        return line

    def outcome(self, name: str) -> ActionOutcome | None:
        for item in self.outcomes:
            if item.name == name:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "result": self.result,
            "summary": self.summary,
            "cancelled": self.cancelled,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


def record_progress(run_ctx: RunContext | None, *, actions: list[str], current: str, index: int) -> None:
    if run_ctx is None:
        return
    run_ctx.log(f"action {index + 1}/{len(actions)}: {current}")
    write_status(
        run_id=run_ctx.run_id,
        run_dir=run_ctx.run_dir,
        actions=actions,
        result="running",
        report_path=run_ctx.report_path,
        state="running",
        current_action=current,
        step_current=index + 1,
        step_total=len(actions),
    )


def persist_report_and_status(report: WorkflowReport, run_ctx: RunContext | None, *, actions: list[str]) -> None:
    if run_ctx is None:
        return
    write_json(run_ctx.report_path, report.to_dict())
    write_status(
        run_id=run_ctx.run_id,
        run_dir=run_ctx.run_dir,
        actions=actions,
        result=report.result,
        report_path=run_ctx.report_path,
        state="completed",
    )
    run_ctx.log(f"finished: {report.summary}")


def format_report(report: WorkflowReport) -> list[str]:
    lines = []
    for outcome in report.outcomes:
        suffix = f" [{outcome.error_kind}]" if outcome.error_kind else ""
        lines.append(f"{outcome.status:>13}  {outcome.name}: {outcome.message}{suffix}")
    lines.append(report.summary)
    return lines
