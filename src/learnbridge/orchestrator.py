"""Sequential workflow execution across local steps and browser tabs."""

from __future__ import annotations

import asyncio
from typing import Any

from learnbridge.config import TimeoutSettings
from learnbridge.constants import (
    ERR_CHANNEL_LOST,
    ERR_DEPENDENCY_FAILED,
    ERR_HANDSHAKE_TIMEOUT,
    ERR_RESPONSE_TIMEOUT,
    STATUS_FAILED,
    STATUS_NOT_ATTEMPTED,
    STATUS_OK,
)
from learnbridge.context_bridge import BridgeError, ContextBridge
from learnbridge.models import ActionOutcome
from learnbridge.notes_client import NotesApiError
from learnbridge.reporting import WorkflowReport, persist_report_and_status, record_progress
from learnbridge.rewrite_client import RewriteError
from learnbridge.storage import RunContext
from learnbridge.web_tabs import TabClosedError, Tabs, wait_for_tab_ready
from learnbridge.workflow_actions import (
    HARD,
    ActionFailed,
    ActionServices,
    WorkflowAction,
    WorkflowRun,
    default_actions,
)

_RETRYABLE = {ERR_CHANNEL_LOST, ERR_HANDSHAKE_TIMEOUT, ERR_RESPONSE_TIMEOUT}


class WorkflowOrchestrator:
    def __init__(
        self,
        bridge: ContextBridge,
        tabs: Tabs | None,
        actions: dict[str, WorkflowAction] | None = None,
        *,
        services: ActionServices | None = None,
        timings: TimeoutSettings | None = None,
        run_ctx: RunContext | None = None,
    ) -> None:
        self.bridge = bridge
        self.tabs = tabs
        self.actions = actions if actions is not None else default_actions()
        self.services = services or ActionServices()
        self.timings = timings or TimeoutSettings()
        self.run_ctx = run_ctx
        self._cancelled = False

    def cancel(self) -> None:
        """Do not start another action; the one in flight runs to completion."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def plan(self, selected: list[str]) -> list[str]:
        unknown = [name for name in selected if name not in self.actions]
        if unknown:
            raise ValueError(f"Unknown workflow action(s): {', '.join(unknown)}")
        order: list[str] = []
        for name in selected:
            if name not in order:
                order.append(name)
        return order

    async def execute(self, selected: list[str], shared_context: WorkflowRun | dict[str, Any]) -> WorkflowReport:
        order = self.plan(selected)
        if isinstance(shared_context, WorkflowRun):
            run = shared_context
            run.selected = list(order)
        else:
            run = WorkflowRun(selected=list(order), inputs=dict(shared_context))
        report = WorkflowReport(run_id=self.run_ctx.run_id if self.run_ctx else "")
        for index, name in enumerate(order):
            action = self.actions[name]
            if self._cancelled:
                report.cancelled = True
                report.outcomes.append(ActionOutcome(name=name, status=STATUS_NOT_ATTEMPTED, message="cancelled"))
                continue
            blocked = self._blocked_reason(action, report, order)
            if blocked:
                report.outcomes.append(
                    ActionOutcome(
                        name=name,
                        status=STATUS_NOT_ATTEMPTED,
                        message=blocked,
                        error_kind=ERR_DEPENDENCY_FAILED,
                    )
                )
                self._log(f"{name}: not attempted, {blocked}")
                continue
            record_progress(self.run_ctx, actions=order, current=name, index=index)
            if action.is_local:
                outcome = await self._run_local(action, run)
            else:
                outcome = await self._run_in_tab(action, run)
            self._log(f"{name}: {outcome.status} {outcome.message}")
            report.outcomes.append(outcome)
        persist_report_and_status(report, self.run_ctx, actions=order)
        return report

    def _blocked_reason(self, action: WorkflowAction, report: WorkflowReport, order: list[str]) -> str:
        for predecessor, kind in action.depends_on:
            if kind != HARD or predecessor not in order:
                continue
            outcome = report.outcome(predecessor)
            if outcome is None:
                return f"{predecessor} is ordered after {action.name}"
            if not outcome.ok:
                return f"{predecessor} did not succeed"
        return ""

    async def _run_local(self, action: WorkflowAction, run: WorkflowRun) -> ActionOutcome:
        try:
            message = await asyncio.to_thread(action.local, run, self.services)
        except ActionFailed as exc:
            return _failed(action, str(exc), exc.error_kind)
        except (NotesApiError, RewriteError, ValueError, OSError) as exc:
            return _failed(action, str(exc))
        return ActionOutcome(name=action.name, status=STATUS_OK, message=message)

    async def _run_in_tab(self, action: WorkflowAction, run: WorkflowRun) -> ActionOutcome:
        try:
            request = action.request(run)
            tab_id = await self._tab_for(action, run)
            response = await self.bridge.send(tab_id, request)
        except ActionFailed as exc:
            return _failed(action, str(exc), exc.error_kind)
        except TabClosedError as exc:
            return _failed(action, f"{exc}; please retry", ERR_CHANNEL_LOST)
        except BridgeError as exc:
            message = f"{exc}; please retry" if exc.kind in _RETRYABLE else str(exc)
            return _failed(action, message, exc.kind)
        if not response.success:
            return _failed(action, response.error or f"{action.label} failed", response.error_kind)
        if action.tab_artifact:
            run.artifacts[action.tab_artifact] = tab_id
        if action.on_success is not None:
            action.on_success(run, response)
        return ActionOutcome(name=action.name, status=STATUS_OK, message=response.message or f"{action.label} done")

    async def _tab_for(self, action: WorkflowAction, run: WorkflowRun) -> str:
        tabs = self.tabs
        if tabs is None:
            raise ActionFailed(f"{action.label} needs a browser session")
        url = action.url(run)
        reused = run.artifacts.get(action.reuse_tab) if action.reuse_tab else None
        if reused:
            try:
                await self._ready(tabs, str(reused))
                return str(reused)
            except TabClosedError:
                self._log(f"{action.name}: tab {reused} is gone; opening a new one")
                self.bridge.forget(str(reused))
        tab_id = None if action.open_new else await tabs.find(url)
        if tab_id is None:
            self._log(f"{action.name}: opening {url}")
            tab_id = await tabs.open(url)
        if not await self._ready(tabs, tab_id):
            self._log(f"{action.name}: tab {tab_id} not complete after {self.timings.tab_max_attempts} polls")
        return tab_id

    async def _ready(self, tabs: Tabs, tab_id: str) -> bool:
        return await wait_for_tab_ready(
            tabs,
            tab_id,
            poll_ms=self.timings.tab_poll_ms,
            max_attempts=self.timings.tab_max_attempts,
            settle_ms=self.timings.tab_settle_ms,
        )

    def _log(self, message: str) -> None:
        if self.run_ctx is not None:
            self.run_ctx.log(message)


def _failed(action: WorkflowAction, message: str, error_kind: str = "") -> ActionOutcome:
    return ActionOutcome(name=action.name, status=STATUS_FAILED, message=message, error_kind=error_kind)
