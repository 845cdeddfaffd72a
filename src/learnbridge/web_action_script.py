"""Action Script engine: ordered required/optional steps over one page."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from learnbridge.config import TimeoutSettings
from learnbridge.constants import ERR_LOCATOR_TIMEOUT, ERR_OPTIONAL_STEP_FAILED, ERR_REQUIRED_STEP_FAILED
from learnbridge.models import ActionResponse, StepResult, WaitOutcome
from learnbridge.web_locator import LocatorSpec, await_disappearance, css, locate
from learnbridge.web_step_executor import click, hover, set_text


class ScriptState(str, Enum):
    IDLE = "idle"
    LOCATING = "locating"
    ACTING = "acting"
    OPTIONAL_CLEANUP = "optional-cleanup"
    DONE = "done"
    FAILED = "failed"


PHASE_LOCATING = ScriptState.LOCATING
PHASE_ACTING = ScriptState.ACTING
PHASE_CLEANUP = ScriptState.OPTIONAL_CLEANUP

_BUTTON = css("button")


class StepFailed(RuntimeError):
    def __init__(self, error_kind: str, detail: str) -> None:
        super().__init__(detail)
        self.error_kind = error_kind
        self.detail = detail


StepFn = Callable[["ScriptRun"], Awaitable[Optional[StepResult]]]


@dataclass(frozen=True)
class Step:
    name: str
    run: StepFn
    required: bool = True
    phase: ScriptState = PHASE_ACTING
    when: Optional[Callable[["ScriptRun"], bool]] = None


@dataclass
class ScriptRun:
    page: Any
    payload: dict[str, Any]
    timings: TimeoutSettings
    values: dict[str, Any] = field(default_factory=dict)
    notes: list[str] = field(default_factory=list)
    warnings: list[dict[str, str]] = field(default_factory=list)
    history: list[ScriptState] = field(default_factory=lambda: [ScriptState.IDLE])

    @property
    def state(self) -> ScriptState:
        return self.history[-1]

    def transition(self, state: ScriptState) -> None:
        if self.state in (ScriptState.DONE, ScriptState.FAILED):
            raise RuntimeError(f"Script already finished in state {self.state.value}")
        if state != self.state:
            self.history.append(state)

    def note(self, message: str) -> None:
        self.notes.append(message)

    def text(self, key: str) -> str:
        return str(self.payload.get(key, "") or "").strip()

    async def locate(self, locator: LocatorSpec, *, timeout_ms: int | None = None, root: Any = None) -> WaitOutcome:
        return await locate(
            self.page,
            locator,
            timeout_ms=self.timings.locator_timeout_ms if timeout_ms is None else timeout_ms,
            poll_interval_ms=self.timings.poll_interval_ms,
            grace_ms=self.timings.reactive_grace_ms,
            root=root,
        )

    async def require(self, locator: LocatorSpec, *, timeout_ms: int | None = None, root: Any = None) -> Any:
        outcome = await self.locate(locator, timeout_ms=timeout_ms, root=root)
        if not outcome.ok:
            raise StepFailed(ERR_LOCATOR_TIMEOUT, f"{locator.name or 'target'} not found after {outcome.elapsed_ms}ms")
        return outcome.found

    async def click(self, locator: LocatorSpec, *, timeout_ms: int | None = None, root: Any = None) -> StepResult:
        node = await self.require(locator, timeout_ms=timeout_ms, root=root)
        return await click(self.page, node)

    async def set_text(self, locator: LocatorSpec, value: str, *, timeout_ms: int | None = None) -> StepResult:
        node = await self.require(locator, timeout_ms=timeout_ms)
        return await set_text(self.page, node, value, settle_ms=self.timings.settle_ms)

    async def settle(self, factor: float = 1.0) -> None:
        await asyncio.sleep(max(0, self.timings.settle_ms) * factor / 1000.0)

    async def wait_gone(self, locator: LocatorSpec, *, timeout_ms: int | None = None) -> bool:
        return await await_disappearance(
            self.page,
            locator,
            timeout_ms=self.timings.disappear_timeout_ms if timeout_ms is None else timeout_ms,
            poll_interval_ms=self.timings.disappear_poll_ms,
        )


@dataclass(frozen=True)
class RenameMenu:
    more: LocatorSpec
    rename: LocatorSpec
    name_input: LocatorSpec
    confirm: LocatorSpec


async def rename_item(run: ScriptRun, item: Any, menu: RenameMenu, new_name: str) -> StepResult:
    """Open an item's overflow menu, choose rename, type the name and commit."""
    await hover(run.page, item)
    more = await run.require(menu.more, root=item)
    result = await click(run.page, await clickable(run.page, more))
    if not result.ok:
        return result
    await run.settle(0.6)
    result = await run.click(menu.rename)
    if not result.ok:
        return result
    await run.settle()
    result = await run.set_text(menu.name_input, new_name)
    if not result.ok:
        return result
    result = await run.click(menu.confirm)
    if not result.ok:
        return result
    await run.settle()
    return StepResult.success(f"renamed to {new_name!r}")


async def clickable(page: Any, node: Any) -> Any:
    button = await page.closest(node, _BUTTON)
    return button if button is not None else node


class ActionScript:
    def __init__(
        self,
        name: str,
        steps: list[Step],
        *,
        summary: Callable[[ScriptRun], str] | None = None,
        result_data: Callable[[ScriptRun], Any] | None = None,
    ) -> None:
        if not steps:
            raise ValueError(f"Action script {name} has no steps")
        self.name = name
        self.steps = tuple(steps)
        self._summary = summary
        self._result_data = result_data
        self.last_run: ScriptRun | None = None

    async def run(self, page: Any, payload: dict[str, Any], *, timings: TimeoutSettings | None = None) -> ActionResponse:
        run = ScriptRun(page=page, payload=dict(payload or {}), timings=timings or TimeoutSettings())
        self.last_run = run
        for step in self.steps:
            if step.when is not None and not step.when(run):
                continue
            run.transition(step.phase)
            result = await self._run_step(step, run)
            if result.ok:
                if result.detail:
                    run.note(f"{step.name}: {result.detail}")
                continue
            if step.required:
                run.transition(ScriptState.FAILED)
                return ActionResponse.failed(
                    f"{self.name}: step '{step.name}' failed: {result.detail}",
                    error_kind=ERR_REQUIRED_STEP_FAILED,
                    data={
                        "step": step.name,
                        "cause": result.error_kind,
                        "history": [state.value for state in run.history],
                    },
                )
            run.warnings.append({"step": step.name, "error_kind": ERR_OPTIONAL_STEP_FAILED, "detail": result.detail})
        run.transition(ScriptState.DONE)
        return ActionResponse.ok(message=self._message(run), data=self._data(run))

    @staticmethod
    async def _run_step(step: Step, run: ScriptRun) -> StepResult:
        try:
            result = await step.run(run)
        except StepFailed as exc:
            return StepResult.failure(exc.error_kind, exc.detail)
        except Exception as exc:
            kind = ERR_REQUIRED_STEP_FAILED if step.required else ERR_OPTIONAL_STEP_FAILED
            return StepResult.failure(kind, str(exc) or type(exc).__name__)
        if result is None:
            return StepResult.success()
        return result

    def _message(self, run: ScriptRun) -> str:
        message = self._summary(run) if self._summary else f"{self.name} completed"
        if run.warnings:
            skipped = "; ".join(f"{item['step']} skipped ({item['detail']})" for item in run.warnings)
            message = f"{message}. Warnings: {skipped}"
        return message

    def _data(self, run: ScriptRun) -> Any:
        data = self._result_data(run) if self._result_data else None
        if not run.warnings:
            return data
        if data is None:
            data = {}
        if isinstance(data, dict):
            data = dict(data)
            data["warnings"] = list(run.warnings)
        return data
