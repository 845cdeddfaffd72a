"""Gemini chat page script: send one message and label the conversation."""

from __future__ import annotations

from learnbridge.constants import (
    ACTION_SEND_CHAT,
    DEFAULT_CHAT_MODEL,
    ERR_LOCATOR_TIMEOUT,
    ERR_REQUIRED_STEP_FAILED,
    KEY_BOOK_NAME,
    KEY_CHAPTER_NAME,
    KEY_CONTENT,
    KEY_MODEL,
)
from learnbridge.models import StepResult
from learnbridge.web_action_script import (
    PHASE_CLEANUP,
    PHASE_LOCATING,
    ActionScript,
    RenameMenu,
    ScriptRun,
    Step,
    StepFailed,
    clickable,
    rename_item,
)
from learnbridge.web_locator import Semantic, by_text, find_now, spec, structural
from learnbridge.web_step_executor import click, set_text

INPUT_CONTAINER = spec(structural("input-container"), name="chat input container")
MODEL_MENU = spec(
    structural('button[data-test-id="bard-mode-menu-button"]'),
    structural("div.trailing-actions-wrapper button span.mdc-button__label span"),
    name="model menu button",
)
MODEL_OPTIONS = "[data-test-id*=option], button[role=menuitem], div[role=menuitem]"
INPUT_AREA = spec(
    structural("input-container > div p"),
    Semantic(label="Enter a prompt here"),
    structural("rich-textarea div p, rich-textarea p"),
    name="chat input area",
)
RICH_TEXTAREA = spec(
    structural("input-container rich-textarea"),
    structural("input-area-v2 rich-textarea, rich-textarea"),
    name="chat text editor",
)
EDITABLE = spec(structural('div[contenteditable="true"]'), structural("div"), name="editable region")
SEND_BUTTON = spec(
    Semantic(role="button", label="Send message"),
    structural("div.trailing-actions-wrapper div.mat-mdc-tooltip-trigger mat-icon"),
    structural("div.trailing-actions-wrapper button mat-icon"),
    name="send button",
)
CONVERSATION = spec(
    # Newest conversation is listed first.
    structural("conversations-list div.conversation"),
    structural("conversations-list div.conversation.selected"),
    name="current conversation",
)
CONVERSATION_RENAME = RenameMenu(
    more=spec(
        structural("div.conversation-actions-container button.conversation-actions-menu-button"),
        structural('button[data-test-id="actions-menu-button"]'),
        structural('button[aria-label="Open menu for conversation actions."]'),
        name="conversation menu button",
    ),
    rename=spec(
        by_text("div.cdk-overlay-container button, mat-menu button, button[role=menuitem]", "Rename", exact=True),
        name="rename menu item",
    ),
    name_input=spec(
        structural("edit-title-dialog input"),
        structural("mat-dialog-content input, mat-form-field input"),
        name="conversation title field",
    ),
    confirm=spec(
        by_text("edit-title-dialog button, mat-dialog-actions button", "Rename", exact=True),
        structural("edit-title-dialog button[type=submit], mat-dialog-actions button[type=submit]"),
        name="confirm rename button",
    ),
)


def conversation_name(book: str, chapter: str) -> str:
    return f"\U0001F4D6 {book} - {chapter}"


async def wait_input_container(run: ScriptRun) -> StepResult:
    await run.require(INPUT_CONTAINER, timeout_ms=run.timings.locator_timeout_ms * 2)
    await run.settle(2)
    return StepResult.success()


async def select_model(run: ScriptRun) -> StepResult:
    model = run.text(KEY_MODEL) or DEFAULT_CHAT_MODEL
    menu = await run.require(MODEL_MENU)
    result = await click(run.page, await clickable(run.page, menu))
    if not result.ok:
        return result
    await run.settle()
    option = spec(by_text(MODEL_OPTIONS, model), name=f"model option {model}")
    result = await run.click(option)
    if not result.ok:
        return result
    await run.settle()
    return StepResult.success(f"model {model!r} selected")


async def focus_input(run: ScriptRun) -> StepResult:
    result = await run.click(INPUT_AREA)
    await run.settle()
    return result


async def set_message(run: ScriptRun) -> StepResult:
    content = str(run.payload.get(KEY_CONTENT, "") or "")
    if not content.strip():
        raise StepFailed(ERR_REQUIRED_STEP_FAILED, "no message content")
    host = await run.require(RICH_TEXTAREA)
    editable = await find_now(run.page, EDITABLE, root=host)
    return await set_text(run.page, editable if editable is not None else host, content, settle_ms=run.timings.settle_ms)


async def send_message(run: ScriptRun) -> StepResult:
    node = await run.require(SEND_BUTTON)
    result = await click(run.page, await clickable(run.page, node))
    if result.ok:
        await run.settle(2)
    return result


async def rename_conversation(run: ScriptRun) -> StepResult:
    name = conversation_name(run.text(KEY_BOOK_NAME), run.text(KEY_CHAPTER_NAME))
    # The new conversation needs time to reach the top of the history list.
    await run.settle(4)
    outcome = await run.locate(CONVERSATION, timeout_ms=run.timings.locator_timeout_ms * 2)
    if not outcome.ok:
        return StepResult.failure(ERR_LOCATOR_TIMEOUT, "conversation list entry not found")
    result = await rename_item(run, outcome.found, CONVERSATION_RENAME, name)
    if result.ok:
        run.values["conversation"] = name
    return result


def _labelled(run: ScriptRun) -> bool:
    return bool(run.text(KEY_BOOK_NAME) and run.text(KEY_CHAPTER_NAME))


def _summary(run: ScriptRun) -> str:
    name = run.values.get("conversation")
    if name:
        return f"Message sent; conversation renamed to {name!r}"
    return "Message sent"


def send_chat_script() -> ActionScript:
    return ActionScript(
        ACTION_SEND_CHAT,
        [
            Step("wait for chat input", wait_input_container, phase=PHASE_LOCATING),
            Step("select model", select_model, required=False),
            Step("focus input", focus_input),
            Step("set message", set_message),
            Step("send message", send_message),
            Step("rename conversation", rename_conversation, required=False, phase=PHASE_CLEANUP, when=_labelled),
        ],
        summary=_summary,
        result_data=lambda run: {"conversation": run.values.get("conversation", "")},
    )


def chat_scripts() -> dict[str, ActionScript]:
    script = send_chat_script()
    return {script.name: script}
