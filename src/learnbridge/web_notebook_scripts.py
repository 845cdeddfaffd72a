"""NotebookLM page scripts: notebooks, pasted-text sources and flashcards."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from learnbridge.constants import (
    ACTION_CREATE_FLASHCARDS,
    ACTION_EXPORT_SOURCE,
    ACTION_LIST_NOTEBOOKS,
    ERR_EVENT_REJECTED,
    ERR_LOCATOR_TIMEOUT,
    ERR_REQUIRED_STEP_FAILED,
    KEY_BOOK_NAME,
    KEY_CHAPTER_NAME,
    KEY_CONTENT,
    KEY_SOURCE_NAME,
)
from learnbridge.models import StepResult
from learnbridge.web_action_script import (
    PHASE_ACTING,
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
from learnbridge.web_common import normalize_text, text_matches
from learnbridge.web_locator import (
    Semantic,
    by_attribute,
    by_text,
    css,
    find_all_now,
    find_now,
    node_text,
    spec,
    structural,
)
from learnbridge.web_step_executor import click, hover, set_checked, set_text

PROJECT_LIST = spec(structural("project-button, .project-button, welcome-page"), name="notebook list")
PROJECT_BUTTON = css("project-button")
PROJECT_TITLE = spec(
    structural(".project-button-title, [class*=project-button-title], span[id$=-title]"),
    name="notebook title",
)
PROJECT_CARD = spec(structural("mat-card, .project-button-card, .project-button-box, [role=button]"), name="notebook card")
MY_PROJECTS = spec(structural("div.my-projects-container"), name="own notebooks")
CREATE_NOTEBOOK = spec(
    structural("div.project-buttons-flow > mat-card"),
    structural("mat-card[role=button], .project-buttons-flow mat-card, .all-projects-container mat-card"),
    by_text("button", "Create new"),
    name="create notebook button",
)
NOTEBOOK_READY = spec(
    structural('section.source-panel, button[aria-label="Add source"], .add-source-button'),
    name="notebook page",
)
NOTEBOOK_NAME_INPUT = spec(
    structural("editable-project-title input, .title-container input, notebook-header input[type=text]"),
    structural("notebook-header input, page-header input"),
    name="notebook name field",
)

SOURCE_DIALOG = spec(structural("upload-dialog, mat-dialog-container"), name="add source dialog")
SOURCE_DIALOG_CLOSE = spec(
    structural("upload-dialog div.header button, mat-dialog-container div.header button"),
    by_attribute("upload-dialog button, mat-dialog-container button", "aria-label", "close"),
    name="add source dialog close button",
)
ADD_SOURCE_BUTTON = spec(
    structural('button[aria-label="Add source"], .add-source-button'),
    Semantic(role="button", label="Add source"),
    by_text("section.source-panel button", "Add"),
    name="add source button",
)
PASTED_TEXT_OPTION = spec(
    by_text("upload-dialog mat-chip, upload-dialog button, mat-dialog-container mat-chip", "Copied text"),
    by_text("upload-dialog mat-chip, upload-dialog button, mat-dialog-container button", "Paste text"),
    name="pasted text option",
)
PASTE_TEXTAREA = spec(
    structural("upload-dialog textarea, mat-dialog-container textarea"),
    structural("textarea[formcontrolname=text]"),
    name="pasted text field",
)
INSERT_BUTTON = spec(
    by_text("upload-dialog button, mat-dialog-container button", "Insert", exact=True),
    structural("upload-dialog button[type=submit], mat-dialog-container button[type=submit]"),
    name="insert button",
)

SOURCE_ITEM = css("section.source-panel .single-source-container")
SOURCE_TITLE = spec(structural(".source-title, [aria-label='Source title']"), name="source title")
SOURCE_CHECKBOX = css("section.source-panel input[type=checkbox]")
ITEM_CHECKBOX = spec(structural("input[type=checkbox]"), name="source checkbox")
SOURCE_PANEL = spec(structural("section.source-panel"), name="source panel")
SOURCE_MORE = spec(
    structural("button.source-item-more-button, button[aria-label*=More]"),
    structural("button[aria-label*=more]"),
    name="source menu button",
)
MENU_REMOVE = spec(
    by_text("div.cdk-overlay-container button, button[role=menuitem]", "Remove source"),
    by_text("div.cdk-overlay-container button, button[role=menuitem]", "Delete"),
    name="remove source menu item",
)
CONFIRM_DELETE = spec(
    by_text("mat-dialog-container button, mat-dialog-actions button", "Delete", exact=True),
    structural("mat-dialog-actions button[type=submit]"),
    name="confirm delete button",
)
RENAME_MENU_ITEM = spec(
    by_text("div.cdk-overlay-container button, button[role=menuitem], mat-menu button", "Rename", exact=True),
    name="rename menu item",
)
RENAME_INPUT = spec(
    structural("mat-dialog-container input, mat-dialog-content input"),
    structural("mat-form-field input"),
    name="rename field",
)
RENAME_CONFIRM = spec(
    by_text("mat-dialog-container button, mat-dialog-actions button", "Save", exact=True),
    by_text("mat-dialog-container button, mat-dialog-actions button", "Rename", exact=True),
    structural("mat-dialog-actions button[type=submit]"),
    name="rename confirm button",
)
SOURCE_RENAME = RenameMenu(more=SOURCE_MORE, rename=RENAME_MENU_ITEM, name_input=RENAME_INPUT, confirm=RENAME_CONFIRM)

CREATE_FLASHCARDS = spec(
    by_text("basic-create-artifact-button", "Flashcards"),
    structural("basic-create-artifact-button:nth-of-type(5)"),
    Semantic(role="button", label="Flashcards"),
    name="create flashcards button",
)
STUDIO_STATUS = spec(structural("section.studio-panel, studio-panel, .artifact-library"), name="studio panel")
GENERATING_MARKER = spec(
    by_text("artifact-library-item, .artifact-item, .artifact-title, span", "Generating"),
    name="generating marker",
)
ARTIFACT_ITEM = structural("artifact-library-item, .artifact-item")
ARTIFACT_MORE = spec(
    structural("button.artifact-more-button, button[aria-label*=More]"),
    structural("button[aria-label*=more]"),
    name="artifact menu button",
)
ARTIFACT_RENAME = RenameMenu(more=ARTIFACT_MORE, rename=RENAME_MENU_ITEM, name_input=RENAME_INPUT, confirm=RENAME_CONFIRM)


def pick_by_name(candidates: list[tuple[Any, str]], name: str) -> Any:
    """Exact title match wins; otherwise the first bidirectional substring match."""
    wanted = normalize_text(name)
    if not wanted:
        return None
    for node, title in candidates:
        if text_matches(title, wanted, exact=True):
            return node
    for node, title in candidates:
        if text_matches(title, wanted, exact=False):
            return node
    return None


async def titled_items(run: ScriptRun, item_rule: Any, title: Any) -> list[tuple[Any, str]]:
    out: list[tuple[Any, str]] = []
    for node in await find_all_now(run.page, item_rule):
        title_node = await find_now(run.page, title, root=node)
        text = await node_text(run.page, title_node if title_node is not None else node)
        out.append((node, text))
    return out


def _long_wait(run: ScriptRun) -> int:
    return run.timings.locator_timeout_ms * 2


async def open_or_create_notebook(run: ScriptRun) -> StepResult:
    name = run.text(KEY_BOOK_NAME)
    if not name:
        raise StepFailed(ERR_REQUIRED_STEP_FAILED, "no notebook name given")
    await run.require(PROJECT_LIST, timeout_ms=_long_wait(run))
    await run.settle(2)
    target = pick_by_name(await titled_items(run, PROJECT_BUTTON, PROJECT_TITLE), name)
    if target is not None:
        card = await find_now(run.page, PROJECT_CARD, root=target)
        result = await click(run.page, card if card is not None else target)
        if not result.ok:
            return result
        run.values["created"] = False
        await run.require(NOTEBOOK_READY, timeout_ms=_long_wait(run))
        return StepResult.success(f"opened notebook {name!r}")

    result = await run.click(CREATE_NOTEBOOK)
    if not result.ok:
        return result
    run.values["created"] = True
    await run.require(SOURCE_DIALOG, timeout_ms=_long_wait(run))
    await run.settle(2)
    return StepResult.success(f"created notebook for {name!r}")


async def close_auto_dialog(run: ScriptRun) -> StepResult:
    result = await run.click(SOURCE_DIALOG_CLOSE)
    if not result.ok:
        return result
    await run.wait_gone(SOURCE_DIALOG)
    await run.settle()
    return StepResult.success("closed add source dialog")


async def name_new_notebook(run: ScriptRun) -> StepResult:
    name = run.text(KEY_BOOK_NAME)
    node = await run.require(NOTEBOOK_NAME_INPUT)
    result = await set_text(run.page, node, name, settle_ms=run.timings.settle_ms)
    if not result.ok:
        return result
    # The title is saved when the field loses focus.
    await run.page.blur(node)
    await run.settle(2)
    await run.require(NOTEBOOK_READY, timeout_ms=_long_wait(run))
    return StepResult.success(f"named notebook {name!r}")


async def remove_existing_source(run: ScriptRun) -> StepResult:
    name = run.text(KEY_SOURCE_NAME)
    existing = pick_by_name(await titled_items(run, SOURCE_ITEM, SOURCE_TITLE), name)
    if existing is None:
        run.values["replaced"] = False
        return StepResult.success()
    await hover(run.page, existing)
    more = await run.require(SOURCE_MORE, root=existing)
    result = await click(run.page, await clickable(run.page, more))
    if not result.ok:
        return result
    await run.settle(0.6)
    result = await run.click(MENU_REMOVE)
    if not result.ok:
        return result
    result = await run.click(CONFIRM_DELETE)
    if not result.ok:
        return result
    await run.settle()
    still_there = pick_by_name(await titled_items(run, SOURCE_ITEM, SOURCE_TITLE), name)
    if still_there is existing:
        return StepResult.failure(ERR_EVENT_REJECTED, f"source {name!r} still listed after delete")
    run.values["replaced"] = True
    return StepResult.success(f"removed previous source {name!r}")


async def open_add_source(run: ScriptRun) -> StepResult:
    result = await run.click(ADD_SOURCE_BUTTON)
    if not result.ok:
        return result
    await run.require(SOURCE_DIALOG)
    return StepResult.success()


async def choose_pasted_text(run: ScriptRun) -> StepResult:
    result = await run.click(PASTED_TEXT_OPTION)
    await run.settle(0.6)
    return result


async def enter_source_text(run: ScriptRun) -> StepResult:
    content = str(run.payload.get(KEY_CONTENT, "") or "")
    if not content.strip():
        raise StepFailed(ERR_REQUIRED_STEP_FAILED, "no content to paste")
    return await run.set_text(PASTE_TEXTAREA, content)


async def insert_source(run: ScriptRun) -> StepResult:
    return await run.click(INSERT_BUTTON)


async def wait_dialog_closed(run: ScriptRun) -> StepResult:
    if await run.wait_gone(SOURCE_DIALOG, timeout_ms=_long_wait(run)):
        return StepResult.success()
    return StepResult.failure(ERR_LOCATOR_TIMEOUT, "add source dialog still open")


async def rename_new_source(run: ScriptRun) -> StepResult:
    outcome = await run.locate(spec(SOURCE_ITEM, name="new source"), timeout_ms=_long_wait(run))
    if not outcome.ok:
        return StepResult.failure(ERR_LOCATOR_TIMEOUT, "no sources listed after insert")
    # Newest source is listed first.
    return await rename_item(run, outcome.found, SOURCE_RENAME, run.text(KEY_SOURCE_NAME))


async def ensure_notebook_open(run: ScriptRun) -> StepResult:
    if await find_now(run.page, NOTEBOOK_READY) is not None:
        return StepResult.success("already inside a notebook")
    if not run.text(KEY_BOOK_NAME):
        raise StepFailed(ERR_REQUIRED_STEP_FAILED, "not inside a notebook and no notebook name given")
    return await open_or_create_notebook(run)


async def select_only_source(run: ScriptRun) -> StepResult:
    name = run.text(KEY_SOURCE_NAME)
    await run.require(SOURCE_PANEL)
    boxes = await find_all_now(run.page, SOURCE_CHECKBOX)
    if not boxes:
        return StepResult.failure(ERR_LOCATOR_TIMEOUT, "no source checkboxes found")
    for box in boxes:
        result = await set_checked(run.page, box, False, settle_ms=50)
        if not result.ok:
            return result

    labelled = [(box, normalize_text(await run.page.attribute(box, "aria-label"))) for box in boxes]
    target = pick_by_name(labelled, name)
    if target is None:
        item = pick_by_name(await titled_items(run, SOURCE_ITEM, SOURCE_TITLE), name)
        if item is not None:
            target = await find_now(run.page, ITEM_CHECKBOX, root=item)
    picked = "named source"
    if target is None:
        # Newest source is listed first in the selection panel.
        target = boxes[0]
        picked = "most recent source"
    result = await set_checked(run.page, target, True, settle_ms=200)
    if not result.ok:
        return result
    return StepResult.success(f"selected {picked}")


async def click_create_flashcards(run: ScriptRun) -> StepResult:
    return await run.click(CREATE_FLASHCARDS)


async def wait_generation(run: ScriptRun) -> StepResult:
    await run.settle()
    region = await find_now(run.page, STUDIO_STATUS)
    max_wait = run.timings.generation_max_wait_ms
    poll_s = max(1, run.timings.generation_poll_ms) / 1000.0
    started = time.monotonic()
    while True:
        if await find_now(run.page, GENERATING_MARKER, root=region) is None:
            waited = int((time.monotonic() - started) * 1000)
            return StepResult.success(f"generation finished after {waited}ms")
        if (time.monotonic() - started) * 1000 >= max_wait:
            return StepResult.success(f"still generating after {max_wait}ms; continuing")
        await asyncio.sleep(poll_s)


async def rename_flashcards(run: ScriptRun) -> StepResult:
    outcome = await run.locate(spec(ARTIFACT_ITEM, name="new flashcards"), timeout_ms=_long_wait(run))
    if not outcome.ok:
        return StepResult.failure(ERR_LOCATOR_TIMEOUT, "no flashcard artifact listed")
    return await rename_item(run, outcome.found, ARTIFACT_RENAME, run.text(KEY_CHAPTER_NAME))


async def wait_notebook_list(run: ScriptRun) -> StepResult:
    await run.require(PROJECT_LIST, timeout_ms=_long_wait(run))
    await run.settle(2)
    return StepResult.success()


async def collect_notebook_names(run: ScriptRun) -> StepResult:
    names: list[str] = []
    container = await find_now(run.page, MY_PROJECTS)
    if container is not None:
        for button in await find_all_now(run.page, PROJECT_BUTTON, root=container):
            title_node = await find_now(run.page, PROJECT_TITLE, root=button)
            if title_node is not None:
                title = await node_text(run.page, title_node)
            else:
                title = await node_text(run.page, button)
                if "New notebook" in title or "Create" in title:
                    continue
            if title:
                names.append(title)
    run.values["notebooks"] = names
    return StepResult.success()


def _created(run: ScriptRun) -> bool:
    return bool(run.values.get("created"))


def _has(key: str):
    return lambda run: bool(run.text(key))


def _export_summary(run: ScriptRun) -> str:
    book = run.text(KEY_BOOK_NAME)
    source = run.text(KEY_SOURCE_NAME)
    message = f"Exported to notebook {book!r}"
    if source:
        message += f" as source {source!r}"
    if run.values.get("replaced"):
        message += " (replaced previous copy)"
    return message


def export_source_script() -> ActionScript:
    return ActionScript(
        ACTION_EXPORT_SOURCE,
        [
            Step("open notebook", open_or_create_notebook, phase=PHASE_LOCATING),
            Step("close add source dialog", close_auto_dialog, required=False, when=_created),
            Step("name notebook", name_new_notebook, when=_created),
            Step("remove existing source", remove_existing_source, when=_has(KEY_SOURCE_NAME)),
            Step("open add source", open_add_source),
            Step("choose pasted text", choose_pasted_text),
            Step("enter text", enter_source_text),
            Step("insert source", insert_source),
            Step("wait for dialog", wait_dialog_closed, required=False, phase=PHASE_CLEANUP),
            Step("rename source", rename_new_source, required=False, phase=PHASE_CLEANUP, when=_has(KEY_SOURCE_NAME)),
        ],
        summary=_export_summary,
        result_data=lambda run: {
            "notebook": run.text(KEY_BOOK_NAME),
            "created": _created(run),
            "source": run.text(KEY_SOURCE_NAME),
            "replaced": bool(run.values.get("replaced")),
        },
    )


def flashcards_script() -> ActionScript:
    return ActionScript(
        ACTION_CREATE_FLASHCARDS,
        [
            Step("open notebook", ensure_notebook_open, phase=PHASE_LOCATING),
            Step("select source", select_only_source, required=False, when=_has(KEY_SOURCE_NAME)),
            Step("create flashcards", click_create_flashcards),
            Step("wait for generation", wait_generation),
            Step("rename flashcards", rename_flashcards, required=False, phase=PHASE_CLEANUP, when=_has(KEY_CHAPTER_NAME)),
        ],
        summary=lambda run: "Flashcards created",
    )


def list_notebooks_script() -> ActionScript:
    return ActionScript(
        ACTION_LIST_NOTEBOOKS,
        [
            Step("wait for notebook list", wait_notebook_list, phase=PHASE_LOCATING),
            Step("collect names", collect_notebook_names, phase=PHASE_ACTING),
        ],
        summary=lambda run: f"Found {len(run.values.get('notebooks', []))} notebooks",
        result_data=lambda run: {"notebooks": list(run.values.get("notebooks", []))},
    )


def notebook_scripts() -> dict[str, ActionScript]:
    scripts = (export_source_script(), flashcards_script(), list_notebooks_script())
    return {script.name: script for script in scripts}
