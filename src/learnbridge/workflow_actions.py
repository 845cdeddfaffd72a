"""The five user-facing workflow actions and their dependency declarations.

Local actions run in the controller and call the rewrite and notes APIs.
Tab actions describe which site to open and which request to send to the
page agent living in that tab; the orchestrator does the driving.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from learnbridge.config import WorkflowConfig
from learnbridge.constants import (
    ACTION_CREATE_FLASHCARDS,
    ACTION_EXPORT_SOURCE,
    ACTION_SEND_CHAT,
    CHAT_HOME_URL,
    DEFAULT_CHAT_MODEL,
    ERR_REQUIRED_STEP_FAILED,
    KEY_BOOK_NAME,
    KEY_CHAPTER_NAME,
    KEY_CONTENT,
    KEY_MODEL,
    KEY_SOURCE_NAME,
    NOTEBOOK_HOME_URL,
    WORKFLOW_ACTION_ORDER,
    WORKFLOW_ADD_TO_NOTEBOOK,
    WORKFLOW_COPY_TO_NOTES,
    WORKFLOW_GENERATE_FLASHCARDS,
    WORKFLOW_PROCESS_HIGHLIGHTS,
    WORKFLOW_SEND_TO_CHAT,
)
from learnbridge.markdown_blocks import markdown_to_blocks
from learnbridge.models import ActionRequest, ActionResponse
from learnbridge.notes_client import NotesClient, database_id_from_url, page_url
from learnbridge.rewrite_client import RewriteClient

HARD = "hard"
WEAK = "weak"

INPUT_BOOK = "book"
INPUT_CHAPTER = "chapter"
INPUT_HIGHLIGHTS = "highlights"
INPUT_NOTEBOOK_URL = "notebook_url"
INPUT_CHAT_URL = "chat_url"
INPUT_MODEL = "model"

ARTIFACT_PROCESSED = "processed"
ARTIFACT_NOTES_URL = "notes_url"
ARTIFACT_NOTEBOOK_TAB = "notebook_tab"
ARTIFACT_CHAT_TAB = "chat_tab"


class ActionFailed(RuntimeError):
    def __init__(self, message: str, error_kind: str = ERR_REQUIRED_STEP_FAILED) -> None:
        super().__init__(message)
        self.error_kind = error_kind


@dataclass
class WorkflowRun:
    selected: list[str]
    inputs: dict[str, Any] = field(default_factory=dict)
    artifacts: dict[str, Any] = field(default_factory=dict)

    def text(self, key: str) -> str:
        return str(self.inputs.get(key, "") or "").strip()

    def content(self) -> str:
        """Best available text: the rewritten highlights, else the raw ones."""
        processed = str(self.artifacts.get(ARTIFACT_PROCESSED, "") or "").strip()
        return processed or self.text(INPUT_HIGHLIGHTS)


@dataclass
class ActionServices:
    rewrite: RewriteClient | None = None
    notes: NotesClient | None = None
    notes_database_url: str = ""
    log: Callable[[str], None] = lambda message: None

    @classmethod
    def from_config(cls, config: WorkflowConfig, log: Callable[[str], None] | None = None) -> "ActionServices":
        return cls(
            rewrite=RewriteClient(config.rewrite_api_key) if config.rewrite_api_key else None,
            notes=NotesClient(config.notes_token) if config.notes_token else None,
            notes_database_url=config.notes_database_url,
            log=log or (lambda message: None),
        )


LocalRunner = Callable[[WorkflowRun, ActionServices], str]


@dataclass(frozen=True)
class WorkflowAction:
    name: str
    label: str
    depends_on: tuple[tuple[str, str], ...] = ()
    local: LocalRunner | None = None
    url: Callable[[WorkflowRun], str] | None = None
    request: Callable[[WorkflowRun], ActionRequest] | None = None
    reuse_tab: str = ""
    open_new: bool = False
    tab_artifact: str = ""
    on_success: Callable[[WorkflowRun, ActionResponse], None] | None = None

    @property
    def is_local(self) -> bool:
        return self.local is not None


def process_highlights(run: WorkflowRun, services: ActionServices) -> str:
    if services.rewrite is None:
        raise ActionFailed("Rewrite API key is not configured (config set rewrite_api_key ...)")
    text = run.text(INPUT_HIGHLIGHTS)
    if not text:
        raise ActionFailed("No highlights found for the selected chapter")

    def progress(section: str, current: int, total: int) -> None:
        services.log(f"rewrite section {current}/{total}: {section}")

    processed = services.rewrite.rewrite(text, progress=progress)
    run.artifacts[ARTIFACT_PROCESSED] = processed
    failures = list(services.rewrite.failures)
    if failures:
        return f"Highlights processed; {len(failures)} section(s) kept their original text"
    return "Highlights processed"


def copy_to_notes(run: WorkflowRun, services: ActionServices) -> str:
    if services.notes is None:
        raise ActionFailed("Notes token is not configured (config set notes_token ...)")
    database_id = database_id_from_url(services.notes_database_url)
    if not database_id:
        raise ActionFailed("Invalid or missing notes database URL (config set notes_database_url ...)")
    title = run.text(INPUT_CHAPTER)
    if not title:
        raise ActionFailed("No chapter selected")
    content = run.content()
    if not content:
        raise ActionFailed("No content to copy. Process highlights first.")
    blocks = markdown_to_blocks(content)
    services.log(f"notes: fetching schema for {database_id}")
    schema = services.notes.fetch_schema(database_id)
    page_id = services.notes.create_page(
        schema,
        title,
        blocks,
        book_name=run.text(INPUT_BOOK),
        progress=services.log,
    )
    url = page_url(page_id)
    run.artifacts[ARTIFACT_NOTES_URL] = url
    return f"Created page {title!r} with {len(blocks)} blocks: {url}"


def _notebook_home(run: WorkflowRun) -> str:
    return NOTEBOOK_HOME_URL


def _notebook_url(run: WorkflowRun) -> str:
    return run.text(INPUT_NOTEBOOK_URL) or NOTEBOOK_HOME_URL


def _chat_url(run: WorkflowRun) -> str:
    return run.text(INPUT_CHAT_URL) or CHAT_HOME_URL


def _require_book(run: WorkflowRun) -> str:
    book = run.text(INPUT_BOOK)
    if not book:
        raise ActionFailed("Could not determine the book title")
    return book


def export_request(run: WorkflowRun) -> ActionRequest:
    book = _require_book(run)
    content = run.content()
    if not content:
        raise ActionFailed("No content to add to the notebook")
    chapter = run.text(INPUT_CHAPTER)
    payload: dict[str, Any] = {KEY_BOOK_NAME: book, KEY_CONTENT: content}
    if chapter:
        payload[KEY_SOURCE_NAME] = chapter
        payload[KEY_CHAPTER_NAME] = chapter
    return ActionRequest(action=ACTION_EXPORT_SOURCE, payload=payload)


def flashcards_request(run: WorkflowRun) -> ActionRequest:
    payload: dict[str, Any] = {KEY_BOOK_NAME: _require_book(run)}
    chapter = run.text(INPUT_CHAPTER)
    if chapter:
        payload[KEY_SOURCE_NAME] = chapter
        payload[KEY_CHAPTER_NAME] = chapter
    return ActionRequest(action=ACTION_CREATE_FLASHCARDS, payload=payload)


def chat_request(run: WorkflowRun) -> ActionRequest:
    content = run.content()
    if not content:
        raise ActionFailed("No content to send to the chat")
    payload: dict[str, Any] = {
        KEY_CONTENT: content,
        KEY_MODEL: run.text(INPUT_MODEL) or DEFAULT_CHAT_MODEL,
    }
    if run.text(INPUT_BOOK):
        payload[KEY_BOOK_NAME] = run.text(INPUT_BOOK)
    if run.text(INPUT_CHAPTER):
        payload[KEY_CHAPTER_NAME] = run.text(INPUT_CHAPTER)
    return ActionRequest(action=ACTION_SEND_CHAT, payload=payload)


def default_actions() -> dict[str, WorkflowAction]:
    actions = (
        WorkflowAction(
            name=WORKFLOW_PROCESS_HIGHLIGHTS,
            label="Process highlights",
            local=process_highlights,
        ),
        WorkflowAction(
            name=WORKFLOW_COPY_TO_NOTES,
            label="Copy to notes",
            depends_on=((WORKFLOW_PROCESS_HIGHLIGHTS, HARD),),
            local=copy_to_notes,
        ),
        WorkflowAction(
            name=WORKFLOW_ADD_TO_NOTEBOOK,
            label="Add source to notebook",
            depends_on=((WORKFLOW_PROCESS_HIGHLIGHTS, WEAK),),
            url=_notebook_home,
            request=export_request,
            open_new=True,
            tab_artifact=ARTIFACT_NOTEBOOK_TAB,
        ),
        WorkflowAction(
            name=WORKFLOW_GENERATE_FLASHCARDS,
            label="Generate flashcards",
            depends_on=((WORKFLOW_ADD_TO_NOTEBOOK, WEAK),),
            url=_notebook_url,
            request=flashcards_request,
            reuse_tab=ARTIFACT_NOTEBOOK_TAB,
        ),
        WorkflowAction(
            name=WORKFLOW_SEND_TO_CHAT,
            label="Send to chat",
            depends_on=((WORKFLOW_PROCESS_HIGHLIGHTS, WEAK),),
            url=_chat_url,
            request=chat_request,
            open_new=True,
            tab_artifact=ARTIFACT_CHAT_TAB,
        ),
    )
    catalogue = {action.name: action for action in actions}
    if tuple(catalogue) != WORKFLOW_ACTION_ORDER:
        raise RuntimeError("workflow action catalogue is out of order")
    return catalogue


def parse_action_list(raw: str) -> list[str]:
    names = [part.strip().replace("-", "_") for part in str(raw or "").split(",") if part.strip()]
    unknown = [name for name in names if name not in WORKFLOW_ACTION_ORDER]
    if unknown:
        raise SystemExit(
            f"Unknown action(s): {', '.join(unknown)}. Known actions: {', '.join(WORKFLOW_ACTION_ORDER)}"
        )
    if not names:
        raise SystemExit("Select at least one action")
    return names
