"""Shared constants for the wire contract, error taxonomy and timeouts."""

REQUEST_ACTION_KEY = "action"
RESPONSE_KEYS = ("success", "message", "error", "data")

# Wire action names understood by page agents.
ACTION_PING = "ping"
ACTION_EXPORT_SOURCE = "openNotebookAndExport"
ACTION_CREATE_FLASHCARDS = "createFlashcards"
ACTION_SEND_CHAT = "sendToGeminiChat"
ACTION_LIST_NOTEBOOKS = "listNotebooks"

PONG_MESSAGE = "pong"

# Payload keys shared by the controller and the page scripts.
KEY_BOOK_NAME = "bookName"
KEY_CHAPTER_NAME = "chapterName"
KEY_SOURCE_NAME = "sourceName"
KEY_CONTENT = "content"
KEY_MODEL = "model"

DEFAULT_CHAT_MODEL = "2.5 Flash"

# Workflow action names, in catalogue order.
WORKFLOW_PROCESS_HIGHLIGHTS = "process_highlights"
WORKFLOW_COPY_TO_NOTES = "copy_to_notes"
WORKFLOW_ADD_TO_NOTEBOOK = "add_to_notebook"
WORKFLOW_GENERATE_FLASHCARDS = "generate_flashcards"
WORKFLOW_SEND_TO_CHAT = "send_to_chat"

WORKFLOW_ACTION_ORDER = (
    WORKFLOW_PROCESS_HIGHLIGHTS,
    WORKFLOW_COPY_TO_NOTES,
    WORKFLOW_ADD_TO_NOTEBOOK,
    WORKFLOW_GENERATE_FLASHCARDS,
    WORKFLOW_SEND_TO_CHAT,
)

# Error taxonomy.
ERR_LOCATOR_TIMEOUT = "locator-timeout"
ERR_EVENT_REJECTED = "event-rejected"
ERR_CHANNEL_LOST = "channel-lost"
ERR_HANDSHAKE_TIMEOUT = "handshake-timeout"
ERR_REQUIRED_STEP_FAILED = "required-step-failed"
ERR_OPTIONAL_STEP_FAILED = "optional-step-failed"
ERR_RESPONSE_TIMEOUT = "response-timeout"
ERR_DEPENDENCY_FAILED = "dependency-failed"

STEP_ERROR_KINDS = {
    ERR_LOCATOR_TIMEOUT,
    ERR_EVENT_REJECTED,
    ERR_REQUIRED_STEP_FAILED,
    ERR_OPTIONAL_STEP_FAILED,
}

# Outcome statuses in workflow reports.
STATUS_OK = "ok"
STATUS_FAILED = "failed"
STATUS_NOT_ATTEMPTED = "not attempted"

ALLOWED_OUTCOME_STATUSES = {STATUS_OK, STATUS_FAILED, STATUS_NOT_ATTEMPTED}

# Default timing knobs (milliseconds). Overridable through LEARNBRIDGE_* env vars.
DEFAULT_LOCATOR_TIMEOUT_MS = 5000
DEFAULT_POLL_INTERVAL_MS = 250
DEFAULT_REACTIVE_GRACE_MS = 1000
DEFAULT_DISAPPEAR_TIMEOUT_MS = 3000
DEFAULT_DISAPPEAR_POLL_MS = 100
DEFAULT_SETTLE_MS = 500
DEFAULT_PING_INTERVAL_MS = 500
DEFAULT_PING_ATTEMPTS = 30
DEFAULT_PING_TIMEOUT_MS = 1000
DEFAULT_RESPONSE_TIMEOUT_MS = 180_000
DEFAULT_TAB_POLL_MS = 500
DEFAULT_TAB_MAX_ATTEMPTS = 20
DEFAULT_TAB_SETTLE_MS = 500
DEFAULT_GENERATION_MAX_WAIT_MS = 120_000
DEFAULT_GENERATION_POLL_MS = 1000

# Text-entry event sequence synthesized after a bulk value assignment.
TEXT_EVENT_SEQUENCE = ("input", "change", "keyup", "keydown")
HOVER_EVENT_SEQUENCE = ("mouseenter", "mouseover")

NOTEBOOK_HOME_URL = "https://notebooklm.google.com/"
CHAT_HOME_URL = "https://gemini.google.com/app"
