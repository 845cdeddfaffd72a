"""CLI entrypoint for learnbridge."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
from pathlib import Path

from learnbridge.browser_session import (
    close_session,
    ensure_session,
    get_last_session,
)
from learnbridge.config import (
    JsonFileStorage,
    Storage,
    TimeoutSettings,
    config_keys,
    load_config,
    save_config,
    update_config,
)
from learnbridge.constants import (
    ACTION_LIST_NOTEBOOKS,
    NOTEBOOK_HOME_URL,
    WORKFLOW_ACTION_ORDER,
)
from learnbridge.context_bridge import BridgeError, ContextBridge
from learnbridge.highlights import (
    extract_book_title,
    extract_chapters,
    extract_sections,
    load_kindle_html,
    parse_highlights,
)
from learnbridge.models import ActionRequest
from learnbridge.orchestrator import WorkflowOrchestrator
from learnbridge.page_agent import AgentRegistry
from learnbridge.reporting import WorkflowReport, format_report
from learnbridge.storage import create_run_context, status_payload, tail_lines
from learnbridge.web_tabs import TabClosedError, connect_tabs, wait_for_tab_ready
from learnbridge.workflow_actions import (
    INPUT_BOOK,
    INPUT_CHAPTER,
    INPUT_CHAT_URL,
    INPUT_HIGHLIGHTS,
    INPUT_MODEL,
    INPUT_NOTEBOOK_URL,
    ActionServices,
    WorkflowRun,
    default_actions,
    parse_action_list,
)


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "chapters":
        chapters_command(args.file)
        return
    if args.command == "run":
        run_command(
            args.file,
            chapter=args.chapter,
            actions=args.actions,
            model=args.model,
            as_json=args.json,
        )
        return
    if args.command == "notebooks":
        notebooks_command()
        return
    if args.command == "config":
        config_command(args.config_command, key=getattr(args, "key", None), value=getattr(args, "value", None))
        return
    if args.command == "browser":
        browser_command(args.browser_command)
        return
    if args.command == "status":
        print(json.dumps(status_payload(), indent=2, ensure_ascii=False))
        return
    if args.command == "logs":
        logs_command(args.tail)
        return

    parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="learnbridge",
        description="Turn Kindle highlights into notes, notebook sources, flashcards and a chat quiz.",
    )
    subparsers = parser.add_subparsers(dest="command")

    chapters_parser = subparsers.add_parser("chapters", help="List chapters in a Kindle highlights export")
    chapters_parser.add_argument("file", nargs="?", default=None)

    run_parser = subparsers.add_parser("run", help="Run workflow actions for one chapter")
    run_parser.add_argument("file", nargs="?", default=None)
    run_parser.add_argument("--chapter", type=str, default=None)
    run_parser.add_argument(
        "--actions",
        type=str,
        default=None,
        help=f"Comma separated subset of: {', '.join(WORKFLOW_ACTION_ORDER)}",
    )
    run_parser.add_argument("--model", type=str, default=None, help="Chat model label to select")
    run_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    subparsers.add_parser("notebooks", help="List notebooks in the signed-in notebook app")

    config_parser = subparsers.add_parser("config", help="Show or change saved configuration")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("show", help="Print configuration with secrets redacted")
    set_parser = config_sub.add_parser("set", help="Set one configuration value")
    set_parser.add_argument("key", choices=config_keys())
    set_parser.add_argument("value", type=str)

    browser_parser = subparsers.add_parser("browser", help="Manage the persistent browser session")
    browser_parser.add_argument("browser_command", choices=("open", "status", "close"))

    subparsers.add_parser("status", help="Show latest run status")

    logs_parser = subparsers.add_parser("logs", help="Tail logs for latest run")
    logs_parser.add_argument("--tail", type=int, default=200)
    return parser


def chapters_command(file: str | None, storage: Storage | None = None) -> None:
    storage = storage or JsonFileStorage()
    config = load_config(storage)
    location = file or config.kindle_file
    if not location:
        raise SystemExit("No Kindle export given and none saved in config.")
    html = load_kindle_html(location)
    chapters = extract_chapters(html)
    if not chapters:
        raise SystemExit(f"No chapters found in {location}")
    title = extract_book_title(html)
    if title:
        print(title)
    for idx, name in enumerate(chapters, start=1):
        print(f"{idx:>3}. {name}")
    if file and file != config.kindle_file:
        config.kindle_file = file
        save_config(storage, config)


def run_command(
    file: str | None,
    *,
    chapter: str | None,
    actions: str | None,
    model: str | None = None,
    as_json: bool = False,
    storage: Storage | None = None,
) -> WorkflowReport:
    storage = storage or JsonFileStorage()
    config = load_config(storage)
    location = file or config.kindle_file
    if not location:
        raise SystemExit("No Kindle export given and none saved in config.")
    selected = parse_action_list(actions or config.last_actions)

    html = load_kindle_html(location)
    chapters = extract_chapters(html)
    chapter_name = _resolve_chapter(chapter or config.selected_chapter, chapters)
    highlights = parse_highlights(html, chapter_name)
    # parse_highlights keeps the chapter heading even when it has no notes.
    if not extract_sections(highlights).sections:
        raise SystemExit(f"No highlights found for chapter {chapter_name!r}")

    config.kindle_file = location
    config.selected_chapter = chapter_name
    config.last_actions = ",".join(selected)
    save_config(storage, config)

    timings = TimeoutSettings.from_env()
    ctx = create_run_context()
    ctx.log(f"run_id={ctx.run_id}")
    ctx.log(f"kindle_file={location}")
    ctx.log(f"chapter={chapter_name}")
    ctx.log(f"actions={selected}")

    run = WorkflowRun(
        selected=selected,
        inputs={
            INPUT_BOOK: extract_book_title(html) or "",
            INPUT_CHAPTER: chapter_name,
            INPUT_HIGHLIGHTS: highlights,
            INPUT_NOTEBOOK_URL: config.notebook_url,
            INPUT_CHAT_URL: config.chat_url,
            INPUT_MODEL: model or "",
        },
    )
    services = ActionServices.from_config(config, log=ctx.log)
    catalogue = default_actions()
    needs_browser = any(not catalogue[name].is_local for name in selected)
    registry = AgentRegistry(timings=timings, log_path=ctx.bridge_log)
    bridge = ContextBridge(registry.connect, timings=timings)

    async def _execute() -> WorkflowReport:
        if not needs_browser:
            orchestrator = WorkflowOrchestrator(bridge, None, catalogue, services=services, timings=timings, run_ctx=ctx)
            return await orchestrator.execute(selected, run)
        session = ensure_session(NOTEBOOK_HOME_URL)
        ctx.log(f"browser_session={session.session_id} port={session.port}")
        try:
            async with connect_tabs(session.port, registry) as tabs:
                orchestrator = WorkflowOrchestrator(
                    bridge, tabs, catalogue, services=services, timings=timings, run_ctx=ctx
                )
                _cancel_on_interrupt(orchestrator)
                return await orchestrator.execute(selected, run)
        finally:
            await registry.aclose()

    report = asyncio.run(_execute())
    if as_json:
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    else:
        print("\n".join(format_report(report)))
    return report


def notebooks_command() -> None:
    timings = TimeoutSettings.from_env()
    session = ensure_session(NOTEBOOK_HOME_URL)
    registry = AgentRegistry(timings=timings)
    bridge = ContextBridge(registry.connect, timings=timings)

    async def _list() -> list[str]:
        try:
            async with connect_tabs(session.port, registry) as tabs:
                tab_id = await tabs.find(NOTEBOOK_HOME_URL) or await tabs.open(NOTEBOOK_HOME_URL)
                await wait_for_tab_ready(
                    tabs,
                    tab_id,
                    poll_ms=timings.tab_poll_ms,
                    max_attempts=timings.tab_max_attempts,
                    settle_ms=timings.tab_settle_ms,
                )
                response = await bridge.send(tab_id, ActionRequest(action=ACTION_LIST_NOTEBOOKS))
        except (BridgeError, TabClosedError) as exc:
            raise SystemExit(f"Could not list notebooks: {exc}; please retry") from exc
        finally:
            await registry.aclose()
        if not response.success:
            raise SystemExit(f"Could not list notebooks: {response.error}")
        data = response.data if isinstance(response.data, dict) else {}
        return [str(name) for name in data.get("notebooks", [])]

    names = asyncio.run(_list())
    if not names:
        print("No notebooks found.")
        return
    for name in names:
        print(name)


def config_command(action: str | None, *, key: str | None = None, value: str | None = None, storage: Storage | None = None) -> None:
    storage = storage or JsonFileStorage()
    if action == "set":
        if key is None or value is None:
            raise SystemExit("Usage: learnbridge config set KEY VALUE")
        config = update_config(storage, key, value)
        print(json.dumps(config.redacted(), indent=2, ensure_ascii=False))
        return
    if action in (None, "show"):
        print(json.dumps(load_config(storage).redacted(), indent=2, ensure_ascii=False))
        return
    raise SystemExit(f"Unknown config command: {action}")


def browser_command(action: str) -> None:
    if action == "open":
        session = ensure_session(NOTEBOOK_HOME_URL)
        print(json.dumps(session.to_dict(), indent=2, ensure_ascii=False))
        return
    session = get_last_session()
    if session is None:
        raise SystemExit("No browser session available.")
    if action == "close":
        close_session(session)
        print(f"closed session {session.session_id}")
        return
    print(json.dumps(session.to_dict(), indent=2, ensure_ascii=False))


def logs_command(tail_count: int) -> None:
    payload = status_payload()
    if payload.get("status") == "no-runs":
        raise SystemExit("No runs available yet.")
    run_dir = Path(payload["run_dir"])
    print("\n".join(tail_lines(run_dir / "bridge.log", tail_count)))


def _resolve_chapter(requested: str | None, chapters: list[str]) -> str:
    if not chapters:
        raise SystemExit("No chapters found in the Kindle export.")
    if not requested:
        raise SystemExit("Select a chapter with --chapter (see `learnbridge chapters`).")
    if requested in chapters:
        return requested
    if requested.isdigit() and 1 <= int(requested) <= len(chapters):
        return chapters[int(requested) - 1]
    lowered = requested.casefold()
    matches = [name for name in chapters if lowered in name.casefold()]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise SystemExit(f"Chapter {requested!r} is ambiguous: {', '.join(matches)}")
    raise SystemExit(f"Chapter not found: {requested}")


def _cancel_on_interrupt(orchestrator: WorkflowOrchestrator) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)
    except (NotImplementedError, RuntimeError):
        # Signal handlers are unavailable on this platform's event loop.
        return


if __name__ == "__main__":
    main()
