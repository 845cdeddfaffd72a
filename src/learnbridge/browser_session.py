"""Persistent Chromium session the workflow drives over CDP.

The browser keeps one profile directory across sessions so the user stays
signed in to the target sites between runs.
"""

from __future__ import annotations

import json
import os
import shutil
import signal
import socket
import subprocess
import time
import urllib.error
import urllib.request
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


RUNS_DIR = Path("runs")
SESSIONS_DIR = RUNS_DIR / "web_sessions"
INDEX_PATH = SESSIONS_DIR / "index.json"
PROFILE_DIR = SESSIONS_DIR / "profile"


@dataclass
class BrowserSession:
    session_id: str
    pid: int
    port: int
    user_data_dir: str
    browser_binary: str
    created_at: str
    last_seen_at: str
    state: str = "open"
    tab_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def create_session(initial_url: str | None = None) -> BrowserSession:
    SESSIONS_DIR.mkdir(parents=True, exist_ok=True)
    session_id = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    base = SESSIONS_DIR / session_id
    attempt = 0
    while base.exists():
        attempt += 1
        base = SESSIONS_DIR / f"{session_id}-{attempt:02d}"
    base.mkdir(parents=True, exist_ok=False)

    browser = _find_browser_binary()
    port = _get_free_port()
    PROFILE_DIR.mkdir(parents=True, exist_ok=True)
    out_log = base / "browser_stdout.log"
    err_log = base / "browser_stderr.log"

    cmd = [
        browser,
        f"--remote-debugging-port={port}",
        f"--user-data-dir={PROFILE_DIR.resolve()}",
        "--new-window",
        initial_url or "about:blank",
        "--no-first-run",
        "--no-default-browser-check",
    ]
    popen_kwargs: dict[str, Any] = {
        "stdin": subprocess.DEVNULL,
        "close_fds": True,
        "start_new_session": True,
    }
    if os.name == "nt":
        popen_kwargs["creationflags"] = getattr(subprocess, "DETACHED_PROCESS", 0) | getattr(
            subprocess,
            "CREATE_NEW_PROCESS_GROUP",
            0,
        )

    with out_log.open("w", encoding="utf-8") as out_fh, err_log.open("w", encoding="utf-8") as err_fh:
        proc = subprocess.Popen(cmd, stdout=out_fh, stderr=err_fh, **popen_kwargs)

    _wait_for_cdp(port, timeout_seconds=15)

    now = datetime.now(timezone.utc).isoformat()
    session = BrowserSession(
        session_id=base.name,
        pid=proc.pid,
        port=port,
        user_data_dir=str(PROFILE_DIR),
        browser_binary=browser,
        created_at=now,
        last_seen_at=now,
        state="open",
    )
    save_session(session)
    set_last_session_id(session.session_id)
    return session


def save_session(session: BrowserSession) -> None:
    SESSIONS_DIR.mkdir(parents=True, exist_ok=True)
    path = SESSIONS_DIR / f"{session.session_id}.json"
    with path.open("w", encoding="utf-8") as fh:
        json.dump(session.to_dict(), fh, indent=2, ensure_ascii=False)
        fh.write("\n")


def load_session(session_id: str) -> BrowserSession:
    path = SESSIONS_DIR / f"{session_id}.json"
    if not path.exists():
        raise SystemExit(f"Unknown session_id: {session_id}")
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    payload.setdefault("tab_count", 0)
    return BrowserSession(**payload)


def set_last_session_id(session_id: str) -> None:
    SESSIONS_DIR.mkdir(parents=True, exist_ok=True)
    with INDEX_PATH.open("w", encoding="utf-8") as fh:
        json.dump({"last_session_id": session_id}, fh, indent=2, ensure_ascii=False)
        fh.write("\n")


def get_last_session() -> BrowserSession | None:
    if not INDEX_PATH.exists():
        return None
    with INDEX_PATH.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    session_id = payload.get("last_session_id")
    if not session_id:
        return None
    try:
        return refresh_session_state(load_session(session_id))
    except SystemExit:
        return None


def ensure_session(initial_url: str | None = None) -> BrowserSession:
    session = get_last_session()
    if session is not None and session.state == "open":
        return session
    return create_session(initial_url)


def session_is_alive(session: BrowserSession) -> bool:
    return _pid_alive(session.pid) and _cdp_alive(session.port)


def refresh_session_state(session: BrowserSession) -> BrowserSession:
    if session_is_alive(session):
        session.state = "open"
        session.tab_count = len(_cdp_page_targets(session.port))
    else:
        session.state = "closed"
        session.tab_count = 0
    session.last_seen_at = datetime.now(timezone.utc).isoformat()
    save_session(session)
    return session


def close_session(session: BrowserSession) -> None:
    session = refresh_session_state(session)
    if _pid_alive(session.pid):
        try:
            os.kill(session.pid, signal.SIGTERM)
        except OSError:
            pass
        for _ in range(20):
            if not _pid_alive(session.pid):
                break
            time.sleep(0.1)
        if _pid_alive(session.pid):
            try:
                os.kill(session.pid, signal.SIGKILL)
            except OSError:
                pass
    session.state = "closed"
    session.tab_count = 0
    session.last_seen_at = datetime.now(timezone.utc).isoformat()
    save_session(session)


def _find_browser_binary() -> str:
    override = os.getenv("LEARNBRIDGE_BROWSER", "").strip()
    if override:
        return override
    candidates = (
        "google-chrome",
        "google-chrome-stable",
        "chromium",
        "chromium-browser",
    )
    for name in candidates:
        found = shutil.which(name)
        if found:
            return found
    raise SystemExit("No supported Chromium browser found; set LEARNBRIDGE_BROWSER.")


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
        return True
    except OSError:
        return False


def _cdp_alive(port: int) -> bool:
    url = f"http://127.0.0.1:{port}/json/version"
    try:
        with urllib.request.urlopen(url, timeout=1.5) as resp:
            return resp.status == 200
    except (urllib.error.URLError, TimeoutError):
        return False


def _cdp_page_targets(port: int) -> list[dict[str, Any]]:
    url = f"http://127.0.0.1:{port}/json/list"
    try:
        with urllib.request.urlopen(url, timeout=1.5) as resp:
            if resp.status != 200:
                return []
            payload = json.loads(resp.read().decode("utf-8", errors="replace"))
    except (urllib.error.URLError, TimeoutError, json.JSONDecodeError, UnicodeDecodeError):
        return []
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict) and item.get("type") == "page"]


def _get_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


def _wait_for_cdp(port: int, timeout_seconds: int) -> None:
    deadline = time.time() + timeout_seconds
    url = f"http://127.0.0.1:{port}/json/version"
    while time.time() < deadline:
        try:
            with urllib.request.urlopen(url, timeout=1.5) as resp:
                if resp.status == 200:
                    return
        except (urllib.error.URLError, TimeoutError):
            time.sleep(0.2)
    raise SystemExit(f"Timed out waiting for browser session on port {port}")
