import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from learnbridge.config import (
    JsonFileStorage,
    MemoryStorage,
    TimeoutSettings,
    WorkflowConfig,
    config_keys,
    load_config,
    save_config,
    update_config,
)
from learnbridge.constants import DEFAULT_LOCATOR_TIMEOUT_MS


class WorkflowConfigTests(unittest.TestCase):
    def test_round_trip_through_file_storage(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            storage = JsonFileStorage(Path(tmp) / "nested" / "config.json")
            self.assertEqual(load_config(storage), WorkflowConfig())
            config = WorkflowConfig(kindle_file="export.html", selected_chapter="Chapter 1")
            save_config(storage, config)
            saved = json.loads(storage.path.read_text(encoding="utf-8"))
            self.assertEqual(saved, {"kindle_file": "export.html", "selected_chapter": "Chapter 1"})
            self.assertEqual(load_config(storage), config)

    def test_unknown_keys_ignored_and_bad_types_rejected(self) -> None:
        self.assertEqual(load_config(MemoryStorage({"legacy": 1, "chat_url": "https://x"})).chat_url, "https://x")
        with self.assertRaises(SystemExit):
            load_config(MemoryStorage({"notes_token": 42}))

    def test_corrupt_file_is_reported(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text("{oops", encoding="utf-8")
            with self.assertRaises(SystemExit):
                JsonFileStorage(path).load()
            path.write_text("[]", encoding="utf-8")
            with self.assertRaises(SystemExit):
                JsonFileStorage(path).load()

    def test_update_config(self) -> None:
        storage = MemoryStorage()
        config = update_config(storage, "notebook_url", "  https://notebooklm.google.com/notebook/1 ")
        self.assertEqual(config.notebook_url, "https://notebooklm.google.com/notebook/1")
        self.assertEqual(storage.data, {"notebook_url": "https://notebooklm.google.com/notebook/1"})
        with self.assertRaises(SystemExit):
            update_config(storage, "colour", "blue")
        with self.assertRaises(SystemExit):
            update_config(storage, "chat_url", "gemini")

    def test_redacted_hides_secrets(self) -> None:
        config = WorkflowConfig(rewrite_api_key="AIzaSyVeryLongKey", notes_token="short", kindle_file="k.html")
        self.assertEqual(
            config.redacted(),
            {"kindle_file": "k.html", "rewrite_api_key": "AIza...", "notes_token": "***"},
        )

    def test_keys_follow_field_order(self) -> None:
        self.assertEqual(config_keys()[0], "kindle_file")
        self.assertIn("chat_url", config_keys())


class TimeoutSettingsTests(unittest.TestCase):
    def test_defaults_without_environment(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = TimeoutSettings.from_env()
        self.assertEqual(settings.locator_timeout_ms, DEFAULT_LOCATOR_TIMEOUT_MS)

    def test_environment_overrides(self) -> None:
        env = {"LEARNBRIDGE_LOCATOR_TIMEOUT_MS": "2500", "LEARNBRIDGE_PING_ATTEMPTS": "-3"}
        with patch.dict(os.environ, env, clear=True):
            settings = TimeoutSettings.from_env()
        self.assertEqual(settings.locator_timeout_ms, 2500)
        self.assertEqual(settings.ping_attempts, 0)

    def test_non_numeric_override_is_rejected(self) -> None:
        with patch.dict(os.environ, {"LEARNBRIDGE_SETTLE_MS": "soon"}, clear=True):
            with self.assertRaises(SystemExit):
                TimeoutSettings.from_env()


if __name__ == "__main__":
    unittest.main()
