import unittest

from learnbridge.web_tabs import TabClosedError, wait_for_tab_ready


class ScriptedTabs:
    def __init__(self, states: list[str]) -> None:
        self.states = list(states)
        self.polls = 0

    async def ready_state(self, tab_id: str) -> str:
        self.polls += 1
        state = self.states.pop(0) if self.states else "loading"
        if state == "closed":
            raise TabClosedError(f"Tab {tab_id} was closed")
        return state

    async def open(self, url: str) -> str:
        return "tab-1"

    async def find(self, url: str) -> str | None:
        return None

    async def close(self, tab_id: str) -> None:
        return None


class WaitForTabReadyTests(unittest.IsolatedAsyncioTestCase):
    async def test_ready_after_loading(self) -> None:
        tabs = ScriptedTabs(["loading", "interactive", "complete"])
        self.assertTrue(await wait_for_tab_ready(tabs, "tab-1", poll_ms=1, max_attempts=5, settle_ms=0))
        self.assertEqual(tabs.polls, 3)

    async def test_gives_up_quietly(self) -> None:
        tabs = ScriptedTabs([])
        self.assertFalse(await wait_for_tab_ready(tabs, "tab-1", poll_ms=1, max_attempts=4, settle_ms=0))
        self.assertEqual(tabs.polls, 4)

    async def test_closed_tab_propagates(self) -> None:
        with self.assertRaises(TabClosedError):
            await wait_for_tab_ready(ScriptedTabs(["closed"]), "tab-1", poll_ms=1, max_attempts=3, settle_ms=0)


if __name__ == "__main__":
    unittest.main()
