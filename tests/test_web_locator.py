import unittest

from fake_dom import FakePage, el

from learnbridge.web_locator import (
    Semantic,
    await_disappearance,
    by_attribute,
    by_text,
    css,
    find_now,
    locate,
    spec,
    structural,
)


class FindNowTests(unittest.IsolatedAsyncioTestCase):
    async def test_first_present_rule_wins(self) -> None:
        first = el("button", "Add", class_="add-source-button")
        second = el("button", "Add", aria_label="Add source")
        page = FakePage(body=[second, first])
        locator = spec(structural(".add-source-button, [aria-label='Add source']"))
        self.assertIs(await find_now(page, locator), first)

    async def test_later_rule_used_when_earlier_rules_miss(self) -> None:
        target = el("basic-create-artifact-button", "Mind map")
        page = FakePage(
            body=[
                el("basic-create-artifact-button", "Audio"),
                el("basic-create-artifact-button", "Video"),
                target,
            ]
        )
        locator = spec(
            by_text("basic-create-artifact-button", "Flashcards"),
            structural("basic-create-artifact-button:nth-of-type(3)"),
        )
        self.assertIs(await find_now(page, locator), target)

    async def test_content_rule_scans_every_candidate(self) -> None:
        wanted = el("button", "Insert")
        page = FakePage(
            body=[
                el("mat-dialog-container", children=[el("button", "Cancel"), el("button", "Insert later"), wanted])
            ]
        )
        exact = spec(by_text("mat-dialog-container button", "Insert", exact=True))
        self.assertIs(await find_now(page, exact), wanted)

    async def test_attribute_content_rule(self) -> None:
        close = el("button", aria_label="Close dialog")
        page = FakePage(body=[el("upload-dialog", children=[el("button", aria_label="Help"), close])])
        locator = spec(by_attribute("upload-dialog button", "aria-label", "close"))
        self.assertIs(await find_now(page, locator), close)

    async def test_semantic_rule_matches_role_and_label(self) -> None:
        send = el("mat-icon", role="button", aria_label="Send message")
        page = FakePage(body=[el("button", "Stop"), send])
        locator = spec(Semantic(role="button", label="Send message"))
        self.assertIs(await find_now(page, locator), send)

    async def test_root_scopes_the_search(self) -> None:
        inner = el("button", aria_label="More")
        item = el("div", class_="single-source-container", children=[inner])
        page = FakePage(body=[el("button", aria_label="More"), item])
        self.assertIs(await find_now(page, spec(structural("button[aria-label*=More]")), root=item), inner)


class LocateTests(unittest.IsolatedAsyncioTestCase):
    async def test_absent_element_reports_at_least_the_timeout(self) -> None:
        page = FakePage()
        outcome = await locate(page, spec(structural("#missing")), timeout_ms=60, poll_interval_ms=10, grace_ms=0)
        self.assertFalse(outcome.ok)
        self.assertIsNone(outcome.found)
        self.assertGreaterEqual(outcome.elapsed_ms, 60)

    async def test_element_appearing_during_polling_is_found(self) -> None:
        page = FakePage()
        late = el("section", class_="source-panel")
        page.later(30, lambda: page.add(page.body, late))
        outcome = await locate(page, spec(structural("section.source-panel")), timeout_ms=500, poll_interval_ms=10)
        self.assertIs(outcome.found, late)
        self.assertLess(outcome.elapsed_ms, 500)

    async def test_earlier_rule_appearing_with_later_match_wins(self) -> None:
        status = el("div", "Generating", class_="status")
        page = FakePage(body=[status])
        done = el("div", class_="artifact-ready")

        def finish() -> None:
            status.text = "Ready"
            page.add(page.body, done)

        page.later(30, finish)
        locator = spec(structural("div.artifact-ready"), by_text("div.status", "Ready", exact=True))
        outcome = await locate(page, locator, timeout_ms=500, poll_interval_ms=10)
        self.assertIs(outcome.found, done)

    async def test_rules_are_rechecked_from_the_top_each_time(self) -> None:
        preferred = el("button", aria_label="Send message")
        fallback = el("button", "Send", class_="send-button")
        page = FakePage(body=[fallback, preferred])
        locator = spec(structural("button[aria-label=\"Send message\"]"), by_text("button.send-button", "Send"))
        first = await locate(page, locator, timeout_ms=50, poll_interval_ms=10, grace_ms=0)
        self.assertIs(first.found, preferred)
        page.remove(preferred)
        second = await locate(page, locator, timeout_ms=50, poll_interval_ms=10, grace_ms=0)
        self.assertIs(second.found, fallback)

    async def test_reactive_phase_catches_late_mutation(self) -> None:
        page = FakePage()
        late = el("upload-dialog")
        # Appears after the polling window but inside the grace window.
        page.later(80, lambda: page.add(page.body, late))
        outcome = await locate(
            page, spec(structural("upload-dialog")), timeout_ms=40, poll_interval_ms=1000, grace_ms=400
        )
        self.assertIs(outcome.found, late)

    async def test_reactive_phase_ends_when_nothing_changes(self) -> None:
        page = FakePage()
        outcome = await locate(page, spec(structural("upload-dialog")), timeout_ms=20, poll_interval_ms=5, grace_ms=30)
        self.assertFalse(outcome.ok)
        self.assertGreaterEqual(outcome.elapsed_ms, 20)


class DisappearanceTests(unittest.IsolatedAsyncioTestCase):
    async def test_returns_true_once_gone(self) -> None:
        dialog = el("upload-dialog")
        page = FakePage(body=[dialog])
        page.later(20, lambda: page.remove(dialog))
        self.assertTrue(await await_disappearance(page, spec(structural("upload-dialog")), timeout_ms=500, poll_interval_ms=5))

    async def test_returns_false_on_timeout(self) -> None:
        page = FakePage(body=[el("upload-dialog")])
        self.assertFalse(await await_disappearance(page, spec(structural("upload-dialog")), timeout_ms=30, poll_interval_ms=5))


class RuleValidationTests(unittest.TestCase):
    def test_selector_list_splits_into_rules(self) -> None:
        rules = structural('[title="a, b"], span')
        self.assertEqual([rule.selector for rule in rules], ['[title="a, b"]', "span"])

    def test_single_rule_rejects_selector_list(self) -> None:
        with self.assertRaises(ValueError):
            css("artifact-library-item, .artifact-item")

    def test_invalid_selector_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            css("button[aria-label=")
        with self.assertRaises(ValueError):
            structural("   ")


if __name__ == "__main__":
    unittest.main()
