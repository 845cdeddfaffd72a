import unittest

from fake_apps import FakeChatApp
from fake_dom import fast_timings

from learnbridge.constants import ACTION_SEND_CHAT
from learnbridge.web_chat_scripts import chat_scripts, conversation_name, send_chat_script


class SendChatTests(unittest.IsolatedAsyncioTestCase):
    async def test_message_is_sent_and_conversation_renamed(self) -> None:
        app = FakeChatApp()
        payload = {"content": "Summarise these highlights", "bookName": "Book", "chapterName": "Chapter 1"}
        response = await send_chat_script().run(app.page, payload, timings=fast_timings())
        self.assertTrue(response.success, response.error)
        self.assertEqual(app.sent, ["Summarise these highlights"])
        self.assertEqual(app.model, "Fast 2.5 Flash")
        self.assertEqual(app.conversations, [conversation_name("Book", "Chapter 1")])
        self.assertEqual(response.data, {"conversation": "\U0001F4D6 Book - Chapter 1"})

    async def test_newest_conversation_is_renamed_even_when_another_is_highlighted(self) -> None:
        app = FakeChatApp()
        app.conversations = ["Older chat"]
        app.highlighted = "Older chat"
        app.render()
        payload = {"content": "Quiz me", "bookName": "Book", "chapterName": "Chapter 2"}
        response = await send_chat_script().run(app.page, payload, timings=fast_timings())
        self.assertTrue(response.success, response.error)
        self.assertEqual(app.conversations, [conversation_name("Book", "Chapter 2"), "Older chat"])

    async def test_requested_model_is_picked(self) -> None:
        app = FakeChatApp()
        payload = {"content": "hello", "model": "2.5 Pro"}
        response = await send_chat_script().run(app.page, payload, timings=fast_timings())
        self.assertTrue(response.success, response.error)
        self.assertEqual(app.model, "Thinking 2.5 Pro")
        self.assertEqual(response.message, "Message sent")

    async def test_missing_model_menu_is_only_a_warning(self) -> None:
        app = FakeChatApp(with_model_menu=False)
        response = await send_chat_script().run(app.page, {"content": "hello"}, timings=fast_timings())
        self.assertTrue(response.success, response.error)
        self.assertEqual(app.sent, ["hello"])
        self.assertIn("Warnings: select model skipped", response.message)
        self.assertEqual(response.data["warnings"][0]["step"], "select model")

    async def test_rename_skipped_without_book_and_chapter(self) -> None:
        app = FakeChatApp()
        script = send_chat_script()
        await script.run(app.page, {"content": "hello", "bookName": "Book"}, timings=fast_timings())
        self.assertEqual(app.conversations, ["hello"])
        self.assertNotIn("conversation", script.last_run.values)

    async def test_empty_content_fails(self) -> None:
        app = FakeChatApp()
        response = await send_chat_script().run(app.page, {"content": "   "}, timings=fast_timings())
        self.assertFalse(response.success)
        self.assertEqual(response.data["step"], "set message")
        self.assertEqual(app.sent, [])


class ChatCatalogueTests(unittest.TestCase):
    def test_single_script(self) -> None:
        self.assertEqual(list(chat_scripts()), [ACTION_SEND_CHAT])


if __name__ == "__main__":
    unittest.main()
