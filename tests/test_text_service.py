import http.client
import json
import socket
import unittest
import unittest.mock as mock
import urllib.error

from text_service import (
    ChatCompletionClient,
    TextService,
    TextServiceError,
    detect_language,
)


class FakeResponse:
    def __init__(self, payload) -> None:
        self._payload = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        return None

    def read(self) -> bytes:
        return self._payload


class DroppedResponse(FakeResponse):
    def __init__(self, error: Exception) -> None:
        super().__init__(b"")
        self._error = error

    def read(self) -> bytes:
        raise self._error


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class FakeChatClient:
    def __init__(self, reply: str = "", error: Exception = None) -> None:
        self.reply = reply
        self.error = error
        self.calls = []

    def complete(self, messages, *, tags=()):
        self.calls.append((list(messages), tuple(tags)))
        if self.error is not None:
            raise self.error
        return self.reply


class DetectLanguageTests(unittest.TestCase):
    def test_french_stop_words(self):
        self.assertEqual(detect_language("Bonjour le monde"), "fr")

    def test_french_accents_weigh_three(self):
        self.assertEqual(detect_language("Très bien, the end"), "fr")

    def test_english_text(self):
        self.assertEqual(detect_language("The cat is on the table"), "en")

    def test_tie_defaults_to_english(self):
        self.assertEqual(detect_language("Hello world"), "en")

    def test_empty_text_defaults_to_english(self):
        self.assertEqual(detect_language(""), "en")
        self.assertEqual(detect_language("   "), "en")


class TextServiceTests(unittest.TestCase):
    def test_translate_empty_text_skips_remote_call(self):
        client = FakeChatClient("should not be used")
        service = TextService(client)
        self.assertEqual(service.translate("  ", "fr", "en"), "")
        self.assertEqual(client.calls, [])

    def test_translate_builds_prompt_and_strips_reply(self):
        client = FakeChatClient("  Hello world \n")
        service = TextService(client)

        self.assertEqual(service.translate("Bonjour le monde", "fr", "en"), "Hello world")

        messages, tags = client.calls[0]
        self.assertEqual(messages[0]["role"], "system")
        self.assertIn("translator", messages[0]["content"])
        self.assertIn("Translate the following French text to English.", messages[1]["content"])
        self.assertIn("Bonjour le monde", messages[1]["content"])
        self.assertEqual(tags, ("translation",))

    def test_auto_translate_targets_the_other_language(self):
        client = FakeChatClient("Bonjour")
        service = TextService(client)

        result = service.auto_translate("Hello, this is the test")

        self.assertEqual(result.translated_text, "Bonjour")
        self.assertEqual(result.detected_lang, "en")
        self.assertEqual(result.target_lang, "fr")

    def test_auto_translate_french_to_english(self):
        service = TextService(FakeChatClient("Hello world"))
        result = service.auto_translate("Bonjour le monde")
        self.assertEqual((result.detected_lang, result.target_lang), ("fr", "en"))

    def test_translate_error_is_wrapped(self):
        service = TextService(FakeChatClient(error=TextServiceError("HTTP 500")))
        with self.assertRaises(TextServiceError) as ctx:
            service.translate("Hello", "en", "fr")
        self.assertEqual(str(ctx.exception), "Translation failed: HTTP 500")

    def test_spell_check_empty_text_skips_remote_call(self):
        client = FakeChatClient("unused")
        self.assertEqual(TextService(client).spell_check(""), "")
        self.assertEqual(client.calls, [])

    def test_spell_check_returns_correction(self):
        client = FakeChatClient("Hello world")
        self.assertEqual(TextService(client).spell_check("Helo wrld"), "Hello world")
        messages, _ = client.calls[0]
        self.assertIn("spell checker", messages[0]["content"])
        self.assertIn("Helo wrld", messages[1]["content"])

    def test_spell_check_of_correct_text_is_identity(self):
        client = FakeChatClient("Hello world")
        self.assertEqual(TextService(client).spell_check("Hello world"), "Hello world")

    def test_spell_check_blank_reply_falls_back_to_input(self):
        client = FakeChatClient("   ")
        self.assertEqual(TextService(client).spell_check("Hello wrld"), "Hello wrld")

    def test_spell_check_error_is_wrapped(self):
        service = TextService(FakeChatClient(error=TextServiceError("offline")))
        with self.assertRaises(TextServiceError) as ctx:
            service.spell_check("Helo")
        self.assertEqual(str(ctx.exception), "Spell check failed: offline")

    def test_requires_two_distinct_languages(self):
        with self.assertRaises(ValueError):
            TextService(FakeChatClient(), languages=("en", "en"))

    def test_detection_outside_configured_pair_uses_last_language(self):
        service = TextService(FakeChatClient(), languages=("fr", "de"))
        self.assertEqual(service.detect_language("The cat"), "de")
        self.assertEqual(service.other_language("de"), "fr")


class ChatCompletionClientTests(unittest.TestCase):
    def test_posts_chat_completion_request(self):
        client = ChatCompletionClient("secret", model="test-model", endpoint="https://example.test/v1/chat")
        messages = [{"role": "user", "content": "hi"}]

        with mock.patch("urllib.request.urlopen", return_value=FakeResponse(_completion("hello"))) as urlopen:
            self.assertEqual(client.complete(messages, tags=["translation"]), "hello")

        request = urlopen.call_args[0][0]
        self.assertEqual(request.full_url, "https://example.test/v1/chat")
        self.assertEqual(request.get_method(), "POST")
        self.assertEqual(request.get_header("Authorization"), "Bearer secret")
        body = json.loads(request.data.decode("utf-8"))
        self.assertEqual(body, {"model": "test-model", "messages": messages, "tags": ["translation"]})
        self.assertNotIn("timeout", urlopen.call_args[1])

    def test_timeout_is_forwarded_when_configured(self):
        client = ChatCompletionClient("secret", timeout=2.5)
        with mock.patch("urllib.request.urlopen", return_value=FakeResponse(_completion("ok"))) as urlopen:
            client.complete([{"role": "user", "content": "hi"}])
        self.assertEqual(urlopen.call_args[1]["timeout"], 2.5)

    def test_missing_api_key(self):
        client = ChatCompletionClient(None)
        with mock.patch("urllib.request.urlopen") as urlopen:
            with self.assertRaises(TextServiceError):
                client.complete([])
        urlopen.assert_not_called()

    def test_timeout_raises_text_service_error(self):
        client = ChatCompletionClient("secret", timeout=0.01)
        with mock.patch("urllib.request.urlopen", side_effect=socket.timeout):
            with self.assertRaises(TextServiceError) as ctx:
                client.complete([{"role": "user", "content": "hi"}])
        self.assertIn("timed out", str(ctx.exception))

    def test_http_error(self):
        client = ChatCompletionClient("secret")
        error = urllib.error.HTTPError("https://example.test", 401, "Unauthorized", None, None)
        with mock.patch("urllib.request.urlopen", side_effect=error):
            with self.assertRaises(TextServiceError) as ctx:
                client.complete([{"role": "user", "content": "hi"}])
        self.assertIn("401", str(ctx.exception))

    def test_network_error(self):
        client = ChatCompletionClient("secret")
        with mock.patch("urllib.request.urlopen", side_effect=urllib.error.URLError("no route")):
            with self.assertRaises(TextServiceError) as ctx:
                client.complete([{"role": "user", "content": "hi"}])
        self.assertIn("no route", str(ctx.exception))

    def test_connection_reset_while_reading(self):
        client = ChatCompletionClient("secret")
        response = DroppedResponse(ConnectionResetError("connection reset by peer"))
        with mock.patch("urllib.request.urlopen", return_value=response):
            with self.assertRaises(TextServiceError) as ctx:
                client.complete([{"role": "user", "content": "hi"}])
        self.assertIn("connection reset by peer", str(ctx.exception))

    def test_incomplete_read(self):
        client = ChatCompletionClient("secret")
        response = DroppedResponse(http.client.IncompleteRead(b'{"choi'))
        with mock.patch("urllib.request.urlopen", return_value=response):
            with self.assertRaises(TextServiceError):
                client.complete([{"role": "user", "content": "hi"}])

    def test_malformed_endpoint(self):
        client = ChatCompletionClient("secret", endpoint="api.example.test/v1/chat")
        with mock.patch("urllib.request.urlopen") as urlopen:
            with self.assertRaises(TextServiceError) as ctx:
                client.complete([{"role": "user", "content": "hi"}])
        self.assertIn("Invalid language model URL", str(ctx.exception))
        urlopen.assert_not_called()

    def test_invalid_payloads(self):
        client = ChatCompletionClient("secret")
        for payload in (b"not json", {"choices": []}, {"unexpected": True}):
            with self.subTest(payload=payload):
                with mock.patch("urllib.request.urlopen", return_value=FakeResponse(payload)):
                    with self.assertRaises(TextServiceError):
                        client.complete([{"role": "user", "content": "hi"}])


if __name__ == "__main__":
    unittest.main()
