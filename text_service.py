"""Language detection, translation and spell-checking for ClipLingo."""

from __future__ import annotations

import http.client
import json
import re
import socket
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple


DEFAULT_API_URL = "https://api.edgee.ai/v1/chat/completions"
DEFAULT_MODEL = "claude-sonnet-4.5"
DEFAULT_LANGUAGES = ("fr", "en")

LANGUAGE_NAMES = {
    "fr": "French",
    "en": "English",
}

TRANSLATOR_SYSTEM_PROMPT = (
    "You are a translator. You are given a text in a source language and you need to "
    "translate it to a target language. Translate the text as accurately as possible, "
    "finding the most faithful wording in the target language. Return only the "
    "translation, with no explanations or additional text."
)

SPELL_CHECKER_SYSTEM_PROMPT = (
    "You are a spell checker. You are given a text and you need to check it for "
    "spelling, grammar, and punctuation errors. Return only the corrected text, with "
    "no explanations or additional text."
)

_FRENCH_CHARS = re.compile(r"[àâäæçéèêëïîôùûüÿœ]", re.IGNORECASE)
_FRENCH_WORDS = re.compile(
    r"\b(le|la|les|un|une|des|et|est|dans|pour|avec|sur|par|plus|comme|mais|ou|où|ce|qui|que|sont|ont|être|avoir)\b",
    re.IGNORECASE,
)
_ENGLISH_WORDS = re.compile(
    r"\b(the|is|are|and|or|in|on|at|to|for|with|from|by|about|as|this|that|these|those|be|have|has)\b",
    re.IGNORECASE,
)


class TextServiceError(RuntimeError):
    """Raised when the remote language model cannot complete a request."""


@dataclass
class TranslationResult:
    translated_text: str
    detected_lang: str
    target_lang: str


def detect_language(text: str) -> str:
    """Guess whether ``text`` is French or English.

    Any accented French character is worth three points; every common French
    or English word is worth one. Ties go to English.
    """

    if not text or not text.strip():
        return "en"

    french_score = 3 if _FRENCH_CHARS.search(text) else 0
    french_score += len(_FRENCH_WORDS.findall(text))
    english_score = len(_ENGLISH_WORDS.findall(text))
    return "fr" if french_score > english_score else "en"


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


class ChatCompletionClient:
    """Minimal client for an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = DEFAULT_MODEL,
        endpoint: str = DEFAULT_API_URL,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout

    def complete(self, messages: Sequence[Dict[str, str]], *, tags: Sequence[str] = ()) -> str:
        if not self.api_key:
            raise TextServiceError("No API key configured (set EDGEE_API_KEY)")

        body = {"model": self.model, "messages": list(messages)}
        if tags:
            body["tags"] = list(tags)
        try:
            request = urllib.request.Request(
                self.endpoint,
                data=json.dumps(body).encode("utf-8"),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "User-Agent": "ClipLingo/0.1",
                },
                method="POST",
            )
        except ValueError as exc:
            raise TextServiceError(f"Invalid language model URL: {self.endpoint!r}") from exc

        try:
            if self.timeout is None:
                response_cm = urllib.request.urlopen(request)
            else:
                response_cm = urllib.request.urlopen(request, timeout=self.timeout)
            with response_cm as response:
                payload = response.read()
        except urllib.error.HTTPError as exc:
            raise TextServiceError(f"Language model returned HTTP {exc.code}") from exc
        except (socket.timeout, TimeoutError) as exc:
            raise TextServiceError("Request to the language model timed out") from exc
        except urllib.error.URLError as exc:
            raise TextServiceError(f"Network error while contacting the language model: {exc.reason}") from exc
        except (OSError, http.client.HTTPException) as exc:
            raise TextServiceError(f"Connection to the language model failed: {exc}") from exc
        except ValueError as exc:
            raise TextServiceError(f"Invalid language model request: {exc}") from exc

        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TextServiceError("Invalid response from the language model") from exc

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise TextServiceError("Unexpected response structure from the language model") from exc
        return content if isinstance(content, str) else ""


class TextService:
    """Translate between two languages and spell-check through one chat client."""

    def __init__(
        self,
        client: ChatCompletionClient,
        *,
        languages: Tuple[str, str] = DEFAULT_LANGUAGES,
    ) -> None:
        if len(languages) != 2 or languages[0] == languages[1]:
            raise ValueError(f"Exactly two distinct languages are required: {languages!r}")
        self._client = client
        self.languages = tuple(languages)

    def detect_language(self, text: str) -> str:
        detected = detect_language(text)
        if detected in self.languages:
            return detected
        return self.languages[-1]

    def other_language(self, language: str) -> str:
        first, second = self.languages
        return second if language == first else first

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        if not text or not text.strip():
            return ""

        prompt = (
            f"Translate the following {language_name(source_lang)} text to "
            f"{language_name(target_lang)}.\n\nText to translate:\n{text}"
        )
        messages = _messages(TRANSLATOR_SYSTEM_PROMPT, prompt)
        try:
            reply = self._client.complete(messages, tags=["translation"])
        except TextServiceError as exc:
            raise TextServiceError(f"Translation failed: {exc}") from exc
        return reply.strip()

    def auto_translate(self, text: str) -> TranslationResult:
        detected = self.detect_language(text)
        target = self.other_language(detected)
        translated = self.translate(text, detected, target)
        return TranslationResult(translated_text=translated, detected_lang=detected, target_lang=target)

    def spell_check(self, text: str) -> str:
        if not text or not text.strip():
            return ""

        prompt = (
            "Check the following text for spelling, grammar, and punctuation errors. "
            "If the text is already correct, return it as-is.\n\n"
            f"Text to check:\n{text}"
        )
        messages = _messages(SPELL_CHECKER_SYSTEM_PROMPT, prompt)
        try:
            reply = self._client.complete(messages, tags=["spell_check"])
        except TextServiceError as exc:
            raise TextServiceError(f"Spell check failed: {exc}") from exc
        return reply.strip() or text


def _messages(system: str, user: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]
