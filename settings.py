"""Startup configuration: defaults, JSON preferences, then environment."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

from gesture_recognizer import DEFAULT_GESTURE_DELAY_MS, default_chord, parse_chord
from text_service import DEFAULT_API_URL, DEFAULT_LANGUAGES, DEFAULT_MODEL


logger = logging.getLogger("cliplingo.settings")

PREFERENCES_FILE = Path.home() / ".cliplingo_preferences.json"
DEFAULT_SETTLE_DELAY_MS = 100
INPUT_BACKENDS = ("auto", "keyboard", "pywinhook")


@dataclass(frozen=True)
class AppSettings:
    gesture_delay_ms: int = DEFAULT_GESTURE_DELAY_MS
    settle_delay_ms: int = DEFAULT_SETTLE_DELAY_MS
    paste_result: bool = True
    chord: str = ""
    languages: Tuple[str, str] = DEFAULT_LANGUAGES
    api_key: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    model: str = DEFAULT_MODEL
    request_timeout: Optional[float] = None
    input_backend: str = "auto"
    gestures_enabled: bool = True

    def __post_init__(self) -> None:
        if not self.chord:
            object.__setattr__(self, "chord", default_chord())


def load_preferences(path: Path = PREFERENCES_FILE) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_preferences(preferences: dict, path: Path = PREFERENCES_FILE) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(preferences, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as exc:
        logger.warning("Failed to save preferences to %s: %s", path, exc)


def preferences_template(settings: AppSettings) -> dict:
    """Editable subset of ``settings``; secrets stay in the environment."""

    return {
        "gesture_delay_ms": settings.gesture_delay_ms,
        "settle_delay_ms": settings.settle_delay_ms,
        "paste_result": settings.paste_result,
        "chord": settings.chord,
        "languages": list(settings.languages),
        "api_url": settings.api_url,
        "model": settings.model,
        "input_backend": settings.input_backend,
    }


def _positive_int(value: object) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return None
    if isinstance(value, int) and value > 0:
        return value
    return None


def _positive_float(value: object) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, (int, float)) and value > 0:
        return float(value)
    return None


def _merge_preferences(settings: AppSettings, prefs: dict) -> AppSettings:
    updates = {}

    delay = _positive_int(prefs.get("gesture_delay_ms"))
    if delay is not None:
        updates["gesture_delay_ms"] = delay

    settle = prefs.get("settle_delay_ms")
    if isinstance(settle, int) and not isinstance(settle, bool) and settle >= 0:
        updates["settle_delay_ms"] = settle

    paste = prefs.get("paste_result")
    if isinstance(paste, bool):
        updates["paste_result"] = paste

    chord = prefs.get("chord")
    if isinstance(chord, str) and chord.strip():
        try:
            parse_chord(chord)
        except ValueError as exc:
            logger.warning("Ignoring chord preference: %s", exc)
        else:
            updates["chord"] = chord.strip()

    languages = prefs.get("languages")
    if (
        isinstance(languages, list)
        and len(languages) == 2
        and all(isinstance(code, str) and code for code in languages)
        and languages[0] != languages[1]
    ):
        updates["languages"] = (languages[0], languages[1])

    for key in ("api_url", "model"):
        value = prefs.get(key)
        if isinstance(value, str) and value.strip():
            updates[key] = value.strip()

    timeout = _positive_float(prefs.get("request_timeout"))
    if timeout is not None:
        updates["request_timeout"] = timeout

    backend = prefs.get("input_backend")
    if isinstance(backend, str) and backend.lower() in INPUT_BACKENDS:
        updates["input_backend"] = backend.lower()

    return replace(settings, **updates)


def _merge_environment(settings: AppSettings, env: Mapping[str, str]) -> AppSettings:
    updates = {}

    delay = _positive_int(env.get("SHORTCUT_DELAY_MS"))
    if delay is not None:
        updates["gesture_delay_ms"] = delay
    elif env.get("SHORTCUT_DELAY_MS"):
        logger.warning("Ignoring invalid SHORTCUT_DELAY_MS=%r", env["SHORTCUT_DELAY_MS"])

    if env.get("EDGEE_API_KEY"):
        updates["api_key"] = env["EDGEE_API_KEY"]
    if env.get("EDGEE_MODEL"):
        updates["model"] = env["EDGEE_MODEL"]
    if env.get("EDGEE_API_URL"):
        updates["api_url"] = env["EDGEE_API_URL"]

    timeout = _positive_float(env.get("CLIPLINGO_REQUEST_TIMEOUT"))
    if timeout is not None:
        updates["request_timeout"] = timeout

    return replace(settings, **updates)


def load_settings(
    env: Optional[Mapping[str, str]] = None,
    preferences_file: Optional[Path] = None,
) -> AppSettings:
    """Build the settings read once at startup.

    When ``env`` is omitted a ``.env`` file is loaded into the process
    environment first and ``os.environ`` is used.
    """

    if env is None:
        load_dotenv()
        env = os.environ
    prefs = load_preferences(preferences_file or PREFERENCES_FILE)
    settings = _merge_preferences(AppSettings(), prefs)
    return _merge_environment(settings, env)
