"""Raw keyboard input sources and synthetic paste injection.

The gesture recognizer only sees :class:`gesture_recognizer.KeyEvent`; every
backend below translates its own event objects into that shape.
"""

from __future__ import annotations

import logging
import sys
import threading
import time
from typing import Callable, Dict, FrozenSet, Optional, Tuple

from gesture_recognizer import KeyEvent

try:
    import win32api  # type: ignore
    import win32con  # type: ignore
except Exception:  # pragma: no cover - optional dependency on non-Windows platforms
    win32api = None  # type: ignore
    win32con = None  # type: ignore

try:
    import pyWinhook  # type: ignore
except Exception:  # pragma: no cover - optional dependency on non-Windows platforms
    pyWinhook = None  # type: ignore

try:
    import pythoncom  # type: ignore
except Exception:  # pragma: no cover - optional dependency on non-Windows platforms
    pythoncom = None  # type: ignore


logger = logging.getLogger("cliplingo.input")

EventCallback = Callable[[KeyEvent], None]

_KEY_ALIASES = {
    "control": "ctrl",
    "ctrl": "ctrl",
    "lcontrol": "ctrl",
    "rcontrol": "ctrl",
    "command": "command",
    "cmd": "command",
    "windows": "command",
    "win": "command",
    "lwin": "command",
    "rwin": "command",
    "meta": "command",
    "alt": "alt",
    "alt gr": "alt",
    "option": "alt",
    "menu": "alt",
    "lmenu": "alt",
    "rmenu": "alt",
    "shift": "shift",
    "lshift": "shift",
    "rshift": "shift",
}


def normalize_key_name(name: Optional[str]) -> Optional[str]:
    """Collapse left/right variants and platform spellings to one name."""

    if not name:
        return None
    token = name.strip().lower()
    for prefix in ("left ", "right "):
        if token.startswith(prefix):
            token = token[len(prefix):]
    return _KEY_ALIASES.get(token, token)


class InputSourceError(RuntimeError):
    """Raised when a global keyboard listener cannot be started."""


class BaseInputSource:
    """Protocol-like base class for raw keyboard listeners."""

    def start(self, callback: EventCallback) -> None:  # pragma: no cover - interface definition
        raise NotImplementedError

    def stop(self) -> None:  # pragma: no cover - interface definition
        raise NotImplementedError

    def describe(self) -> str:  # pragma: no cover - interface definition
        raise NotImplementedError


class _PressedKeys:
    """Held keys, tracked by raw backend name and reported normalized.

    Left and right modifiers are separate physical keys: releasing one of them
    must not drop the normalized name while the other is still held.
    """

    def __init__(self) -> None:
        self._held: Dict[str, str] = {}
        self._lock = threading.Lock()

    def down(self, raw: str, key: str) -> FrozenSet[str]:
        with self._lock:
            self._held[raw] = key
            return frozenset(self._held.values())

    def up(self, raw: str) -> FrozenSet[str]:
        with self._lock:
            self._held.pop(raw, None)
            return frozenset(self._held.values())

    def clear(self) -> None:
        with self._lock:
            self._held.clear()

    def update(self, raw_name: Optional[str], is_down: bool) -> Tuple[Optional[str], FrozenSet[str]]:
        """Record one transition and return ``(normalized name, pressed set)``."""

        key = normalize_key_name(raw_name)
        if key is None:
            return None, frozenset()
        raw = raw_name.strip().lower()
        return key, (self.down(raw, key) if is_down else self.up(raw))


class KeyboardHookInputSource(BaseInputSource):
    """Listener built on ``keyboard.hook`` (Windows, Linux as root, macOS)."""

    def __init__(self, *, keyboard_module=None) -> None:
        self._keyboard = keyboard_module
        self._callback: Optional[EventCallback] = None
        self._hook_handle = None
        self._pressed = _PressedKeys()

    def describe(self) -> str:
        return "keyboard"

    def start(self, callback: EventCallback) -> None:
        if self._hook_handle is not None:
            return
        self._callback = callback
        try:
            if self._keyboard is None:
                import keyboard  # type: ignore

                self._keyboard = keyboard
            self._hook_handle = self._keyboard.hook(self._on_event)
        except Exception as exc:
            self._callback = None
            raise InputSourceError(f"Failed to start keyboard listener: {exc}") from exc
        logger.info("Keyboard hook installed")

    def stop(self) -> None:
        if self._hook_handle is None or self._keyboard is None:
            return
        try:
            self._keyboard.unhook(self._hook_handle)
        except (KeyError, ValueError) as exc:
            logger.debug("Keyboard hook already removed: %s", exc)
        self._hook_handle = None
        self._callback = None
        self._pressed.clear()
        logger.info("Keyboard hook removed")

    def _on_event(self, event) -> None:
        callback = self._callback
        if callback is None:
            return

        is_down = getattr(event, "event_type", "down") == "down"
        key, pressed = self._pressed.update(getattr(event, "name", None), is_down)
        if key is None:
            return
        timestamp = getattr(event, "time", None) or time.time()
        try:
            callback(KeyEvent(name=key, is_down=is_down, pressed=pressed, timestamp=timestamp))
        except Exception as exc:  # pragma: no cover - keeps the OS hook alive
            logger.exception("Key event handler failed: %s", exc)


class PyWinhookInputSource(BaseInputSource):
    """Windows listener using a pyWinhook low-level hook and its own message pump."""

    def __init__(self) -> None:
        if pyWinhook is None or pythoncom is None:
            raise InputSourceError("pyWinhook is not available")

        self._callback: Optional[EventCallback] = None
        self._pressed = _PressedKeys()
        self._stop_event = threading.Event()
        self._ready_event = threading.Event()
        self._thread_id: Optional[int] = None
        self._hook_manager: Optional["pyWinhook.HookManager"] = None
        self._pump_thread: Optional[threading.Thread] = None
        self._start_error: Optional[BaseException] = None

    def describe(self) -> str:
        return "pywinhook"

    def start(self, callback: EventCallback) -> None:
        if self._pump_thread is not None and self._pump_thread.is_alive():
            return
        self._callback = callback
        self._stop_event.clear()
        self._ready_event.clear()
        self._start_error = None
        self._pump_thread = threading.Thread(
            target=self._run_message_loop, name="PyWinhookKeyboard", daemon=True
        )
        self._pump_thread.start()

        if not self._ready_event.wait(timeout=2.0):
            raise InputSourceError("pyWinhook keyboard hook failed to initialise")
        if self._start_error is not None:
            raise InputSourceError(f"pyWinhook keyboard hook failed: {self._start_error}")

    def stop(self) -> None:
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        self._wake_message_loop()
        if self._pump_thread is not None and self._pump_thread.is_alive():
            self._pump_thread.join(timeout=1.0)
        self._pump_thread = None
        self._pressed.clear()

    def _run_message_loop(self) -> None:
        try:
            pythoncom.CoInitialize()
        except Exception as exc:  # pragma: no cover - Windows only
            self._start_error = exc
            self._ready_event.set()
            return

        try:
            hook_manager = pyWinhook.HookManager()
            hook_manager.KeyDown = self._on_key_down
            hook_manager.KeyUp = self._on_key_up
            hook_manager.HookKeyboard()

            self._hook_manager = hook_manager
            if win32api is not None:
                self._thread_id = win32api.GetCurrentThreadId()  # type: ignore[attr-defined]
            self._ready_event.set()

            while not self._stop_event.is_set():
                try:
                    pythoncom.PumpWaitingMessages()
                except pythoncom.com_error:  # pragma: no cover - Windows only
                    break
                time.sleep(0.01)
        except Exception as exc:  # pragma: no cover - Windows only
            self._start_error = exc
            logger.exception("pyWinhook message loop crashed: %s", exc)
        finally:
            if self._hook_manager is not None:
                self._hook_manager.UnhookKeyboard()
            self._hook_manager = None
            self._thread_id = None
            self._ready_event.set()
            pythoncom.CoUninitialize()

    def _wake_message_loop(self) -> None:
        thread_id = self._thread_id
        if thread_id is None or win32api is None or win32con is None:
            return
        win32api.PostThreadMessage(thread_id, win32con.WM_NULL, 0, 0)

    def _on_key_down(self, event: "pyWinhook.KeyboardEvent") -> bool:
        self._emit(event, is_down=True)
        return True

    def _on_key_up(self, event: "pyWinhook.KeyboardEvent") -> bool:
        self._emit(event, is_down=False)
        return True

    def _emit(self, event: "pyWinhook.KeyboardEvent", *, is_down: bool) -> None:
        callback = self._callback
        if callback is None:
            return
        key, pressed = self._pressed.update(getattr(event, "Key", ""), is_down)
        if key is None:
            return
        try:
            callback(KeyEvent(name=key, is_down=is_down, pressed=pressed, timestamp=time.time()))
        except Exception as exc:  # pragma: no cover - keeps the OS hook alive
            logger.exception("Key event handler failed: %s", exc)


def create_input_source(backend: str = "auto") -> BaseInputSource:
    """Pick a raw input backend for the current platform."""

    backend = backend.lower()
    if backend == "pywinhook":
        return PyWinhookInputSource()
    if backend == "keyboard":
        return KeyboardHookInputSource()
    if backend != "auto":
        raise ValueError(f"Unknown input backend: {backend!r}")
    if sys.platform == "win32" and pyWinhook is not None and pythoncom is not None:
        return PyWinhookInputSource()
    return KeyboardHookInputSource()


class PasteInjector:
    """Send the platform paste chord to whatever window has focus."""

    def __init__(self, *, keyboard_module=None, combo: Optional[str] = None) -> None:
        self._keyboard = keyboard_module
        self.combo = combo or ("command+v" if sys.platform == "darwin" else "ctrl+v")

    def send_paste_chord(self) -> None:
        try:
            if self._keyboard is None:
                import keyboard  # type: ignore

                self._keyboard = keyboard
            self._keyboard.send(self.combo)
        except Exception as exc:
            logger.warning("Failed to send %s: %s", self.combo, exc)
