"""Run translate / spell-check intents against the clipboard."""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Callable, Dict, Optional

from gesture_recognizer import Intent
from notifications import Notifier
from text_service import TextService


logger = logging.getLogger("cliplingo.dispatcher")

DEFAULT_SETTLE_DELAY = 0.1
PREVIEW_LENGTH = 100


class DispatchOutcome(enum.Enum):
    SKIPPED_BUSY = "skipped_busy"
    EMPTY_INPUT = "empty_input"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class OperationState(enum.Enum):
    IDLE = "idle"
    BUSY = "busy"


class OperationGuard:
    """Idle/busy latch per intent; a busy intent rejects new work instead of queueing it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: Dict[Intent, OperationState] = {intent: OperationState.IDLE for intent in Intent}

    def try_acquire(self, intent: Intent) -> bool:
        with self._lock:
            if self._states[intent] is OperationState.BUSY:
                return False
            self._states[intent] = OperationState.BUSY
            return True

    def release(self, intent: Intent) -> None:
        with self._lock:
            self._states[intent] = OperationState.IDLE

    def is_busy(self, intent: Intent) -> bool:
        with self._lock:
            return self._states[intent] is OperationState.BUSY


def _preview(text: str, limit: int = PREVIEW_LENGTH) -> str:
    return text if len(text) <= limit else text[:limit] + "…"


class ActionDispatcher:
    """Read the clipboard, call the text service, write and paste the result.

    ``dispatch`` starts a worker thread per accepted intent; ``run`` executes
    the same steps on the calling thread. At most one operation of each
    intent is in flight; translate and spell-check may overlap.
    """

    def __init__(
        self,
        text_service_provider: Callable[[], TextService],
        clipboard_module,
        notifier: Notifier,
        *,
        paste_injector=None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        guard: Optional[OperationGuard] = None,
    ) -> None:
        self._text_service_provider = text_service_provider
        self._clipboard = clipboard_module
        self._notifier = notifier
        self._paste_injector = paste_injector
        self._settle_delay = settle_delay
        self._sleep = sleep
        self.guard = guard or OperationGuard()

    def dispatch(self, intent: Intent) -> Optional[threading.Thread]:
        if not self.guard.try_acquire(intent):
            logger.info("%s already in progress; ignoring gesture", intent.value)
            return None
        worker = threading.Thread(
            target=self._run_acquired,
            args=(intent,),
            name=f"Dispatch-{intent.value}",
            daemon=True,
        )
        try:
            worker.start()
        except RuntimeError:
            self.guard.release(intent)
            raise
        return worker

    def run(self, intent: Intent) -> DispatchOutcome:
        if not self.guard.try_acquire(intent):
            logger.info("%s already in progress; ignoring request", intent.value)
            return DispatchOutcome.SKIPPED_BUSY
        return self._run_acquired(intent)

    def _run_acquired(self, intent: Intent) -> DispatchOutcome:
        try:
            if intent is Intent.TRANSLATE:
                return self._translate()
            return self._spell_check()
        finally:
            self.guard.release(intent)

    def _notify(self, title: str, body: str) -> None:
        try:
            self._notifier.notify(title, body)
        except Exception as exc:  # pragma: no cover - notifiers are expected not to raise
            logger.debug("Notifier raised: %s", exc)

    def _read_clipboard(self) -> str:
        self._sleep(self._settle_delay)
        text = self._clipboard.paste()
        return text if isinstance(text, str) else ""

    def _write_clipboard(self, text: str) -> None:
        self._clipboard.copy(text)

    def _paste(self) -> None:
        if self._paste_injector is None:
            return
        self._sleep(self._settle_delay)
        self._paste_injector.send_paste_chord()

    def _translate(self) -> DispatchOutcome:
        self._notify("Translating...", "Please wait while your text is translated")
        try:
            text = self._read_clipboard()
            if not text.strip():
                logger.info("Clipboard is empty, skipping translation")
                self._notify("No Text Found", "Clipboard is empty")
                return DispatchOutcome.EMPTY_INPUT

            logger.info("Translating %d characters", len(text))
            result = self._text_service_provider().auto_translate(text)
            self._write_clipboard(result.translated_text)
            self._notify(
                f"Translated {result.detected_lang.upper()} → {result.target_lang.upper()}",
                _preview(result.translated_text),
            )
            self._paste()
        except Exception as exc:
            logger.exception("Translation failed: %s", exc)
            self._notify("Translation Error", str(exc))
            return DispatchOutcome.FAILED

        logger.info("Translation delivered")
        return DispatchOutcome.SUCCEEDED

    def _spell_check(self) -> DispatchOutcome:
        self._notify("Checking Spelling...", "Please wait while your text is checked")
        try:
            text = self._read_clipboard()
            if not text.strip():
                logger.info("Clipboard is empty, skipping spell check")
                self._notify("No Text Found", "Clipboard is empty")
                return DispatchOutcome.EMPTY_INPUT

            logger.info("Spell-checking %d characters", len(text))
            corrected = self._text_service_provider().spell_check(text)
            # A trailing newline copied with the selection is not a correction.
            changed = corrected.strip() != text.strip()
            self._write_clipboard(corrected)
            if changed:
                self._notify("Spell Check Complete", "Text corrected and ready to paste")
            else:
                self._notify("Spell Check Complete", "No errors found")
            self._paste()
        except Exception as exc:
            logger.exception("Spell check failed: %s", exc)
            self._notify("Spell Check Error", str(exc))
            return DispatchOutcome.FAILED

        logger.info("Spell check delivered (changed=%s)", changed)
        return DispatchOutcome.SUCCEEDED
