"""Turn raw key transitions into translate / spell-check intents."""

from __future__ import annotations

import enum
import logging
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Optional, Protocol


logger = logging.getLogger("cliplingo.gestures")

DEFAULT_GESTURE_DELAY_MS = 500
TRANSLATE_PRESS_COUNT = 2
SPELL_CHECK_PRESS_COUNT = 3

MODIFIER_ALIASES = {
    "ctrl": "ctrl",
    "control": "ctrl",
    "cmd": "command",
    "command": "command",
    "meta": "command",
    "win": "command",
    "windows": "command",
    "alt": "alt",
    "option": "alt",
    "shift": "shift",
}


class Intent(enum.Enum):
    TRANSLATE = "translate"
    SPELL_CHECK = "spell_check"


@dataclass(frozen=True)
class KeyEvent:
    """A single key transition together with every key held after it."""

    name: str
    is_down: bool
    pressed: FrozenSet[str] = frozenset()
    timestamp: float = 0.0


@dataclass(frozen=True)
class ChordSpec:
    """Modifier + letter combination that counts as one gesture press."""

    modifiers: FrozenSet[str]
    key: str
    display: str

    def modifier_held(self, pressed: FrozenSet[str]) -> bool:
        return any(modifier in pressed for modifier in self.modifiers)


def default_chord() -> str:
    return "command+c" if sys.platform == "darwin" else "ctrl+c"


def parse_chord(combo: str) -> ChordSpec:
    """Create a :class:`ChordSpec` from text such as ``"Ctrl+C"``."""

    parts = [part.strip().lower() for part in combo.replace("-", "+").split("+") if part.strip()]
    if not parts:
        raise ValueError(f"Invalid chord definition: {combo!r}")

    modifiers = set()
    keys = []
    for token in parts:
        modifier = MODIFIER_ALIASES.get(token)
        if modifier is not None:
            modifiers.add(modifier)
        else:
            keys.append(token)

    if len(keys) != 1:
        raise ValueError(f"Chord must contain exactly one non-modifier key: {combo!r}")
    if not modifiers:
        raise ValueError(f"Chord is missing a modifier key: {combo!r}")

    display = "+".join([*(m.capitalize() for m in sorted(modifiers)), keys[0].upper()])
    return ChordSpec(modifiers=frozenset(modifiers), key=keys[0], display=display)


def classify_press_count(count: int) -> Optional[Intent]:
    """Map a closed window's press count to an intent.

    Counts above three are not distinguished and all mean spell-check.
    """

    if count >= SPELL_CHECK_PRESS_COUNT:
        return Intent.SPELL_CHECK
    if count == TRANSLATE_PRESS_COUNT:
        return Intent.TRANSLATE
    return None


class TimerLike(Protocol):  # pragma: no cover - protocol is for type checking only
    def start(self) -> None:
        ...

    def cancel(self) -> None:
        ...


def _default_timer_factory(interval: float, function: Callable[[], None]) -> TimerLike:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


@dataclass
class GestureRecognizer:
    """Count repeated chord presses and classify them once the window closes.

    ``on_event`` runs on the input listener thread and never blocks; the
    classification is delivered from the timer thread through ``on_intent``.
    """

    chord: ChordSpec
    on_intent: Callable[[Intent], None]
    delay_ms: int = DEFAULT_GESTURE_DELAY_MS
    now: Callable[[], float] = time.monotonic
    timer_factory: Callable[[float, Callable[[], None]], TimerLike] = _default_timer_factory
    _press_count: int = field(default=0, init=False)
    _last_press_time: Optional[float] = field(default=None, init=False)
    _chord_key_down: bool = field(default=False, init=False)
    _timer: Optional[TimerLike] = field(default=None, init=False)
    _generation: int = field(default=0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def delay(self) -> float:
        return self.delay_ms / 1000.0

    @property
    def press_count(self) -> int:
        return self._press_count

    @property
    def window_pending(self) -> bool:
        return self._timer is not None

    def on_event(self, event: KeyEvent) -> None:
        if event.name != self.chord.key:
            return

        if not event.is_down or event.name not in event.pressed:
            # Release clears the repeat latch independently of the window.
            with self._lock:
                self._chord_key_down = False
            return

        with self._lock:
            if self._chord_key_down:
                return
            if not self.chord.modifier_held(event.pressed):
                return
            self._chord_key_down = True
        self._register_press()

    def _register_press(self) -> None:
        current = self.now()
        with self._lock:
            if self._last_press_time is None or current - self._last_press_time > self.delay:
                self._press_count = 0
            self._press_count += 1
            self._last_press_time = current
            count = self._press_count

            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            timer = self.timer_factory(self.delay, lambda: self._on_window_closed(generation))
            self._timer = timer

        logger.debug("%s press #%d", self.chord.display, count)
        timer.start()

    def _on_window_closed(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            count = self._press_count
            self._press_count = 0
            self._timer = None

        intent = classify_press_count(count)
        if intent is None:
            return

        logger.info("%d x %s classified as %s", count, self.chord.display, intent.value)
        try:
            self.on_intent(intent)
        except Exception as exc:
            logger.exception("Intent handler failed for %s: %s", intent.value, exc)

    def reset(self) -> None:
        """Cancel the pending window and forget every counted press."""

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._generation += 1
            self._press_count = 0
            self._last_press_time = None
            self._chord_key_down = False
