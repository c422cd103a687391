"""Desktop utility that translates or spell-checks the clipboard on a repeated copy chord."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from dataclasses import replace
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Optional

try:  # pragma: no cover - executed during module import
    import pyperclip  # type: ignore
except ImportError:  # pragma: no cover - handled in __init__
    pyperclip = None  # type: ignore

try:  # pragma: no cover - optional dependency for system tray support
    import pystray  # type: ignore
    from pystray import MenuItem  # type: ignore
except Exception:  # pragma: no cover - missing package or no display backend
    pystray = None  # type: ignore
    MenuItem = None  # type: ignore

try:  # pragma: no cover - optional dependency for system tray support
    from PIL import Image, ImageDraw  # type: ignore
except ImportError:  # pragma: no cover - handled when starting the tray icon
    Image = None  # type: ignore
    ImageDraw = None  # type: ignore

from action_dispatcher import ActionDispatcher
from gesture_recognizer import GestureRecognizer, Intent, parse_chord
from input_source import BaseInputSource, InputSourceError, PasteInjector, create_input_source
from notifications import LogNotifier, Notifier, TrayNotifier
from settings import (
    INPUT_BACKENDS,
    PREFERENCES_FILE,
    AppSettings,
    load_settings,
    preferences_template,
    save_preferences,
)
from text_service import ChatCompletionClient, TextService


LOG_FILE_NAME = "cliplingo.log"
LOG_MAX_BYTES = 2_097_152
LOG_BACKUP_COUNT = 3


def _get_logger() -> logging.Logger:
    logger = logging.getLogger("cliplingo")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    log_path = PREFERENCES_FILE.parent / LOG_FILE_NAME
    try:
        handler = RotatingFileHandler(
            log_path,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError:
        handler = None
    if handler is not None:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)
    return logger


logger = logging.getLogger("cliplingo.app")


class SingleInstanceError(RuntimeError):
    """Raised when another instance of the application is already running."""


def _lock_nonblocking(fd: int) -> None:
    if sys.platform == "win32":  # pragma: no cover - platform specific
        import msvcrt  # type: ignore

        msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
    else:
        import fcntl  # type: ignore

        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)


class SingleInstanceGuard:
    """Hold ``<lock_dir>/.<name>.lock`` for as long as ClipLingo runs.

    The lock lives next to the preferences file and log by default. Closing
    the file drops the OS lock, so a crashed instance never blocks the next one.
    """

    def __init__(self, name: str = "cliplingo", *, lock_dir: Optional[Path] = None) -> None:
        self.path = Path(lock_dir or PREFERENCES_FILE.parent) / f".{name}.lock"
        self._handle = None

    def acquire(self) -> None:
        if self._handle is not None:
            return
        handle = open(self.path, "a+", encoding="ascii")
        try:
            handle.seek(0)
            _lock_nonblocking(handle.fileno())
        except OSError as exc:
            handle.close()
            raise SingleInstanceError(f"ClipLingo is already running ({self.path})") from exc
        self._handle = handle

    def release(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> "SingleInstanceGuard":
        self.acquire()
        return self

    def __exit__(self, *_exc_info: object) -> None:
        self.release()


class SystemTrayController:
    """Tray icon with clipboard actions, Reboot and Exit; also shows notifications."""

    def __init__(self, app: "ClipLingoApp", notifier: Optional[TrayNotifier] = None) -> None:
        self._app = app
        self._notifier = notifier
        self._icon: Optional["pystray.Icon"] = None

    @staticmethod
    def _is_supported() -> bool:
        return pystray is not None and MenuItem is not None and Image is not None and ImageDraw is not None

    def start(self) -> None:
        if not self._is_supported():
            logger.warning("System tray icon is unavailable because required dependencies are missing")
            return

        assert pystray is not None  # noqa: S101 - guarded by _is_supported
        menu = pystray.Menu(
            MenuItem("Translate clipboard", self._on_translate),
            MenuItem("Spell-check clipboard", self._on_spell_check),
            MenuItem("Open window", self._on_open_window),
            MenuItem("Reboot", self._on_reboot),
            MenuItem("Exit", self._on_exit),
        )
        self._icon = pystray.Icon("cliplingo", self._create_icon_image(), "ClipLingo", menu=menu)
        self._icon.run_detached()
        if self._notifier is not None:
            self._notifier.attach(self._icon)

    def stop(self) -> None:
        if self._notifier is not None:
            self._notifier.detach()
        if self._icon is not None:
            self._icon.stop()
            self._icon = None

    def _on_translate(self, icon: "pystray.Icon", _: MenuItem) -> None:
        self._app.request(Intent.TRANSLATE)

    def _on_spell_check(self, icon: "pystray.Icon", _: MenuItem) -> None:
        self._app.request(Intent.SPELL_CHECK)

    def _on_open_window(self, icon: "pystray.Icon", _: MenuItem) -> None:
        self._app.open_window()

    def _on_exit(self, icon: "pystray.Icon", _: MenuItem) -> None:
        self._app.stop()
        icon.stop()

    def _on_reboot(self, icon: "pystray.Icon", _: MenuItem) -> None:
        self._app.reboot()
        icon.stop()

    @staticmethod
    def _create_icon_image() -> "Image.Image":
        assert Image is not None and ImageDraw is not None  # noqa: S101 - guarded by _is_supported
        size = 64
        image = Image.new("RGBA", (size, size), (0, 0, 0, 0))
        draw = ImageDraw.Draw(image)
        draw.ellipse((8, 8, size - 8, size - 8), fill=(28, 114, 206, 255))
        draw.rectangle((18, size // 2 - 4, size - 18, size // 2 + 4), fill=(255, 255, 255, 255))
        draw.rectangle((size // 2 - 4, 18, size // 2 + 4, size // 2), fill=(255, 255, 255, 255))
        return image


class ClipLingoApp:
    """Wire the input source, gesture recognizer and dispatcher together."""

    def __init__(
        self,
        settings: AppSettings,
        *,
        text_service_factory: Optional[Callable[[AppSettings], TextService]] = None,
        clipboard_module=pyperclip,
        notifier: Optional[Notifier] = None,
        input_source_factory: Optional[Callable[[str], BaseInputSource]] = None,
        paste_injector=None,
        timer_factory=None,
        sleep: Optional[Callable[[float], None]] = None,
        window_factory: Optional[Callable[["ClipLingoApp"], object]] = None,
    ) -> None:
        if clipboard_module is None:
            raise RuntimeError(
                "The 'pyperclip' package is required. Install it with 'pip install pyperclip'."
            )
        self.settings = settings
        self._clipboard = clipboard_module
        self._text_service: Optional[TextService] = None
        self._text_service_factory = text_service_factory or _default_text_service_factory
        self._text_service_lock = threading.Lock()
        self.notifier = notifier or LogNotifier(logger)
        self._input_source_factory = input_source_factory or create_input_source
        self._input_source: Optional[BaseInputSource] = None
        self._window_factory = window_factory or _default_window_factory
        self._window = None
        self._stop_event = threading.Event()
        self._restart_event = threading.Event()
        self.gestures_active = False

        if paste_injector is None and settings.paste_result:
            paste_injector = PasteInjector()
        dispatcher_kwargs = {"settle_delay": settings.settle_delay_ms / 1000.0}
        if sleep is not None:
            dispatcher_kwargs["sleep"] = sleep
        self.dispatcher = ActionDispatcher(
            lambda: self.text_service,
            clipboard_module,
            self.notifier,
            paste_injector=paste_injector if settings.paste_result else None,
            **dispatcher_kwargs,
        )

        recognizer_kwargs = {}
        if timer_factory is not None:
            recognizer_kwargs["timer_factory"] = timer_factory
        self.recognizer = GestureRecognizer(
            chord=parse_chord(settings.chord),
            on_intent=self.request,
            delay_ms=settings.gesture_delay_ms,
            **recognizer_kwargs,
        )

    @property
    def text_service(self) -> TextService:
        with self._text_service_lock:
            if self._text_service is None:
                self._text_service = self._text_service_factory(self.settings)
            service = self._text_service
        assert service is not None  # For type checkers
        return service

    def _reset_text_service(self) -> None:
        with self._text_service_lock:
            self._text_service = None

    def request(self, intent: Intent) -> Optional[threading.Thread]:
        return self.dispatcher.dispatch(intent)

    def open_window(self) -> None:
        if self._window is None:
            self._window = self._window_factory(self)
        self._window.show()

    def start_gestures(self) -> bool:
        """Start the global listener; on failure the tray and window keep working."""

        if not self.settings.gestures_enabled:
            logger.info("Gestures disabled by configuration")
            return False
        try:
            self._input_source = self._input_source_factory(self.settings.input_backend)
            self._input_source.start(self.recognizer.on_event)
        except InputSourceError as exc:
            logger.error("Keyboard gestures unavailable: %s", exc)
            self.notifier.notify("Keyboard Shortcuts Disabled", str(exc))
            self._input_source = None
            self.gestures_active = False
            return False

        self.gestures_active = True
        chord = self.recognizer.chord.display
        logger.info(
            "Gesture handler started via %s (double %s to translate, triple %s to spell-check)",
            self._input_source.describe(),
            chord,
            chord,
        )
        return True

    def stop_gestures(self) -> None:
        if self._input_source is not None:
            self._input_source.stop()
            self._input_source = None
        self.recognizer.reset()
        self.gestures_active = False

    def start(self, *, tray_controller: Optional[SystemTrayController] = None) -> None:
        """Run until :meth:`stop` is called; :meth:`reboot` restarts the loop."""

        while True:
            self.start_gestures()
            if tray_controller is not None:
                tray_controller.start()

            try:
                self._stop_event.wait()
            except KeyboardInterrupt:  # pragma: no cover - manual console interruption
                self.stop()
            finally:
                if tray_controller is not None:
                    tray_controller.stop()
                self.stop_gestures()

            if self._restart_event.is_set():
                self._restart_event.clear()
                self._stop_event.clear()
                continue

            break

        if self._window is not None:
            self._window.close()

    def stop(self) -> None:
        """Signal the application to shut down."""

        self._restart_event.clear()
        self._stop_event.set()

    def reboot(self) -> None:
        """Restart the listener loop with a fresh text service."""

        self._reset_text_service()
        self._restart_event.set()
        self._stop_event.set()


def _default_text_service_factory(settings: AppSettings) -> TextService:
    client = ChatCompletionClient(
        settings.api_key,
        model=settings.model,
        endpoint=settings.api_url,
        timeout=settings.request_timeout,
    )
    return TextService(client, languages=settings.languages)


def _default_window_factory(app: ClipLingoApp):
    from text_form import TextFormController, TextFormWindow

    return TextFormWindow(TextFormController(lambda: app.text_service), app._clipboard)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Double copy chord translates the clipboard, triple copy chord spell-checks it."
    )
    parser.add_argument("--delay-ms", type=int, default=None, help="Gesture window in milliseconds.")
    parser.add_argument("--model", default=None, help="Language model used for both operations.")
    parser.add_argument("--backend", choices=INPUT_BACKENDS, default=None, help="Keyboard listener backend.")
    parser.add_argument("--no-paste", action="store_true", help="Only write results to the clipboard.")
    parser.add_argument("--no-gestures", action="store_true", help="Disable the global keyboard listener.")
    return parser.parse_args(argv)


def apply_args(settings: AppSettings, args: argparse.Namespace) -> AppSettings:
    updates = {}
    if args.delay_ms is not None and args.delay_ms > 0:
        updates["gesture_delay_ms"] = args.delay_ms
    if args.model:
        updates["model"] = args.model
    if args.backend:
        updates["input_backend"] = args.backend
    if args.no_paste:
        updates["paste_result"] = False
    if args.no_gestures:
        updates["gestures_enabled"] = False
    return replace(settings, **updates)


def main(argv: Optional[list[str]] = None) -> int:
    log = _get_logger()
    try:
        with SingleInstanceGuard():
            settings = apply_args(load_settings(), parse_args(argv))
            if not PREFERENCES_FILE.exists():
                save_preferences(preferences_template(settings))
            if not settings.api_key:
                log.warning("EDGEE_API_KEY is not set; translation requests will fail")
            notifier = TrayNotifier(LogNotifier(logging.getLogger("cliplingo.notifications")))
            app = ClipLingoApp(settings, notifier=notifier)
            tray_controller = SystemTrayController(app, notifier)
            app.start(tray_controller=tray_controller)
    except SingleInstanceError as exc:
        log.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
