"""Small Tk window that translates or spell-checks typed text on demand."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Optional

try:
    import tkinter as tk
    from tkinter import scrolledtext, font as tkfont
except ImportError as exc:  # pragma: no cover - tkinter ships with CPython installers
    raise SystemExit("tkinter is required to display the ClipLingo window") from exc

from text_service import TextService, TextServiceError, language_name


logger = logging.getLogger("cliplingo.window")


@dataclass
class FormResult:
    output: str
    badge: str = ""
    error: Optional[str] = None


class TextFormController:
    """Direct translate / spell-check calls behind the window buttons."""

    def __init__(self, text_service_provider: Callable[[], TextService]) -> None:
        self._text_service_provider = text_service_provider

    def translate(self, text: str) -> FormResult:
        if not text.strip():
            return FormResult(output="")
        try:
            result = self._text_service_provider().auto_translate(text)
        except TextServiceError as exc:
            logger.error("Window translation failed: %s", exc)
            return FormResult(output="", error=str(exc))
        badge = f"{language_name(result.detected_lang)} → {language_name(result.target_lang)}"
        return FormResult(output=result.translated_text, badge=badge)

    def spell_check(self, text: str) -> FormResult:
        if not text.strip():
            return FormResult(output="")
        try:
            corrected = self._text_service_provider().spell_check(text)
        except TextServiceError as exc:
            logger.error("Window spell check failed: %s", exc)
            return FormResult(output=text, error=str(exc))
        # Whitespace around the input is not a correction.
        badge = "Corrected" if corrected.strip() != text.strip() else "No errors found"
        return FormResult(output=corrected, badge=badge)


class TextFormWindow:
    """Create and reuse a single Tk window running on its own thread."""

    def __init__(
        self,
        controller: TextFormController,
        clipboard_module,
    ) -> None:
        self._controller = controller
        self._clipboard = clipboard_module
        self._queue: "queue.Queue[tuple[str, FormResult]]" = queue.Queue()
        self._ready = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._window: Optional[tk.Tk] = None
        self._busy = threading.Event()

    def show(self) -> None:
        if self._thread is None or not self._thread.is_alive():
            self._ready.clear()
            self._thread = threading.Thread(target=self._run_window, name="TextFormWindow", daemon=True)
            self._thread.start()
            self._ready.wait()
        window = self._window
        if window is not None:
            window.after(0, lambda: self._bring_to_front(window))

    def close(self) -> None:
        window = self._window
        if window is not None:
            window.after(0, window.destroy)

    @staticmethod
    def _bring_to_front(window: tk.Tk) -> None:
        window.deiconify()
        window.lift()
        window.attributes("-topmost", True)
        window.after(100, lambda: window.attributes("-topmost", False))
        window.focus_force()

    def _submit(self, action: str, text: str) -> None:
        if self._busy.is_set():
            return
        self._busy.set()

        def worker() -> None:
            try:
                if action == "translate":
                    result = self._controller.translate(text)
                else:
                    result = self._controller.spell_check(text)
            finally:
                self._busy.clear()
            self._queue.put((action, result))

        threading.Thread(target=worker, name=f"Form-{action}", daemon=True).start()

    def _run_window(self) -> None:
        window = tk.Tk()
        self._window = window
        window.title("ClipLingo")
        window.geometry("720x480")

        default_font = tkfont.nametofont("TkDefaultFont")
        family = default_font.actual("family")
        button_font = tkfont.Font(family=family, size=11)
        label_font = tkfont.Font(family=family, size=10, weight="bold")
        text_font = tkfont.Font(family=family, size=12)

        controls = tk.Frame(window)
        controls.pack(fill=tk.X, padx=10, pady=(10, 5))

        content_pane = tk.PanedWindow(window, orient=tk.VERTICAL, sashwidth=6)
        content_pane.pack(fill=tk.BOTH, expand=True, padx=10, pady=(0, 10))

        input_frame = tk.Frame(content_pane)
        content_pane.add(input_frame, minsize=80)
        tk.Label(input_frame, text="Text", font=label_font).pack(anchor="w", pady=(0, 4))
        input_box = scrolledtext.ScrolledText(input_frame, wrap=tk.WORD, height=8, font=text_font)
        input_box.pack(fill=tk.BOTH, expand=True)

        output_frame = tk.Frame(content_pane)
        content_pane.add(output_frame, minsize=80)
        badge = tk.Label(output_frame, text="Result", font=label_font)
        badge.pack(anchor="w", pady=(0, 4))
        output_box = scrolledtext.ScrolledText(output_frame, wrap=tk.WORD, height=8, font=text_font)
        output_box.configure(state=tk.DISABLED)
        output_box.pack(fill=tk.BOTH, expand=True)

        status = tk.Label(window, text="", anchor="w", fg="#b00020")
        status.pack(fill=tk.X, padx=10, pady=(0, 8))

        def current_input() -> str:
            return input_box.get("1.0", tk.END).rstrip("\n")

        def copy_output() -> None:
            text = output_box.get("1.0", tk.END).rstrip("\n")
            if text:
                self._clipboard.copy(text)

        for label, command in (
            ("Translate", lambda: self._submit("translate", current_input())),
            ("Spell check", lambda: self._submit("spell_check", current_input())),
            ("Copy result", copy_output),
        ):
            tk.Button(controls, text=label, font=button_font, command=command).pack(side=tk.LEFT, padx=(0, 8))

        def handle_escape(event: tk.Event) -> str:
            window.withdraw()
            return "break"

        window.protocol("WM_DELETE_WINDOW", window.withdraw)
        window.bind("<Escape>", handle_escape)

        def apply_update() -> None:
            try:
                while True:
                    action, result = self._queue.get_nowait()
                    output_box.configure(state=tk.NORMAL)
                    output_box.delete("1.0", tk.END)
                    output_box.insert(tk.END, result.output)
                    output_box.configure(state=tk.DISABLED)
                    title = "Translation" if action == "translate" else "Spell check"
                    badge.configure(text=f"{title}: {result.badge}" if result.badge else title)
                    status.configure(text=result.error or "")
            except queue.Empty:
                pass
            window.after(100, apply_update)

        self._ready.set()
        apply_update()
        window.mainloop()
        self._window = None
