"""Print the normalized key events ClipLingo receives from its input source.

Use this on a machine where gestures are not recognized to check whether the
global listener starts at all (root on Linux, Accessibility permission on
macOS) and which key names arrive. With ``--gestures`` the probe also runs the
gesture recognizer and prints every classified intent.

Usage example::

    python keyboard_hook_probe.py --gestures --log key_events.log

Press Ctrl+C in the terminal to stop the capture.
"""

from __future__ import annotations

import argparse
import datetime as _dt
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from gesture_recognizer import GestureRecognizer, KeyEvent, default_chord, parse_chord
from input_source import InputSourceError, create_input_source
from settings import INPUT_BACKENDS


def _format_event(event: KeyEvent) -> str:
    timestamp = _dt.datetime.now().isoformat(timespec="milliseconds")
    direction = "down" if event.is_down else "up"
    held = ",".join(sorted(event.pressed)) or "-"
    return f"{timestamp} {direction:4s} name={event.name!r:<12} held={held}"


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Record the key events delivered by a ClipLingo input backend."
    )
    parser.add_argument("--backend", choices=INPUT_BACKENDS, default="auto")
    parser.add_argument("--log", type=Path, help="Optional file path to append the captured events.")
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Optional maximum duration in seconds before the script exits.",
    )
    parser.add_argument("--gestures", action="store_true", help="Also print classified gestures.")
    parser.add_argument("--chord", default=default_chord(), help="Chord counted by --gestures.")
    parser.add_argument("--delay-ms", type=int, default=500, help="Gesture window for --gestures.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    log_file = None
    if args.log is not None:
        try:
            log_file = args.log.open("a", encoding="utf-8")
        except OSError as exc:  # pragma: no cover - depends on filesystem
            print(f"Failed to open log file {args.log}: {exc}", file=sys.stderr)
            return 1

    write_lock = threading.Lock()

    def _write(line: str) -> None:
        with write_lock:
            print(line, flush=True)
            if log_file is not None:
                log_file.write(line + "\n")
                log_file.flush()

    recognizer = None
    if args.gestures:
        recognizer = GestureRecognizer(
            chord=parse_chord(args.chord),
            on_intent=lambda intent: _write(f"*** gesture: {intent.value}"),
            delay_ms=args.delay_ms,
        )

    def _handler(event: KeyEvent) -> None:
        _write(_format_event(event))
        if recognizer is not None:
            recognizer.on_event(event)

    try:
        source = create_input_source(args.backend)
        source.start(_handler)
    except InputSourceError as exc:
        print(exc, file=sys.stderr)
        if log_file is not None:
            log_file.close()
        return 2

    print(f"Recording raw keyboard events via {source.describe()}. Press Ctrl+C to stop.")
    try:
        if args.duration is not None:
            deadline = time.time() + max(args.duration, 0)
            while time.time() < deadline:
                time.sleep(0.1)
        else:
            while True:
                time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        source.stop()
        if recognizer is not None:
            recognizer.reset()
        if log_file is not None:
            log_file.close()

    return 0


if __name__ == "__main__":  # pragma: no cover - manual utility script
    raise SystemExit(main())
