"""Fire-and-forget status notifications."""

from __future__ import annotations

import logging
from typing import Optional, Protocol


logger = logging.getLogger("cliplingo.notifications")


class Notifier(Protocol):  # pragma: no cover - protocol is for type checking only
    def notify(self, title: str, body: str) -> None:
        """Show a notification; must never raise."""


class LogNotifier:
    """Notifier used when no desktop notification surface is available."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self._logger = log or logger

    def notify(self, title: str, body: str) -> None:
        self._logger.info("%s | %s", title, body)


class TrayNotifier:
    """Show notifications as balloons of the running ``pystray`` icon."""

    def __init__(self, fallback: Optional[LogNotifier] = None) -> None:
        self._icon = None
        self._fallback = fallback or LogNotifier()

    def attach(self, icon) -> None:
        self._icon = icon

    def detach(self) -> None:
        self._icon = None

    def notify(self, title: str, body: str) -> None:
        self._fallback.notify(title, body)
        icon = self._icon
        if icon is None or not getattr(icon, "HAS_NOTIFICATION", True):
            return
        try:
            icon.notify(body or " ", title)
        except Exception as exc:
            logger.debug("Tray notification failed: %s", exc)
