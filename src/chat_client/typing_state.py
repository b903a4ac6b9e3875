from __future__ import annotations

import logging
from typing import Callable, Dict

from .config import TYPING_IDLE_MS
from .models import TypingEntry
from .timers import Timer

logger = logging.getLogger(__name__)


class TypingTracker:
    """Users currently composing, driven only by incoming typing pushes.

    Entries are never expired locally; the sending client is responsible for
    announcing the end of a burst.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, TypingEntry] = {}

    def apply(self, username: str, role: str, is_typing: bool) -> None:
        self._entries.pop(username, None)
        if is_typing:
            self._entries[username] = TypingEntry(username=username, role=role)

    def clear(self) -> None:
        self._entries = {}

    def snapshot(self) -> tuple[TypingEntry, ...]:
        return tuple(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, username: object) -> bool:
        return username in self._entries


class TypingDebouncer:
    """Turns keystroke noise into typing start/stop edges for this client.

    One ``emit(True)`` per burst, followed by exactly one ``emit(False)``
    either after ``idle_ms`` without a content change or on ``stop()``.
    """

    def __init__(
        self,
        emit: Callable[[bool], object],
        *,
        idle_ms: int = TYPING_IDLE_MS,
        timer_factory: Callable[[], Timer] = Timer,
    ) -> None:
        self._emit = emit
        self._idle_s = idle_ms / 1000
        self._timer = timer_factory()
        self._typing = False

    @property
    def is_typing(self) -> bool:
        return self._typing

    def content_changed(self) -> None:
        if not self._typing:
            self._typing = True
            self._emit(True)
        self._timer.start(self._idle_s, self._on_idle)

    def stop(self) -> None:
        self._timer.cancel()
        if self._typing:
            self._typing = False
            self._emit(False)

    def cancel(self) -> None:
        """Drop any pending timer and the typing flag without announcing."""

        self._timer.cancel()
        self._typing = False

    def _on_idle(self) -> None:
        logger.debug("typing idle for %.1fs", self._idle_s)
        self.stop()
