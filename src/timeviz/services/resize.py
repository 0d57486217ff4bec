"""Responsive host: debounced resize coalescing.

A drag-resize produces a burst of size events. ``ResizeCoalescer`` keeps
only the latest size and commits it once no further event arrived for
``debounce_ms``; each new event restarts the quiet period (last event wins).
The commit callback recomputes scales and re-renders the current step.
Playback and hover state are untouched.

Only one debounce timer exists per coalescer; it is cancelled before every
restart. ``watch(widget)`` installs a Qt event filter forwarding the
widget's resize events.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Tuple

from timeviz.config import settings

from .timers import TimerBackend, TimerHandle

__all__ = ["ResizeCoalescer"]

log = logging.getLogger(__name__)

CommitCallback = Callable[[int, int], None]


class ResizeCoalescer:
    def __init__(
        self,
        on_commit: CommitCallback,
        timer_backend: TimerBackend,
        debounce_ms: int | None = None,
    ) -> None:
        ms = settings.RESIZE_DEBOUNCE_MS if debounce_ms is None else debounce_ms
        self._debounce_ms = max(10, min(int(ms), 1000))
        self._on_commit = on_commit
        self._timers = timer_backend
        self._handle: Optional[TimerHandle] = None
        self._latest: Optional[Tuple[int, int]] = None
        self._pending = 0
        self._filter: Any = None
        self.commits = 0

    @property
    def debounce_ms(self) -> int:
        return self._debounce_ms

    def pending_count(self) -> int:
        """Resize events received since the last commit."""
        return self._pending

    def notify(self, width: int, height: int) -> None:
        self._latest = (int(width), int(height))
        self._pending += 1
        self._cancel()
        self._handle = self._timers.start(self._debounce_ms, self._flush, single_shot=True)

    def force_commit(self) -> None:
        if self._latest is not None:
            self._flush()

    def cancel(self) -> None:
        """Drop any pending size without committing it."""
        self._cancel()
        self._latest = None
        self._pending = 0

    def _cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _flush(self) -> None:
        self._cancel()
        latest, self._latest = self._latest, None
        coalesced, self._pending = self._pending, 0
        if latest is None:
            return
        log.debug("committing resize %sx%s (%d events coalesced)", latest[0], latest[1], coalesced)
        self.commits += 1
        self._on_commit(*latest)

    # --- Qt glue -------------------------------------------------------------

    def watch(self, widget: Any) -> None:
        """Forward ``widget`` resize events into ``notify``."""
        if self._filter is not None:
            return
        self._filter = _make_resize_filter(widget, self)
        widget.installEventFilter(self._filter)


def _make_resize_filter(widget: Any, coalescer: ResizeCoalescer) -> Any:
    from PyQt6.QtCore import QEvent, QObject

    class _ResizeFilter(QObject):
        def eventFilter(self, watched, event):  # type: ignore[override]
            if event.type() == QEvent.Type.Resize:
                size = event.size()
                coalescer.notify(size.width(), size.height())
            return False

    return _ResizeFilter(widget)
