"""Timer backends.

The playback controller and the resize coalescer never talk to ``QTimer``
directly; they go through a ``TimerBackend`` so the same state machines run
under the Qt event loop and in deterministic headless tests.

* ``QtTimerBackend`` wraps ``QTimer`` (requires a running ``QApplication``
  for callbacks to fire).
* ``ManualTimerBackend`` keeps a virtual clock advanced explicitly with
  ``advance(ms)``; ``active_count()`` exposes how many timers are live, which
  is how leaked timers are detected in tests.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Callable, List, Optional, Protocol

__all__ = ["TimerHandle", "TimerBackend", "QtTimerBackend", "ManualTimerBackend"]

log = logging.getLogger(__name__)


class TimerHandle(Protocol):
    @property
    def active(self) -> bool: ...  # pragma: no cover - structural

    def cancel(self) -> None: ...  # pragma: no cover - structural


class TimerBackend(Protocol):
    def start(self, interval_ms: int, callback: Callable[[], None], single_shot: bool = False) -> TimerHandle:
        ...  # pragma: no cover - structural

    def active_count(self) -> int: ...  # pragma: no cover - structural


# --- Qt ---------------------------------------------------------------------


class _QtHandle:
    def __init__(self, timer: Any, backend: "QtTimerBackend") -> None:
        self._timer = timer
        self._backend = backend

    @property
    def active(self) -> bool:
        return self._timer is not None and self._timer.isActive()

    def cancel(self) -> None:
        if self._timer is None:
            return
        self._timer.stop()
        self._timer.deleteLater()
        self._timer = None
        self._backend._handles.discard(self)


class QtTimerBackend:
    def __init__(self, parent: Any = None) -> None:
        self._parent = parent
        self._handles: set = set()

    def start(self, interval_ms: int, callback: Callable[[], None], single_shot: bool = False) -> _QtHandle:
        from PyQt6.QtCore import QTimer

        timer = QTimer(self._parent)
        timer.setSingleShot(single_shot)
        timer.setInterval(max(0, int(interval_ms)))
        handle = _QtHandle(timer, self)

        def _fire() -> None:
            if single_shot:
                handle.cancel()
            callback()

        timer.timeout.connect(_fire)  # type: ignore[attr-defined]
        timer.start()
        self._handles.add(handle)
        return handle

    def active_count(self) -> int:
        return sum(1 for h in self._handles if h.active)


# --- Manual -------------------------------------------------------------------


class _ManualHandle:
    _ids = itertools.count()

    def __init__(self, due_ms: float, interval_ms: int, callback: Callable[[], None], single_shot: bool) -> None:
        self.id = next(self._ids)
        self.due_ms = due_ms
        self.interval_ms = interval_ms
        self.callback = callback
        self.single_shot = single_shot
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        self._active = False


class ManualTimerBackend:
    """Virtual-clock timers fired only by ``advance``."""

    def __init__(self) -> None:
        self.now_ms: float = 0.0
        self._timers: List[_ManualHandle] = []
        self.fired = 0

    def start(self, interval_ms: int, callback: Callable[[], None], single_shot: bool = False) -> _ManualHandle:
        interval = max(1, int(interval_ms))
        handle = _ManualHandle(self.now_ms + interval, interval, callback, single_shot)
        self._timers.append(handle)
        return handle

    def active_count(self) -> int:
        self._timers = [t for t in self._timers if t.active]
        return len(self._timers)

    def _next_due(self, until: float) -> Optional[_ManualHandle]:
        due = [t for t in self._timers if t.active and t.due_ms <= until]
        if not due:
            return None
        return min(due, key=lambda t: (t.due_ms, t.id))

    def advance(self, ms: float) -> None:
        """Move the clock forward, firing due callbacks in time order."""
        until = self.now_ms + ms
        while True:
            timer = self._next_due(until)
            if timer is None:
                break
            self.now_ms = timer.due_ms
            if timer.single_shot:
                timer.cancel()
            else:
                timer.due_ms += timer.interval_ms
            self.fired += 1
            timer.callback()
        self.now_ms = until
        self.active_count()
