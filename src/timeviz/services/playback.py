"""Playback controller.

State machine over two states, ``Stopped(index)`` and ``Playing(index)``,
with exactly one owned timer handle:

    play()    Stopped(i < last) -> Playing(i)
              Stopped(last)     -> Playing(0)
    tick      Playing(i)        -> Playing(i + 1)   while i + 1 <= last
              Playing(last)     -> Stopped(last)    timer cleared
    pause()   Playing(i)        -> Stopped(i)       timer cleared
    scrub(j)  any               -> Stopped(clamp(j)) timer cleared first
    step(d)   any               -> Stopped(clamp(i + d))
    reset()   any               -> Stopped(0)

The timer is always cleared before it is reassigned. Every clear also bumps a
generation counter captured by the tick callback, so a tick that was already
queued by the event loop when its timer was cancelled is ignored instead of
advancing a dataset it no longer belongs to.

Datasets with fewer than two steps cannot play; ``play()`` is a no-op and
``controls_enabled`` is False.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from timeviz.domain.models import PlaybackState

from .timers import TimerBackend, TimerHandle

__all__ = ["PlaybackController"]

log = logging.getLogger(__name__)

PlaybackListener = Callable[[PlaybackState], None]


class PlaybackController:
    def __init__(self, timer_backend: TimerBackend, interval_ms: int = 500) -> None:
        self._timers = timer_backend
        self._interval_ms = max(1, int(interval_ms))
        self._length = 0
        self._index = 0
        self._playing = False
        self._handle: Optional[TimerHandle] = None
        self._generation = 0
        self._disposed = False
        self._listeners: List[PlaybackListener] = []

    # --- observation ------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return PlaybackState(current_index=self._index, is_playing=self._playing)

    @property
    def length(self) -> int:
        return self._length

    @property
    def last_index(self) -> int:
        return max(0, self._length - 1)

    @property
    def controls_enabled(self) -> bool:
        return self._length >= 2 and not self._disposed

    @property
    def timer_active(self) -> bool:
        return self._handle is not None and self._handle.active

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    def add_listener(self, listener: PlaybackListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: PlaybackListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                log.exception("playback listener failed")

    # --- timer ownership --------------------------------------------------------

    def _clear_timer(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _start_timer(self) -> None:
        self._clear_timer()
        generation = self._generation
        self._handle = self._timers.start(self._interval_ms, lambda: self._tick(generation))

    def _tick(self, generation: int) -> None:
        if generation != self._generation or not self._playing:
            log.debug("ignoring stale playback tick (generation %s, current %s)", generation, self._generation)
            return
        if self._index + 1 <= self.last_index:
            self._index += 1
        else:
            self._clear_timer()
            self._playing = False
        self._notify()

    # --- transitions ------------------------------------------------------------

    def load(self, length: int, index: int = 0) -> None:
        """Attach to a dataset of ``length`` steps, stopped at ``index``."""
        self._clear_timer()
        self._disposed = False
        self._length = max(0, int(length))
        self._index = self._clamp(index)
        self._playing = False
        self._notify()

    def set_interval(self, interval_ms: int) -> None:
        self._interval_ms = max(1, int(interval_ms))
        if self._playing:
            self._start_timer()

    def play(self) -> None:
        if self._disposed or self._length < 2:
            return
        if self._playing:
            return
        if self._index >= self.last_index:
            self._index = 0
        self._playing = True
        self._start_timer()
        self._notify()

    def pause(self) -> None:
        if not self._playing:
            return
        self._clear_timer()
        self._playing = False
        self._notify()

    def toggle(self) -> None:
        if self._playing:
            self.pause()
        else:
            self.play()

    def scrub(self, index: int) -> None:
        self._clear_timer()
        self._playing = False
        self._index = self._clamp(index)
        self._notify()

    def step(self, delta: int) -> None:
        self.scrub(self._index + int(delta))

    def reset(self) -> None:
        self.scrub(0)

    def dispose(self) -> None:
        """Release the timer; the controller stays inert until ``load``."""
        self._clear_timer()
        self._playing = False
        self._disposed = True

    def _clamp(self, index: int) -> int:
        return max(0, min(int(index), self.last_index))
