"""Per-chart event bus.

Synchronous publish/subscribe used by ``ChartSession`` to announce playback,
hover, frame and status changes to host UIs. Each chart instance owns its own
bus; nothing is shared across charts.

A failing handler is logged and recorded in ``errors``, a bounded ring of the
latest failures; the remaining handlers still run and the publisher never
sees the exception.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Dict, List, Protocol, Tuple

__all__ = ["ChartEvent", "Event", "EventBus", "EventHandler", "Subscription"]

log = logging.getLogger(__name__)


class ChartEvent(str, Enum):
    PLAYBACK_CHANGED = "playback_changed"
    HOVER_CHANGED = "hover_changed"
    FRAME_RENDERED = "frame_rendered"
    STATUS_CHANGED = "status_changed"


@dataclass
class Event:
    name: str
    payload: Any


class EventHandler(Protocol):
    def __call__(self, event: Event) -> None: ...  # pragma: no cover - structural


@dataclass(eq=False)
class Subscription:
    event: str
    handler: EventHandler
    once: bool
    active: bool = True

    def cancel(self) -> None:
        self.active = False


class EventBus:
    DEFAULT_ERROR_CAPACITY = 50

    def __init__(self, error_capacity: int = DEFAULT_ERROR_CAPACITY) -> None:
        self._subs: Dict[str, List[Subscription]] = {}
        self._errors: Deque[Tuple[Event, BaseException]] = deque(maxlen=error_capacity)

    def subscribe(self, name: str | ChartEvent, handler: EventHandler, *, once: bool = False) -> Subscription:
        key = name.value if isinstance(name, ChartEvent) else name
        sub = Subscription(event=key, handler=handler, once=once)
        self._subs.setdefault(key, []).append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        bucket = self._subs.get(sub.event)
        if bucket and sub in bucket:
            bucket.remove(sub)
            if not bucket:
                self._subs.pop(sub.event, None)
        sub.active = False

    def clear(self) -> None:
        for bucket in self._subs.values():
            for sub in bucket:
                sub.active = False
        self._subs.clear()

    def publish(self, name: str | ChartEvent, payload: Any = None) -> Event:
        key = name.value if isinstance(name, ChartEvent) else name
        evt = Event(name=key, payload=payload)
        subs = list(self._subs.get(key, ()))
        done: List[Subscription] = []
        for sub in subs:
            if not sub.active:
                continue
            try:
                sub.handler(evt)
            except Exception as exc:
                log.exception("handler for %s failed", key)
                self._errors.append((evt, exc))
            if sub.once:
                done.append(sub)
        for sub in done:
            self.unsubscribe(sub)
        return evt

    def subscriber_count(self, name: str | ChartEvent) -> int:
        key = name.value if isinstance(name, ChartEvent) else name
        return len(self._subs.get(key, ()))

    @property
    def errors(self) -> List[Tuple[Event, BaseException]]:
        return list(self._errors)
