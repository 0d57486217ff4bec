"""Retained scene graph with keyed, cancellable transitions.

Renderers describe a frame as a list of ``Primitive`` objects, each with a
stable string key. ``SceneGraph.reconcile`` diffs that list against the
elements it already owns:

* a key present before and now transitions from its *current* attributes to
  the new ones (update);
* a new key enters, starting from its ``enter`` overrides (faded/shrunk);
* a key no longer present exits toward its ``exit`` overrides and is removed
  once the exit completes.

Reconciling while a transition is still running re-targets every element from
wherever it currently is. Nothing is ever queued, so fast scrubbing can never
stack animations. ``advance(dt_ms)`` moves time forward; the scene graph owns
no timers itself.

Interpolation rules: numbers, equal-length numeric tuples (colors) and
numpy arrays of equal shape are interpolated; everything else (strings,
arrays whose shape changed, callables) switches to the target value as soon
as a transition starts.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from matplotlib.path import Path

from timeviz.design.motion import Easing, easing as easing_for
from timeviz.design.reduced_motion import adjust_duration

__all__ = [
    "Phase",
    "Primitive",
    "ElementHandle",
    "Frame",
    "SceneGraph",
    "PRIMITIVE_KINDS",
]

log = logging.getLogger(__name__)

PRIMITIVE_KINDS = ("rect", "circle", "polygon", "polyline", "text")

_DEFAULT_ENTER: Mapping[str, Any] = {"alpha": 0.0}
_DEFAULT_EXIT: Mapping[str, Any] = {"alpha": 0.0}


class Phase(str, Enum):
    ENTER = "enter"
    UPDATE = "update"
    EXIT = "exit"
    IDLE = "idle"


@dataclass(frozen=True)
class Primitive:
    """One visual element of a frame.

    ``entity`` names the entity the element belongs to for hover purposes;
    elements without one (labels, axes text) are never hit.
    """

    key: str
    kind: str
    attrs: Mapping[str, Any]
    entity: Optional[str] = None
    z: float = 0.0
    enter: Mapping[str, Any] = field(default_factory=lambda: dict(_DEFAULT_ENTER))
    exit: Mapping[str, Any] = field(default_factory=lambda: dict(_DEFAULT_EXIT))

    def __post_init__(self) -> None:
        if self.kind not in PRIMITIVE_KINDS:
            raise ValueError(f"Unknown primitive kind: {self.kind!r}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, np.floating, np.integer)) and not isinstance(value, bool)


def _lerp(a: Any, b: Any, t: float) -> Any:
    if _is_number(a) and _is_number(b):
        return float(a) + (float(b) - float(a)) * t
    if (
        isinstance(a, tuple)
        and isinstance(b, tuple)
        and len(a) == len(b)
        and all(_is_number(x) for x in a)
        and all(_is_number(x) for x in b)
    ):
        return tuple(float(x) + (float(y) - float(x)) * t for x, y in zip(a, b))
    if isinstance(a, np.ndarray) and isinstance(b, np.ndarray) and a.shape == b.shape:
        return a + (b - a) * t
    return b


def _resolve_text(attrs: Dict[str, Any]) -> Dict[str, Any]:
    fmt = attrs.get("format")
    if fmt is not None and _is_number(attrs.get("number")):
        attrs["text"] = fmt(attrs["number"])
    return attrs


class ElementHandle:
    """Owned visual element: start/target/current attributes plus timing."""

    def __init__(self, primitive: Primitive, start: Mapping[str, Any], phase: Phase, duration_ms: float, ease: Easing):
        self.key = primitive.key
        self.kind = primitive.kind
        self.primitive = primitive
        self.start: Dict[str, Any] = dict(start)
        self.target: Dict[str, Any] = dict(primitive.attrs)
        self.target.setdefault("alpha", 1.0)
        self.current: Dict[str, Any] = _resolve_text(dict(start))
        self.phase = phase
        self.duration_ms = float(duration_ms)
        self.elapsed_ms = 0.0
        self.easing = ease

    @property
    def entity(self) -> Optional[str]:
        return self.primitive.entity

    @property
    def z(self) -> float:
        return self.primitive.z

    @property
    def in_flight(self) -> bool:
        return self.phase is not Phase.IDLE

    @property
    def progress(self) -> float:
        if self.duration_ms <= 0:
            return 1.0
        return min(1.0, self.elapsed_ms / self.duration_ms)

    def retarget(self, primitive: Primitive, target: Mapping[str, Any], phase: Phase, duration_ms: float, ease: Easing) -> None:
        self.primitive = primitive
        self.start = dict(self.current)
        self.target = dict(target)
        self.target.setdefault("alpha", 1.0)
        self.phase = phase
        self.duration_ms = float(duration_ms)
        self.elapsed_ms = 0.0
        self.easing = ease
        self._apply(0.0)

    def _apply(self, progress: float) -> None:
        eased = self.easing(progress)
        keys = set(self.start) | set(self.target)
        out: Dict[str, Any] = {}
        for name in keys:
            if name not in self.target:
                out[name] = self.start[name]
            elif name not in self.start:
                out[name] = self.target[name]
            else:
                out[name] = _lerp(self.start[name], self.target[name], eased)
        self.current = _resolve_text(out)

    def step(self, dt_ms: float) -> bool:
        """Advance by ``dt_ms``; returns True once the transition is complete."""
        if self.phase is Phase.IDLE:
            return True
        self.elapsed_ms += max(0.0, dt_ms)
        progress = self.progress
        if progress >= 1.0:
            self.finish()
            return True
        self._apply(progress)
        return False

    def finish(self) -> None:
        self.current = _resolve_text(dict(self.target))
        self.start = dict(self.target)
        self.elapsed_ms = self.duration_ms
        if self.phase is not Phase.EXIT:
            self.phase = Phase.IDLE

    def contains(self, x: float, y: float) -> bool:
        a = self.current
        if self.kind == "rect":
            x0, y0 = a.get("x", 0.0), a.get("y", 0.0)
            w, h = a.get("width", 0.0), a.get("height", 0.0)
            return min(x0, x0 + w) <= x <= max(x0, x0 + w) and min(y0, y0 + h) <= y <= max(y0, y0 + h)
        if self.kind == "circle":
            r = a.get("r", 0.0)
            return r > 0 and math.hypot(x - a.get("cx", 0.0), y - a.get("cy", 0.0)) <= r
        if self.kind == "polygon":
            # even-odd over all rings so holes are excluded
            inside = 0
            for ring in a.get("rings", ()):
                if len(ring) >= 3 and Path(ring).contains_point((x, y)):
                    inside += 1
            return inside % 2 == 1
        return False

    def __repr__(self) -> str:
        return f"ElementHandle(key={self.key!r}, kind={self.kind!r}, phase={self.phase.value})"


@dataclass(frozen=True)
class Frame:
    """Outcome of one reconcile: which keys entered, updated and exited."""

    keys: Tuple[str, ...] = ()
    entered: FrozenSet[str] = frozenset()
    updated: FrozenSet[str] = frozenset()
    exited: FrozenSet[str] = frozenset()
    duration_ms: float = 0.0


class SceneGraph:
    def __init__(self, default_easing: str = "standard") -> None:
        self._elements: Dict[str, ElementHandle] = {}
        self._default_easing = easing_for(default_easing)
        self.generation = 0

    # --- inspection -----------------------------------------------------------

    def __len__(self) -> int:
        return len(self._elements)

    def __contains__(self, key: object) -> bool:
        return key in self._elements

    def __iter__(self) -> Iterator[ElementHandle]:
        return iter(self.ordered())

    def get(self, key: str) -> Optional[ElementHandle]:
        return self._elements.get(key)

    def keys(self) -> List[str]:
        return list(self._elements)

    def visible_keys(self) -> List[str]:
        """Keys of elements that are not on their way out."""
        return [k for k, h in self._elements.items() if h.phase is not Phase.EXIT]

    def ordered(self) -> List[ElementHandle]:
        """Elements in draw order (z ascending, then insertion)."""
        return sorted(self._elements.values(), key=lambda h: h.z)

    @property
    def in_flight(self) -> bool:
        return any(h.in_flight for h in self._elements.values())

    # --- mutation -------------------------------------------------------------

    def reconcile(
        self,
        primitives: Sequence[Primitive],
        duration_ms: float,
        ease: Easing | None = None,
    ) -> Frame:
        duration = float(adjust_duration(int(duration_ms)))
        ease = ease or self._default_easing
        self.generation += 1
        entered: List[str] = []
        updated: List[str] = []
        exited: List[str] = []
        seen: Dict[str, None] = {}
        for prim in primitives:
            if prim.key in seen:
                log.debug("duplicate primitive key %s in frame; keeping first", prim.key)
                continue
            seen[prim.key] = None
            handle = self._elements.get(prim.key)
            if handle is not None and handle.kind != prim.kind:
                del self._elements[prim.key]
                handle = None
            if handle is None:
                start = dict(prim.attrs)
                start.update(prim.enter)
                self._elements[prim.key] = ElementHandle(prim, start, Phase.ENTER, duration, ease)
                entered.append(prim.key)
            elif handle.phase is Phase.EXIT:
                handle.retarget(prim, prim.attrs, Phase.ENTER, duration, ease)
                entered.append(prim.key)
            else:
                handle.retarget(prim, prim.attrs, Phase.UPDATE, duration, ease)
                updated.append(prim.key)
        for key, handle in self._elements.items():
            if key in seen or handle.phase is Phase.EXIT:
                continue
            target = dict(handle.current)
            target.update(handle.primitive.exit)
            handle.retarget(handle.primitive, target, Phase.EXIT, duration, ease)
            exited.append(key)
        if duration <= 0:
            self.snap()
        return Frame(
            keys=tuple(seen),
            entered=frozenset(entered),
            updated=frozenset(updated),
            exited=frozenset(exited),
            duration_ms=duration,
        )

    def advance(self, dt_ms: float) -> bool:
        """Move every transition forward. Returns True while any is in flight."""
        done_exits = []
        for key, handle in self._elements.items():
            if handle.step(dt_ms) and handle.phase is Phase.EXIT:
                done_exits.append(key)
        for key in done_exits:
            del self._elements[key]
        return self.in_flight

    def snap(self) -> None:
        """Jump every in-flight transition to its end state."""
        for handle in list(self._elements.values()):
            handle.finish()
        for key in [k for k, h in self._elements.items() if h.phase is Phase.EXIT]:
            del self._elements[key]

    def clear(self) -> None:
        """Drop all elements, including in-flight transitions."""
        self._elements.clear()
        self.generation += 1

    def hit_test(self, x: float, y: float) -> Optional[str]:
        """Entity under the point, topmost element first; exiting elements are ignored."""
        for handle in reversed(self.ordered()):
            if handle.entity is None or handle.phase is Phase.EXIT:
                continue
            if handle.contains(x, y):
                return handle.entity
        return None
