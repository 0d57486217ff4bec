"""Interaction layer: hover state and tooltip derivation.

``HoverController`` holds the single transient ``HoverState`` of one chart.
Pointer events come in as plain coordinates; the element under the pointer
is resolved through a hit-test callable (normally ``SceneGraph.hit_test``)
so every chart kind shares one contract:

* pointer over a new element   -> state set (entity + coordinates)
* pointer moving on the same   -> coordinates updated, entity unchanged
* pointer off every element    -> state cleared

Tooltip text is never stored. ``tooltip_content`` derives it from the
current hover state and the step being displayed, and the session clears
hover at the start of every frame transition, so a tooltip cannot outlive
the step it described.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from timeviz.charting.formatting import format_compact, format_step_key
from timeviz.domain.models import (
    AgeBandSplit,
    ChartKind,
    ChartSpec,
    DualAxisValues,
    EntityId,
    HoverState,
    LabeledPoint,
    Scalar,
    TimeStep,
)

__all__ = ["HoverController", "Tooltip", "tooltip_content"]

log = logging.getLogger(__name__)

HoverListener = Callable[[Optional[HoverState]], None]
HitTest = Callable[[float, float], Optional[EntityId]]


class HoverController:
    def __init__(self, hit_test: HitTest | None = None) -> None:
        self._hit_test = hit_test
        self._state: Optional[HoverState] = None
        self._listeners: List[HoverListener] = []

    @property
    def state(self) -> Optional[HoverState]:
        return self._state

    def set_hit_test(self, hit_test: HitTest | None) -> None:
        self._hit_test = hit_test

    def add_listener(self, listener: HoverListener) -> None:
        self._listeners.append(listener)

    def _set(self, state: Optional[HoverState]) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                log.exception("hover listener failed")

    def enter(self, entity_id: EntityId, x: float, y: float) -> None:
        self._set(HoverState(entity_id, float(x), float(y)))

    def move(self, x: float, y: float) -> None:
        if self._state is None:
            return
        self._set(HoverState(self._state.entity_id, float(x), float(y)))

    def leave(self) -> None:
        self._set(None)

    clear = leave

    def pointer(self, x: float, y: float) -> None:
        """Route a raw pointer position through the hit test."""
        if self._hit_test is None:
            return
        entity = self._hit_test(x, y)
        if entity is None:
            self.leave()
        elif self._state is not None and self._state.entity_id == entity:
            self.move(x, y)
        else:
            self.enter(entity, x, y)


@dataclass(frozen=True)
class Tooltip:
    title: str
    step: str
    lines: Tuple[str, ...] = ()


def _label(spec: ChartSpec, name: str, fallback: str | None) -> str:
    return str(spec.labels.get(name) or fallback or name)


def _pyramid_tooltip(hover: HoverState, step: TimeStep, spec: ChartSpec, entity_id: EntityId | None) -> Optional[Tooltip]:
    side, _, age = hover.entity_id.partition(":")
    value = step.entities.get(entity_id) if entity_id is not None else None
    if side not in ("left", "right") or not isinstance(value, AgeBandSplit):
        return None
    for band in value.bands:
        if band.age == age:
            amount = band.left if side == "left" else band.right
            side_label = _label(spec, side, "Male" if side == "left" else "Female")
            return Tooltip(
                title=f"{value.label or entity_id} {age}",
                step=format_step_key(step.key),
                lines=(f"{side_label}: {format_compact(amount)}",),
            )
    return None


def tooltip_content(
    hover: Optional[HoverState],
    step: Optional[TimeStep],
    spec: ChartSpec,
    *,
    entity_id: EntityId | None = None,
) -> Optional[Tooltip]:
    """Tooltip for the hovered element at ``step``; ``None`` when nothing applies.

    ``entity_id`` is the selected entity of a population pyramid, whose
    hoverable elements are age bands (``"left:<age>"`` / ``"right:<age>"``).
    """
    if hover is None or step is None:
        return None
    if spec.kind is ChartKind.POPULATION_PYRAMID:
        return _pyramid_tooltip(hover, step, spec, entity_id)
    key = format_step_key(step.key)
    value = step.entities.get(hover.entity_id)
    if value is None:
        if spec.kind is ChartKind.CHOROPLETH:
            return Tooltip(title=hover.entity_id, step=key, lines=("No data",))
        return None
    title = getattr(value, "label", None) or hover.entity_id
    if isinstance(value, Scalar):
        lines: Tuple[str, ...] = (f"{_label(spec, 'value', spec.metric_key)}: {format_compact(value.value)}",)
    elif isinstance(value, DualAxisValues):
        out = [f"{_label(spec, 'primary', spec.metric_key)}: {format_compact(value.primary)}"]
        if value.secondary is not None:
            out.append(f"{_label(spec, 'secondary', spec.secondary_metric_key)}: {format_compact(value.secondary)}")
        lines = tuple(out)
    elif isinstance(value, LabeledPoint):
        out = [
            f"{_label(spec, 'x', 'x')}: {format_compact(value.x)}",
            f"{_label(spec, 'y', 'y')}: {format_compact(value.y)}",
        ]
        if value.size is not None:
            out.append(f"{_label(spec, 'size', spec.size_key or 'size')}: {format_compact(value.size)}")
        if value.group:
            out.append(value.group)
        lines = tuple(out)
    else:
        lines = ()
    return Tooltip(title=str(title), step=key, lines=lines)
