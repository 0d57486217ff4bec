"""Frame renderers, one per chart kind.

A renderer turns one ``TimeStep`` plus the kind's ``ScaleSet`` into a list of
keyed ``Primitive`` objects. ``render_frame`` feeds that list to the chart's
``SceneGraph``, which performs the keyed diff and owns the transitions.

Keys are stable across steps so the diff can animate instead of replace:

* ranked bars, bubbles, category bars: the entity id (labels use
  ``"<id>:label"`` / ``"<id>:value"``);
* choropleth: the geographic feature id;
* population pyramid: ``"left:<age>"`` / ``"right:<age>"``;
* line/area: ``"<id>:seg<n>"`` per contiguous segment and ``"<id>:head"``.

Entities absent from a step produce no primitive at all, so they exit (or
never enter) rather than being drawn at zero.

Renderers are registered in ``renderer_registry`` keyed by ``ChartKind``;
the module refuses to import if a kind is left without a renderer.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import numpy as np

from timeviz.config import settings
from timeviz.design.motion import Easing
from timeviz.design.spring import SpringParams, spring_easing
from timeviz.domain.models import (
    AgeBandSplit,
    ChartKind,
    ChartSpec,
    DualAxisValues,
    LabeledPoint,
    Scalar,
    TimeSeriesDataset,
    TimeStep,
    Viewport,
)

from .formatting import format_compact, format_currency, format_step_key
from .palette import (
    NEUTRAL_FILL,
    PYRAMID_LEFT,
    PYRAMID_RIGHT,
    TEXT_MUTED,
    TEXT_PRIMARY,
    color_for_entity,
    color_for_group,
    rgba,
)
from .scales import (
    CategoryScales,
    ChoroplethScales,
    LogScale,
    PyramidScales,
    RankedBarScales,
    ScaleSet,
    XYScales,
    rank_step,
)
from .scene import Frame, Primitive, SceneGraph

__all__ = [
    "RenderContext",
    "RendererType",
    "RendererRegistry",
    "renderer_registry",
    "render_frame",
    "empty_primitives",
    "error_primitives",
    "EMPTY_KEY",
    "ERROR_KEY",
    "STEP_LABEL_KEY",
]

log = logging.getLogger(__name__)

EMPTY_KEY = "__empty__"
ERROR_KEY = "__error__"
STEP_LABEL_KEY = "__step__"

_EDGE = rgba("#2a2a35")
_UNIT_CURRENCY = {"$", "usd", "currency"}


@dataclass
class RenderContext:
    """Per-frame inputs beyond the step itself."""

    spec: ChartSpec
    dataset: TimeSeriesDataset
    step_index: int = 0
    highlight_group: str | None = None


Renderer = Callable[[TimeStep, ScaleSet, RenderContext], List[Primitive]]


@dataclass
class RendererType:
    kind: ChartKind
    render: Renderer
    description: str
    easing: Optional[Callable[[], Easing]] = None


class RendererRegistry:
    def __init__(self) -> None:
        self._types: Dict[ChartKind, RendererType] = {}

    def register(
        self,
        kind: ChartKind,
        render: Renderer,
        description: str,
        *,
        easing: Optional[Callable[[], Easing]] = None,
    ) -> None:
        kind = ChartKind.parse(kind)
        if kind in self._types:
            raise ValueError(f"Renderer already registered: {kind.value}")
        self._types[kind] = RendererType(kind, render, description, easing)

    def get(self, kind: ChartKind) -> RendererType:
        return self._types[ChartKind.parse(kind)]

    def missing(self) -> List[ChartKind]:
        return [k for k in ChartKind if k not in self._types]

    def list_types(self) -> Dict[str, str]:
        return {k.value: v.description for k, v in self._types.items()}


renderer_registry = RendererRegistry()


# --- Shared pieces ----------------------------------------------------------------


def _text(key: str, x: float, y: float, text: str, **attrs) -> Primitive:
    base = {
        "x": x,
        "y": y,
        "text": text,
        "color": rgba(TEXT_PRIMARY),
        "size": 10.0,
        "ha": "left",
        "va": "center",
        "weight": "normal",
    }
    base.update(attrs)
    return Primitive(key, "text", base)


def _step_label(step: TimeStep, scales: ScaleSet, size: float = 40.0) -> Primitive:
    plot = scales.plot
    return _text(
        STEP_LABEL_KEY,
        plot.right - 8,
        plot.bottom - 12,
        format_step_key(step.key),
        color=rgba(TEXT_MUTED),
        size=size if not scales.viewport.is_small else size * 0.6,
        ha="right",
        va="bottom",
        weight="bold",
    )


def _value_formatter(spec: ChartSpec) -> Callable[[float], str]:
    unit = str(spec.labels.get("unit", "")).strip().lower()
    return format_currency if unit in _UNIT_CURRENCY else format_compact


def empty_primitives(viewport: Viewport, message: str = "No data available") -> List[Primitive]:
    return [
        _text(EMPTY_KEY, viewport.width / 2, viewport.height / 2, message, color=rgba(TEXT_MUTED), size=12.0, ha="center")
    ]


def error_primitives(viewport: Viewport, message: str) -> List[Primitive]:
    return [
        _text(ERROR_KEY, viewport.width / 2, viewport.height / 2, message, color=rgba("#f85149"), size=12.0, ha="center")
    ]


# --- Ranked bars ------------------------------------------------------------------


def render_ranked_bars(step: TimeStep, scales: RankedBarScales, ctx: RenderContext) -> List[Primitive]:
    ranked = rank_step(step, scales.top_n)
    x0 = scales.x(0.0)
    bottom = scales.plot.bottom
    band = scales.rows.bandwidth
    fmt = _value_formatter(ctx.spec)
    small = scales.viewport.is_small
    out: List[Primitive] = []
    for row, (eid, value) in enumerate(ranked):
        y = scales.rows(row)
        # negative values grow leftward from the zero line
        xv = scales.x(value)
        left = min(x0, xv)
        width = abs(xv - x0)
        entity = step.entities[eid]
        label = (entity.label if isinstance(entity, Scalar) else None) or eid
        from_bottom = {"y": bottom, "alpha": 0.0}
        out.append(
            Primitive(
                eid,
                "rect",
                {"x": left, "y": y, "width": width, "height": band, "fill": rgba(color_for_entity(eid)), "alpha": 1.0},
                entity=eid,
                enter=from_bottom,
                exit=from_bottom,
            )
        )
        out.append(
            Primitive(
                f"{eid}:label",
                "text",
                {
                    "x": left - 6,
                    "y": y + band / 2,
                    "text": label,
                    "color": rgba(TEXT_PRIMARY),
                    "size": 8.0 if small else 10.0,
                    "ha": "right",
                    "va": "center",
                    "weight": "normal",
                },
                enter=from_bottom,
                exit=from_bottom,
            )
        )
        out.append(
            Primitive(
                f"{eid}:value",
                "text",
                {
                    "x": left + width + 6,
                    "y": y + band / 2,
                    "number": value,
                    "format": fmt,
                    "color": rgba(TEXT_MUTED),
                    "size": 8.0 if small else 9.0,
                    "ha": "left",
                    "va": "center",
                    "weight": "normal",
                },
                enter=from_bottom,
                exit=from_bottom,
            )
        )
    out.append(_step_label(step, scales, size=48.0))
    return out


@functools.lru_cache(maxsize=1)
def _ranked_spring() -> Easing:
    return spring_easing(SpringParams())


# --- Choropleth ---------------------------------------------------------------


def render_choropleth(step: TimeStep, scales: ChoroplethScales, ctx: RenderContext) -> List[Primitive]:
    colors = scales.color_for(step)
    neutral = rgba(NEUTRAL_FILL)
    out: List[Primitive] = []
    for feature in scales.features:
        fill = neutral
        if feature.joinable and colors is not None:
            value = step.entities.get(feature.id)
            if isinstance(value, DualAxisValues):
                metric = value.metric(scales.metric)
                if metric is not None:
                    fill = colors(metric)
        out.append(
            Primitive(
                feature.id,
                "polygon",
                {"rings": scales.paths[feature.id], "fill": fill, "edge": _EDGE, "alpha": 1.0},
                entity=feature.id if feature.joinable else None,
            )
        )
    out.append(_step_label(step, scales, size=32.0))
    return out


# --- Population pyramid ---------------------------------------------------------


def render_pyramid(step: TimeStep, scales: PyramidScales, ctx: RenderContext) -> List[Primitive]:
    out: List[Primitive] = []
    value = step.entities.get(scales.entity_id) if scales.entity_id is not None else None
    band = scales.bands.bandwidth
    mid = (scales.center_left + scales.center_right) / 2
    small = scales.viewport.is_small
    if isinstance(value, AgeBandSplit):
        for age_band in value.bands:
            y = scales.bands(age_band.age)
            if y is None:
                continue
            lx = scales.left(age_band.left)
            rx = scales.right(age_band.right)
            left_key = f"left:{age_band.age}"
            right_key = f"right:{age_band.age}"
            collapsed_left = {"x": scales.center_left, "width": 0.0, "alpha": 0.0}
            collapsed_right = {"x": scales.center_right, "width": 0.0, "alpha": 0.0}
            out.append(
                Primitive(
                    left_key,
                    "rect",
                    {
                        "x": lx,
                        "y": y,
                        "width": scales.center_left - lx,
                        "height": band,
                        "fill": rgba(PYRAMID_LEFT),
                        "alpha": 1.0,
                    },
                    entity=left_key,
                    enter=collapsed_left,
                    exit=collapsed_left,
                )
            )
            out.append(
                Primitive(
                    right_key,
                    "rect",
                    {
                        "x": scales.center_right,
                        "y": y,
                        "width": rx - scales.center_right,
                        "height": band,
                        "fill": rgba(PYRAMID_RIGHT),
                        "alpha": 1.0,
                    },
                    entity=right_key,
                    enter=collapsed_right,
                    exit=collapsed_right,
                )
            )
            out.append(
                _text(
                    f"age:{age_band.age}",
                    mid,
                    y + band / 2,
                    age_band.age,
                    color=rgba(TEXT_MUTED),
                    size=7.0 if small else 9.0,
                    ha="center",
                )
            )
    plot = scales.plot
    labels = ctx.spec.labels
    out.append(_text("__left_title__", plot.left, plot.top - 10, labels.get("left", "Male"), color=rgba(PYRAMID_LEFT), weight="bold"))
    out.append(
        _text("__right_title__", plot.right, plot.top - 10, labels.get("right", "Female"), color=rgba(PYRAMID_RIGHT), ha="right", weight="bold")
    )
    out.append(_step_label(step, scales, size=36.0))
    return out


# --- Bubble ----------------------------------------------------------------------


def render_bubble(step: TimeStep, scales: XYScales, ctx: RenderContext) -> List[Primitive]:
    out: List[Primitive] = []
    log_x = isinstance(scales.x, LogScale)
    highlight = ctx.highlight_group
    for eid, point in step.entities.items():
        if not isinstance(point, LabeledPoint):
            continue
        if log_x and point.x <= 0:
            continue
        r = scales.size(point.size) if scales.size is not None and point.size is not None else 5.0
        dimmed = highlight is not None and point.group != highlight
        out.append(
            Primitive(
                eid,
                "circle",
                {
                    "cx": scales.x(point.x),
                    "cy": scales.y(point.y),
                    "r": r,
                    "fill": rgba(color_for_group(point.group)),
                    "edge": rgba("#ffffff", 0.3),
                    "alpha": 0.15 if dimmed else 0.75,
                },
                entity=eid,
                z=-r,
                enter={"r": 0.0, "alpha": 0.0},
                exit={"r": 0.0, "alpha": 0.0},
            )
        )
    out.append(_step_label(step, scales, size=48.0))
    return out


# --- Line / area -----------------------------------------------------------------


def _segments(ctx: RenderContext, scales: XYScales, eid: str) -> List[np.ndarray]:
    """Contiguous runs of present values up to the current step."""
    segments: List[np.ndarray] = []
    run: List[tuple] = []
    for step in ctx.dataset.steps[: ctx.step_index + 1]:
        value = step.entities.get(eid)
        if isinstance(value, Scalar):
            run.append((scales.x_for_step(step.key), scales.y(value.value)))
        elif run:
            segments.append(np.asarray(run, dtype=float))
            run = []
    if run:
        segments.append(np.asarray(run, dtype=float))
    return segments


def _render_series(step: TimeStep, scales: XYScales, ctx: RenderContext, *, filled: bool) -> List[Primitive]:
    out: List[Primitive] = []
    baseline = scales.y(max(0.0, scales.y.domain[0]))
    for eid in ctx.dataset.entity_ids():
        color = color_for_entity(eid)
        for n, seg in enumerate(_segments(ctx, scales, eid)):
            key = f"{eid}:seg{n}"
            if filled and len(seg) >= 2:
                ring = np.vstack([seg, [[seg[-1, 0], baseline], [seg[0, 0], baseline]]])
                out.append(Primitive(key, "polygon", {"rings": (ring,), "fill": rgba(color), "edge": rgba(color), "alpha": 0.35}))
            else:
                out.append(Primitive(key, "polyline", {"points": seg, "color": rgba(color), "width": 2.0, "alpha": 1.0}))
        value = step.entities.get(eid)
        if isinstance(value, Scalar):
            out.append(
                Primitive(
                    f"{eid}:head",
                    "circle",
                    {
                        "cx": scales.x_for_step(step.key),
                        "cy": scales.y(value.value),
                        "r": 4.0,
                        "fill": rgba(color),
                        "edge": rgba(color),
                        "alpha": 1.0,
                    },
                    entity=eid,
                    z=1.0,
                    enter={"r": 0.0, "alpha": 0.0},
                    exit={"r": 0.0, "alpha": 0.0},
                )
            )
    out.append(_step_label(step, scales, size=28.0))
    return out


def render_line(step: TimeStep, scales: XYScales, ctx: RenderContext) -> List[Primitive]:
    return _render_series(step, scales, ctx, filled=False)


def render_area(step: TimeStep, scales: XYScales, ctx: RenderContext) -> List[Primitive]:
    return _render_series(step, scales, ctx, filled=True)


# --- Category bars -----------------------------------------------------------------


def render_category_bars(step: TimeStep, scales: CategoryScales, ctx: RenderContext) -> List[Primitive]:
    out: List[Primitive] = []
    base = scales.y(max(0.0, scales.y.domain[0]))
    width = scales.x.bandwidth
    fmt = _value_formatter(ctx.spec)
    for eid, value in step.entities.items():
        if not isinstance(value, Scalar):
            continue
        x = scales.x(eid)
        if x is None:
            continue
        top = scales.y(value.value)
        flat = {"y": base, "height": 0.0, "alpha": 0.0}
        out.append(
            Primitive(
                eid,
                "rect",
                {
                    "x": x,
                    "y": min(top, base),
                    "width": width,
                    "height": abs(base - top),
                    "fill": rgba(color_for_entity(eid)),
                    "alpha": 1.0,
                },
                entity=eid,
                enter=flat,
                exit=flat,
            )
        )
        out.append(
            _text(f"{eid}:label", x + width / 2, scales.plot.bottom + 14, value.label or eid, color=rgba(TEXT_MUTED), size=8.0, ha="center")
        )
        out.append(
            Primitive(
                f"{eid}:value",
                "text",
                {
                    "x": x + width / 2,
                    "y": min(top, base) - 4,
                    "number": value.value,
                    "format": fmt,
                    "color": rgba(TEXT_PRIMARY),
                    "size": 8.0,
                    "ha": "center",
                    "va": "bottom",
                    "weight": "normal",
                },
                enter={"y": base, "alpha": 0.0},
                exit={"y": base, "alpha": 0.0},
            )
        )
    out.append(_step_label(step, scales, size=28.0))
    return out


# --- Registry ------------------------------------------------------------------------

renderer_registry.register(ChartKind.RANKED_BARS, render_ranked_bars, "Bar race ranked per step", easing=_ranked_spring)
renderer_registry.register(ChartKind.CHOROPLETH, render_choropleth, "World map colored by the selected metric")
renderer_registry.register(ChartKind.POPULATION_PYRAMID, render_pyramid, "Mirrored age-band bars for one entity")
renderer_registry.register(ChartKind.BUBBLE, render_bubble, "Labeled points sized and colored by group")
renderer_registry.register(ChartKind.LINE, render_line, "Progressively revealed lines per entity")
renderer_registry.register(ChartKind.AREA, render_area, "Progressively revealed areas per entity")
renderer_registry.register(ChartKind.CATEGORY_BARS, render_category_bars, "One bar per entity on a stable axis")

_missing = renderer_registry.missing()
if _missing:  # pragma: no cover - guards new kinds
    raise RuntimeError(f"No renderer for chart kinds: {sorted(k.value for k in _missing)}")


def render_frame(
    step: TimeStep,
    scales: ScaleSet,
    previous: SceneGraph,
    *,
    context: RenderContext,
    duration_ms: float | None = None,
) -> Frame:
    """Render ``step`` into the retained scene and return the diff summary.

    ``previous`` is the chart's scene graph (its handles from the last
    frame); it is updated in place. ``duration_ms=None`` uses the kind's
    configured transition duration, ``0`` snaps.
    """
    rtype = renderer_registry.get(scales.kind)
    primitives = rtype.render(step, scales, context)
    duration = settings.transition_ms(scales.kind.value) if duration_ms is None else duration_ms
    ease = rtype.easing() if rtype.easing is not None else None
    frame = previous.reconcile(primitives, duration, ease)
    log.debug(
        "frame %s step=%r: +%d ~%d -%d",
        scales.kind.value,
        step.key,
        len(frame.entered),
        len(frame.updated),
        len(frame.exited),
    )
    return frame
