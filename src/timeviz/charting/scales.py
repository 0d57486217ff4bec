"""Scale & projection builder.

``build_scales(dataset, spec, viewport)`` derives every mapping a renderer
needs to place shapes, as one immutable ``ScaleSet`` variant per chart kind.
Scales are rebuilt when the dataset, the metric selection or the viewport
changes; rebuilding never touches playback state.

Domain rules
------------
* Numeric axes span ``[min(0, lo), hi * padding]`` over *all* steps reachable
  by playback, so bar lengths never jump when playback advances or the user
  scrubs straight to a step.
* Ranked bars reorder rows per step (descending value, ties by entity id).
* The choropleth color domain is the min/max of the selected metric at the
  displayed step only (``ChoroplethScales.color_for``).
* The pyramid's left and right scales share one magnitude.
* Zero-width domains are padded instead of dividing by zero.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from matplotlib.colors import LinearSegmentedColormap, Normalize
from matplotlib.ticker import LogLocator, MaxNLocator

from timeviz.config import settings
from timeviz.domain.models import (
    AgeBandSplit,
    ChartKind,
    ChartSpec,
    DualAxisValues,
    EntityId,
    LabeledPoint,
    Scalar,
    StepKey,
    TimeSeriesDataset,
    TimeStep,
    Viewport,
)

from .palette import SEQUENTIAL_STOPS
from .projection import GeoFeature, GeoProjection, load_features

__all__ = [
    "LinearScale",
    "LogScale",
    "SqrtScale",
    "BandScale",
    "SequentialColorScale",
    "PlotArea",
    "ScaleSet",
    "RankedBarScales",
    "ChoroplethScales",
    "PyramidScales",
    "XYScales",
    "CategoryScales",
    "numeric_domain",
    "rank_step",
    "build_scales",
]

log = logging.getLogger(__name__)

Domain = Tuple[float, float]


# --- Primitive scales ---------------------------------------------------------


class LinearScale:
    def __init__(self, domain: Domain, range_: Tuple[float, float]) -> None:
        self.domain = (float(domain[0]), float(domain[1]))
        self.range = (float(range_[0]), float(range_[1]))

    def _t(self, value: float) -> float:
        d0, d1 = self.domain
        return (value - d0) / (d1 - d0) if d1 != d0 else 0.5

    def __call__(self, value: float) -> float:
        r0, r1 = self.range
        return r0 + self._t(float(value)) * (r1 - r0)

    def invert(self, pixel: float) -> float:
        r0, r1 = self.range
        d0, d1 = self.domain
        t = (pixel - r0) / (r1 - r0) if r1 != r0 else 0.5
        return d0 + t * (d1 - d0)

    def ticks(self, count: int = 5) -> List[float]:
        lo, hi = sorted(self.domain)
        values = MaxNLocator(nbins=count, steps=[1, 2, 2.5, 5, 10]).tick_values(lo, hi)
        return [float(v) for v in values if lo - 1e-9 <= v <= hi + 1e-9]

    def __eq__(self, other: object) -> bool:
        return (
            type(other) is type(self)
            and self.domain == other.domain  # type: ignore[attr-defined]
            and self.range == other.range  # type: ignore[attr-defined]
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(domain={self.domain}, range={self.range})"


class LogScale(LinearScale):
    def __init__(self, domain: Domain, range_: Tuple[float, float]) -> None:
        lo, hi = domain
        if lo <= 0 or hi <= 0:
            raise ValueError("log scale domain must be strictly positive")
        super().__init__(domain, range_)

    def _t(self, value: float) -> float:
        d0, d1 = (math.log10(d) for d in self.domain)
        value = max(value, self.domain[0])
        return (math.log10(value) - d0) / (d1 - d0) if d1 != d0 else 0.5

    def invert(self, pixel: float) -> float:
        r0, r1 = self.range
        d0, d1 = (math.log10(d) for d in self.domain)
        t = (pixel - r0) / (r1 - r0) if r1 != r0 else 0.5
        return 10 ** (d0 + t * (d1 - d0))

    def ticks(self, count: int = 5) -> List[float]:
        lo, hi = self.domain
        values = LogLocator(base=10.0, subs=(1.0, 2.0, 5.0)).tick_values(lo, hi)
        return [float(v) for v in values if lo <= v <= hi]


class SqrtScale(LinearScale):
    def _t(self, value: float) -> float:
        d0, d1 = (math.sqrt(max(d, 0.0)) for d in self.domain)
        v = math.sqrt(max(value, 0.0))
        return (v - d0) / (d1 - d0) if d1 != d0 else 0.5


class BandScale:
    """Categorical band scale (d3 ``scaleBand`` semantics, centered)."""

    def __init__(
        self,
        domain: Sequence[Any],
        range_: Tuple[float, float],
        padding: float = 0.1,
        *,
        reverse: bool = False,
    ) -> None:
        self.domain = list(domain)
        self.range = (float(range_[0]), float(range_[1]))
        self.padding = padding
        self.reverse = reverse
        self._index = {value: i for i, value in enumerate(self.domain)}
        n = len(self.domain)
        r0, r1 = self.range
        self.step = (r1 - r0) / max(1.0, n - padding + padding * 2)
        self.bandwidth = self.step * (1 - padding)
        self._start = r0 + (r1 - r0 - self.step * (n - padding)) * 0.5

    def __call__(self, value: Any) -> Optional[float]:
        i = self._index.get(value)
        if i is None:
            return None
        if self.reverse:
            i = len(self.domain) - 1 - i
        return self._start + self.step * i

    def center(self, value: Any) -> Optional[float]:
        start = self(value)
        return None if start is None else start + self.bandwidth / 2

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, BandScale)
            and self.domain == other.domain
            and self.range == other.range
            and self.padding == other.padding
            and self.reverse == other.reverse
        )


class SequentialColorScale:
    """Continuous value -> RGBA mapping over the sequential palette."""

    _CMAP = LinearSegmentedColormap.from_list("timeviz_sequential", SEQUENTIAL_STOPS)

    def __init__(self, domain: Domain) -> None:
        self.domain = (float(domain[0]), float(domain[1]))
        self._norm = Normalize(vmin=self.domain[0], vmax=self.domain[1], clip=True)

    def __call__(self, value: float) -> Tuple[float, float, float, float]:
        return tuple(float(c) for c in self._CMAP(self._norm(value)))  # type: ignore[return-value]


# --- Domain helpers -----------------------------------------------------------


def numeric_domain(values: Iterable[Optional[float]], padding: float | None = None) -> Domain:
    """[min(0, min), max * padding]; all-negative data mirrors it to [min * padding, 0]."""
    pad = settings.DOMAIN_PADDING if padding is None else padding
    vals = [v for v in values if v is not None]
    if not vals:
        return 0.0, 1.0
    lo = min(0.0, min(vals))
    top = max(vals)
    if top > 0:
        hi = top * pad
    else:
        lo, hi = lo * pad, 0.0
    if hi <= lo:
        log.debug("degenerate numeric domain [%s, %s]; padding", lo, hi)
        hi = lo + (abs(lo) * (pad - 1.0) or 1.0)
    return lo, hi


def spread_domain(lo: float, hi: float) -> Domain:
    """Widen a zero-width [lo, hi] around its value."""
    if hi > lo:
        return lo, hi
    delta = abs(lo) * 0.05 or 1.0
    log.debug("degenerate color domain at %s; padding by %s", lo, delta)
    return lo - delta, hi + delta


def rank_step(step: TimeStep, top_n: int | None = None) -> List[Tuple[EntityId, float]]:
    """Entities of one step ordered by descending value, ties by id ascending."""
    items = [(eid, v.value) for eid, v in step.entities.items() if isinstance(v, Scalar)]
    items.sort(key=lambda kv: (-kv[1], kv[0]))
    return items if top_n is None else items[:top_n]


def _scalar_values(dataset: TimeSeriesDataset) -> List[float]:
    return [v.value for s in dataset for v in s.entities.values() if isinstance(v, Scalar)]


# --- Scale sets -------------------------------------------------------------


@dataclass(frozen=True)
class PlotArea:
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @classmethod
    def inset(cls, viewport: Viewport, top: float, right: float, bottom: float, left: float) -> "PlotArea":
        r = max(left + 1.0, viewport.width - right)
        b = max(top + 1.0, viewport.height - bottom)
        return cls(left=left, top=top, right=r, bottom=b)


@dataclass(frozen=True)
class ScaleSet:
    kind: ChartKind
    viewport: Viewport
    plot: PlotArea


@dataclass(frozen=True)
class RankedBarScales(ScaleSet):
    x: LinearScale
    rows: BandScale
    top_n: int


@dataclass(frozen=True)
class ChoroplethScales(ScaleSet):
    projection: GeoProjection = field(compare=False)
    features: Tuple[GeoFeature, ...] = field(compare=False)
    paths: Mapping[str, Tuple[np.ndarray, ...]] = field(compare=False)
    metric: str = "primary"
    _colors: Dict[StepKey, Optional[SequentialColorScale]] = field(
        default_factory=dict, compare=False, repr=False
    )

    def color_for(self, step: TimeStep) -> Optional[SequentialColorScale]:
        """Color scale over this step's selected metric only."""
        if step.key in self._colors:
            return self._colors[step.key]
        values = []
        for value in step.entities.values():
            if isinstance(value, DualAxisValues):
                v = value.metric(self.metric)
                if v is not None:
                    values.append(v)
        scale = SequentialColorScale(spread_domain(min(values), max(values))) if values else None
        self._colors[step.key] = scale
        return scale


@dataclass(frozen=True)
class PyramidScales(ScaleSet):
    left: LinearScale
    right: LinearScale
    bands: BandScale
    entity_id: Optional[EntityId]
    center_left: float
    center_right: float


@dataclass(frozen=True)
class XYScales(ScaleSet):
    x: LinearScale
    y: LinearScale
    size: Optional[SqrtScale] = None
    step_positions: Mapping[StepKey, float] = field(default_factory=dict)

    def x_for_step(self, key: StepKey) -> float:
        return self.step_positions[key]


@dataclass(frozen=True)
class CategoryScales(ScaleSet):
    x: BandScale
    y: LinearScale


# --- Builders -----------------------------------------------------------------


def _ranked(dataset, spec, viewport, **_kw) -> RankedBarScales:
    small = viewport.is_small
    plot = PlotArea.inset(viewport, top=20, right=70 if not small else 50, bottom=20, left=150 if not small else 90)
    top_n = max(1, settings.RANKED_TOP_N)
    x = LinearScale(numeric_domain(_scalar_values(dataset)), (plot.left, plot.right))
    rows = BandScale(list(range(top_n)), (plot.top, plot.bottom), padding=0.15)
    return RankedBarScales(ChartKind.RANKED_BARS, viewport, plot, x=x, rows=rows, top_n=top_n)


def _choropleth(dataset, spec, viewport, *, geometry=None, features=None, metric="primary", **_kw) -> ChoroplethScales:
    if features is None:
        features = load_features(geometry) if geometry is not None else []
    margin = settings.MAP_MARGIN_PX
    plot = PlotArea.inset(viewport, top=margin, right=margin, bottom=margin, left=margin)
    projection = GeoProjection.fit_size(features, viewport.width, viewport.height, margin)
    paths = {f.id: projection.project_rings(f.rings) for f in features}
    return ChoroplethScales(
        ChartKind.CHOROPLETH,
        viewport,
        plot,
        projection=projection,
        features=tuple(features),
        paths=paths,
        metric=metric,
    )


def _pyramid(dataset, spec, viewport, *, entity_id=None, **_kw) -> PyramidScales:
    small = viewport.is_small
    if small:
        plot = PlotArea.inset(viewport, top=20, right=10, bottom=30, left=10)
        gap = 30.0
    else:
        plot = PlotArea.inset(viewport, top=30, right=20, bottom=40, left=20)
        gap = 60.0
    if entity_id is None:
        ids = dataset.entity_ids()
        entity_id = ids[0] if ids else None
    ages: Dict[str, None] = {}
    peaks: List[float] = []
    for step in dataset:
        value = step.entities.get(entity_id) if entity_id is not None else None
        if isinstance(value, AgeBandSplit):
            for band in value.bands:
                ages.setdefault(band.age, None)
            peaks.append(value.peak())
    _lo, magnitude = numeric_domain(peaks)
    half = max(1.0, (plot.width - gap) / 2.0)
    center_left = plot.left + half
    center_right = center_left + gap
    left = LinearScale((0.0, magnitude), (center_left, plot.left))
    right = LinearScale((0.0, magnitude), (center_right, center_right + half))
    # youngest band at the bottom
    bands = BandScale(list(ages), (plot.top, plot.bottom), padding=0.15, reverse=True)
    return PyramidScales(
        ChartKind.POPULATION_PYRAMID,
        viewport,
        plot,
        left=left,
        right=right,
        bands=bands,
        entity_id=entity_id,
        center_left=center_left,
        center_right=center_right,
    )


def _bubble(dataset, spec, viewport, **_kw) -> XYScales:
    small = viewport.is_small
    if small:
        plot = PlotArea.inset(viewport, top=24, right=16, bottom=40, left=45)
    else:
        plot = PlotArea.inset(viewport, top=40, right=40, bottom=60, left=70)
    points = [v for s in dataset for v in s.entities.values() if isinstance(v, LabeledPoint)]
    xs = [p.x for p in points]
    x: LinearScale
    positive = [v for v in xs if v > 0]
    if spec.x_scale == "log" and positive:
        lo, hi = min(positive), max(positive) * settings.DOMAIN_PADDING
        if hi <= lo:
            lo, hi = lo / 10.0, hi * 10.0
        x = LogScale((lo, hi), (plot.left, plot.right))
    else:
        x = LinearScale(numeric_domain(xs), (plot.left, plot.right))
    y = LinearScale(numeric_domain([p.y for p in points]), (plot.bottom, plot.top))
    sizes = [p.size for p in points if p.size is not None]
    size = None
    if sizes:
        r_range = (2.0, 30.0) if small else (3.0, 60.0)
        size = SqrtScale((0.0, max(max(sizes), 1e-9)), r_range)
    return XYScales(ChartKind.BUBBLE, viewport, plot, x=x, y=y, size=size)


def _series(dataset, spec, viewport, **_kw) -> XYScales:
    plot = PlotArea.inset(viewport, top=20, right=30, bottom=40, left=60)
    keys = dataset.keys()
    if keys and all(isinstance(k, (int, float)) for k in keys):
        positions = {k: float(k) for k in keys}
    else:
        positions = {k: float(i) for i, k in enumerate(keys)}
    pos = list(positions.values())
    lo, hi = (min(pos), max(pos)) if pos else (0.0, 1.0)
    if hi <= lo:
        lo, hi = lo - 0.5, hi + 0.5
    x = LinearScale((lo, hi), (plot.left, plot.right))
    y = LinearScale(numeric_domain(_scalar_values(dataset)), (plot.bottom, plot.top))
    step_positions = {k: x(p) for k, p in positions.items()}
    return XYScales(spec.kind, viewport, plot, x=x, y=y, step_positions=step_positions)


def _category(dataset, spec, viewport, **_kw) -> CategoryScales:
    plot = PlotArea.inset(viewport, top=20, right=20, bottom=50, left=60)
    x = BandScale(dataset.entity_ids(), (plot.left, plot.right), padding=0.2)
    y = LinearScale(numeric_domain(_scalar_values(dataset)), (plot.bottom, plot.top))
    return CategoryScales(ChartKind.CATEGORY_BARS, viewport, plot, x=x, y=y)


_BUILDERS: Dict[ChartKind, Callable[..., ScaleSet]] = {
    ChartKind.RANKED_BARS: _ranked,
    ChartKind.CHOROPLETH: _choropleth,
    ChartKind.POPULATION_PYRAMID: _pyramid,
    ChartKind.BUBBLE: _bubble,
    ChartKind.LINE: _series,
    ChartKind.AREA: _series,
    ChartKind.CATEGORY_BARS: _category,
}

_missing = set(ChartKind) - set(_BUILDERS)
if _missing:  # pragma: no cover - guards new kinds
    raise RuntimeError(f"No scale builder for chart kinds: {sorted(k.value for k in _missing)}")


def build_scales(
    dataset: TimeSeriesDataset,
    spec: ChartSpec,
    viewport: Viewport,
    *,
    geometry: Any = None,
    features: Sequence[GeoFeature] | None = None,
    metric: str = "primary",
    entity_id: EntityId | None = None,
) -> ScaleSet:
    """Build the scale set for ``spec.kind`` over every step of ``dataset``."""
    if metric not in ("primary", "secondary"):
        raise ValueError(f"metric must be 'primary' or 'secondary', got {metric!r}")
    builder = _BUILDERS[spec.kind]
    return builder(
        dataset,
        spec,
        viewport,
        geometry=geometry,
        features=features,
        metric=metric,
        entity_id=entity_id,
    )
