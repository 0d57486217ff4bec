"""Canonical in-memory model shared by every chart kind.

A dataset is an ordered tuple of ``TimeStep`` objects. Each step maps stable
entity identifiers to one ``EntityValue`` variant. An entity missing from a
step's mapping is *absent* at that step (rendered as a gap, never as zero).

All model objects are frozen dataclasses; chart sessions treat them as
immutable input for the lifetime of a render session.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .errors import UnknownChartKind

__all__ = [
    "EntityId",
    "StepKey",
    "Scalar",
    "LabeledPoint",
    "DualAxisValues",
    "AgeBand",
    "AgeBandSplit",
    "EntityValue",
    "ExpectedShape",
    "ChartKind",
    "TimeStep",
    "TimeSeriesDataset",
    "ChartSpec",
    "PlaybackState",
    "HoverState",
    "Viewport",
]

EntityId = str
StepKey = Union[int, float, str]


# --- Entity values ---------------------------------------------------------


@dataclass(frozen=True)
class Scalar:
    value: float
    label: str | None = None


@dataclass(frozen=True)
class LabeledPoint:
    x: float
    y: float
    size: float | None = None
    label: str | None = None
    group: str | None = None


@dataclass(frozen=True)
class DualAxisValues:
    primary: float
    secondary: float | None = None
    label: str | None = None

    def metric(self, which: str) -> float | None:
        """Return the value for ``"primary"`` or ``"secondary"``."""
        if which == "primary":
            return self.primary
        if which == "secondary":
            return self.secondary
        raise ValueError(f"Unknown metric selector: {which}")


@dataclass(frozen=True)
class AgeBand:
    age: str
    left: float
    right: float


@dataclass(frozen=True)
class AgeBandSplit:
    bands: Tuple[AgeBand, ...]
    label: str | None = None

    def peak(self) -> float:
        return max((max(b.left, b.right) for b in self.bands), default=0.0)


EntityValue = Union[Scalar, LabeledPoint, DualAxisValues, AgeBandSplit]


class ExpectedShape(str, Enum):
    SCALAR = "scalar"
    LABELED_POINT = "labeled_point"
    DUAL_AXIS = "dual_axis"
    AGE_BAND_SPLIT = "age_band_split"

    @property
    def value_type(self) -> type:
        return _SHAPE_TYPES[self]


_SHAPE_TYPES: Dict[ExpectedShape, type] = {
    ExpectedShape.SCALAR: Scalar,
    ExpectedShape.LABELED_POINT: LabeledPoint,
    ExpectedShape.DUAL_AXIS: DualAxisValues,
    ExpectedShape.AGE_BAND_SPLIT: AgeBandSplit,
}


# --- Chart kinds -----------------------------------------------------------


class ChartKind(str, Enum):
    RANKED_BARS = "ranked-bars"
    CHOROPLETH = "choropleth"
    POPULATION_PYRAMID = "population-pyramid"
    BUBBLE = "bubble"
    LINE = "line"
    AREA = "area"
    CATEGORY_BARS = "category-bars"

    @property
    def expected_shape(self) -> ExpectedShape:
        return _KIND_SHAPES[self]

    @classmethod
    def parse(cls, value: Any) -> "ChartKind":
        if isinstance(value, ChartKind):
            return value
        if not isinstance(value, str):
            raise UnknownChartKind(f"Chart kind must be a string, got {type(value).__name__}")
        norm = value.strip().lower().replace("_", "-")
        norm = _KIND_ALIASES.get(norm, norm)
        try:
            return cls(norm)
        except ValueError:
            raise UnknownChartKind(f"Unknown chart kind: {value!r}") from None


# Names used by the query collaborator for the same renderers
_KIND_ALIASES: Dict[str, str] = {
    "horizontal-bar": "ranked-bars",
    "bar-race": "ranked-bars",
    "map": "choropleth",
    "pyramid": "population-pyramid",
    "scatter": "bubble",
    "bar": "category-bars",
}

_KIND_SHAPES: Dict[ChartKind, ExpectedShape] = {
    ChartKind.RANKED_BARS: ExpectedShape.SCALAR,
    ChartKind.CHOROPLETH: ExpectedShape.DUAL_AXIS,
    ChartKind.POPULATION_PYRAMID: ExpectedShape.AGE_BAND_SPLIT,
    ChartKind.BUBBLE: ExpectedShape.LABELED_POINT,
    ChartKind.LINE: ExpectedShape.SCALAR,
    ChartKind.AREA: ExpectedShape.SCALAR,
    ChartKind.CATEGORY_BARS: ExpectedShape.SCALAR,
}


# --- Dataset ---------------------------------------------------------------


@dataclass(frozen=True)
class TimeStep:
    key: StepKey
    entities: Mapping[EntityId, EntityValue] = field(default_factory=dict)

    def get(self, entity_id: EntityId) -> Optional[EntityValue]:
        return self.entities.get(entity_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self.entities


def _new_identity() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class TimeSeriesDataset:
    """Ordered, time-indexed, multi-entity dataset.

    ``identity`` changes with every normalization and is excluded from
    equality, so a dataset equals its own round-tripped copy while sessions
    can still tell two loads apart.
    """

    shape: ExpectedShape
    steps: Tuple[TimeStep, ...] = ()
    identity: str = field(default_factory=_new_identity, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        for prev, cur in zip(self.steps, self.steps[1:]):
            if not prev.key < cur.key:  # type: ignore[operator]
                raise ValueError(
                    f"steps must be strictly increasing by key ({prev.key!r} then {cur.key!r})"
                )

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[TimeStep]:
        return iter(self.steps)

    def __getitem__(self, index: int) -> TimeStep:
        return self.steps[index]

    @property
    def is_empty(self) -> bool:
        return not self.steps

    @property
    def last_index(self) -> int:
        return max(0, len(self.steps) - 1)

    def keys(self) -> Tuple[StepKey, ...]:
        return tuple(s.key for s in self.steps)

    def index_of(self, key: StepKey) -> Optional[int]:
        for idx, step in enumerate(self.steps):
            if step.key == key:
                return idx
        return None

    def entity_ids(self) -> List[EntityId]:
        """All entity ids in order of first appearance."""
        seen: Dict[EntityId, None] = {}
        for step in self.steps:
            for eid in step.entities:
                seen.setdefault(eid, None)
        return list(seen)

    def history(self, entity_id: EntityId) -> List[Tuple[StepKey, Optional[EntityValue]]]:
        """Per-step values of one entity, ``None`` where absent."""
        return [(s.key, s.entities.get(entity_id)) for s in self.steps]


# --- Chart spec ------------------------------------------------------------


@dataclass(frozen=True)
class ChartSpec:
    """Chart request produced by the query collaborator.

    ``labels`` and ``title`` are descriptive only and never affect layout.
    """

    kind: ChartKind
    metric_key: str = "value"
    secondary_metric_key: str | None = None
    labels: Mapping[str, str] = field(default_factory=dict)
    title: str | None = None
    size_key: str | None = None
    group_key: str | None = None
    x_scale: str = "linear"

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", ChartKind.parse(self.kind))
        if self.x_scale not in ("linear", "log"):
            raise ValueError(f"x_scale must be 'linear' or 'log', got {self.x_scale!r}")

    @property
    def expected_shape(self) -> ExpectedShape:
        return self.kind.expected_shape

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ChartSpec":
        if not isinstance(payload, Mapping):
            raise TypeError("chart spec payload must be a mapping")
        kind = payload.get("kind", payload.get("type"))
        if kind is None:
            raise UnknownChartKind("chart spec payload has no 'kind'")
        labels = payload.get("labels") or {}
        return cls(
            kind=ChartKind.parse(kind),
            metric_key=str(payload.get("metricKey", payload.get("metric_key", "value"))),
            secondary_metric_key=payload.get("secondaryMetricKey", payload.get("secondary_metric_key")),
            labels=dict(labels),
            title=payload.get("title"),
            size_key=payload.get("sizeKey", payload.get("size_key")),
            group_key=payload.get("groupKey", payload.get("group_key")),
            x_scale=payload.get("xScale", payload.get("x_scale", "linear")),
        )


# --- Observable state snapshots ---------------------------------------------


@dataclass(frozen=True)
class PlaybackState:
    current_index: int = 0
    is_playing: bool = False


@dataclass(frozen=True)
class HoverState:
    entity_id: EntityId
    pointer_x: float
    pointer_y: float


@dataclass(frozen=True)
class Viewport:
    width: int
    height: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "width", max(1, int(self.width)))
        object.__setattr__(self, "height", max(1, int(self.height)))

    @property
    def is_small(self) -> bool:
        return self.width < 500
