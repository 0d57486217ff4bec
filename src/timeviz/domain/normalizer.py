"""Dataset normalizer.

Converts the heterogeneous payload shapes delivered by data collaborators
into one canonical ``TimeSeriesDataset``.

Supported raw shapes
--------------------
* array of steps:      ``[{"year": 1960, "countries": [{"code": "USA", "value": 5.4e11}]}]``
* step-first map:      ``{"2020": {"USA": {"co2": 4712.8, "co2_per_capita": 14.2}}}``
                       ``{"2000": [{"code": "USA", "gdp": 36330, "life": 76.6}]}``
* entity-first map:    ``{"USA": {"1990": [{"age": "0-4", "male": 9.4, "female": 9.0}]}}``
* flat point list:     ``[{"entity": "USA", "x": 2001, "y": 10.58}]``
* named series list:   ``[{"name": "USA", "data": [{"x": 2001, "y": 10.58}]}]``

Rules
-----
* Numeric strings are coerced to numbers.
* A required field that is missing, ``null`` or non-numeric makes the entity
  *absent* at that step (omitted from the mapping), never zero.
* Entity records that never yield a value at any step (a wrong metric key,
  say) raise ``ShapeMismatch``.
* A payload whose structure cannot be interpreted at all raises
  ``ShapeMismatch``; no partial dataset is returned. ``[]`` is a valid empty
  dataset, ``{}`` is malformed.
* List sources keep their order unless it is not ascending; map sources are
  unordered and always sorted ascending by step key.

``serialize`` emits the canonical array-of-steps form, which ``normalize``
reads back into an equal dataset.
"""

from __future__ import annotations

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ShapeMismatch
from .models import (
    AgeBand,
    AgeBandSplit,
    ChartSpec,
    DualAxisValues,
    EntityValue,
    ExpectedShape,
    LabeledPoint,
    Scalar,
    StepKey,
    TimeSeriesDataset,
    TimeStep,
)

__all__ = ["FieldMap", "normalize", "serialize"]

log = logging.getLogger(__name__)

Names = Tuple[str, ...]


@dataclass(frozen=True)
class FieldMap:
    """Candidate field names per logical field; the first present name wins."""

    entity: Names = ("id", "code", "entity", "iso3", "iso_a3", "name")
    label: Names = ("label", "name")
    step: Names = ("key", "year", "step", "date")
    children: Names = ("entities", "countries", "items", "values")
    value: Names = ("value", "y")
    x: Names = ("x",)
    y: Names = ("y",)
    size: Names = ("size", "pop", "population")
    group: Names = ("group", "region")
    primary: Names = ("primary", "value")
    secondary: Names = ("secondary",)
    bands: Names = ("bands", "groups", "ages")
    band_age: Names = ("age", "band")
    band_left: Names = ("left", "male")
    band_right: Names = ("right", "female")

    @classmethod
    def for_spec(cls, spec: ChartSpec) -> "FieldMap":
        base = cls()
        shape = spec.expected_shape
        if shape is ExpectedShape.SCALAR:
            return replace(base, value=_prepend(spec.metric_key, base.value))
        if shape is ExpectedShape.LABELED_POINT:
            return replace(
                base,
                x=_prepend(spec.metric_key, base.x),
                y=_prepend(spec.secondary_metric_key, base.y),
                size=_prepend(spec.size_key, base.size),
                group=_prepend(spec.group_key, base.group),
            )
        if shape is ExpectedShape.DUAL_AXIS:
            return replace(
                base,
                primary=_prepend(spec.metric_key, base.primary),
                secondary=_prepend(spec.secondary_metric_key, base.secondary),
            )
        return base


def _prepend(name: Optional[str], names: Names) -> Names:
    if not name or name in names:
        return names
    return (name,) + names


# --- Scalar coercion helpers --------------------------------------------------


def _to_number(raw: Any) -> Optional[float]:
    """Coerce a JSON scalar to float; ``None`` when null or non-numeric."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        try:
            value = float(raw.strip().replace(",", ""))
        except ValueError:
            return None
    else:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def _to_step_key(raw: Any, path: str) -> StepKey:
    if raw is None or isinstance(raw, bool):
        raise ShapeMismatch(f"invalid step key {raw!r}", path=path)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if math.isnan(raw):
            raise ShapeMismatch("step key is NaN", path=path)
        return int(raw) if raw.is_integer() else raw
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            raise ShapeMismatch("empty step key", path=path)
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return text
    raise ShapeMismatch(f"step key must be a scalar, got {type(raw).__name__}", path=path)


def _looks_like_step_key(raw: Any) -> bool:
    try:
        key = _to_step_key(raw, "")
    except ShapeMismatch:
        return False
    return isinstance(key, (int, float))


def _pick(record: Mapping[str, Any], names: Names) -> Any:
    for name in names:
        if name in record:
            return record[name]
    return None


def _has_any(record: Mapping[str, Any], names: Names) -> bool:
    return any(name in record for name in names)


def _to_label(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    return str(raw)


# --- Entity value coercion ---------------------------------------------------


def _coerce_value(raw: Any, shape: ExpectedShape, fields: FieldMap, path: str) -> Optional[EntityValue]:
    """Return the typed value, or ``None`` for an absent entity.

    Structural mismatches (wrong container type) raise ``ShapeMismatch``.
    """
    if shape is ExpectedShape.AGE_BAND_SPLIT:
        return _coerce_age_bands(raw, fields, path)
    if raw is None:
        return None
    if isinstance(raw, (list, tuple)):
        raise ShapeMismatch(f"expected a record or number for {shape.value}", path=path)
    if not isinstance(raw, Mapping):
        if shape is ExpectedShape.LABELED_POINT:
            raise ShapeMismatch("labeled points need a record with x and y", path=path)
        number = _to_number(raw)
        if number is None:
            return None
        if shape is ExpectedShape.SCALAR:
            return Scalar(number)
        return DualAxisValues(number)

    label = _to_label(_pick(raw, fields.label))
    if shape is ExpectedShape.SCALAR:
        value = _to_number(_pick(raw, fields.value))
        return None if value is None else Scalar(value, label)
    if shape is ExpectedShape.DUAL_AXIS:
        primary = _to_number(_pick(raw, fields.primary))
        if primary is None:
            return None
        return DualAxisValues(primary, _to_number(_pick(raw, fields.secondary)), label)
    # labeled point
    x = _to_number(_pick(raw, fields.x))
    y = _to_number(_pick(raw, fields.y))
    if x is None or y is None:
        return None
    return LabeledPoint(
        x=x,
        y=y,
        size=_to_number(_pick(raw, fields.size)),
        label=label,
        group=_to_label(_pick(raw, fields.group)),
    )


def _coerce_age_bands(raw: Any, fields: FieldMap, path: str) -> Optional[AgeBandSplit]:
    label = None
    if isinstance(raw, Mapping):
        label = _to_label(_pick(raw, fields.label))
        raw = _pick(raw, fields.bands)
    if raw is None:
        return None
    if not isinstance(raw, (list, tuple)):
        raise ShapeMismatch("age bands must be a list", path=path)
    bands: List[AgeBand] = []
    for i, band in enumerate(raw):
        if not isinstance(band, Mapping):
            raise ShapeMismatch("age band must be a record", path=f"{path}[{i}]")
        age = _pick(band, fields.band_age)
        left = _to_number(_pick(band, fields.band_left))
        right = _to_number(_pick(band, fields.band_right))
        # a band with an unusable side is dropped, the rest of the pyramid survives
        if age is None or left is None or right is None:
            continue
        bands.append(AgeBand(str(age), left, right))
    if not bands:
        return None
    return AgeBandSplit(tuple(bands), label)


# --- Assembly ----------------------------------------------------------------


class _Accumulator:
    """Collects (step, entity, value) triples preserving first-seen step order."""

    def __init__(self) -> None:
        self._steps: "OrderedDict[StepKey, Dict[str, EntityValue]]" = OrderedDict()
        self.seen = 0
        self.kept = 0

    def touch(self, key: StepKey) -> Dict[str, EntityValue]:
        return self._steps.setdefault(key, {})

    def put(self, key: StepKey, entity_id: str, value: Optional[EntityValue]) -> None:
        bucket = self.touch(key)
        self.seen += 1
        if value is None:
            bucket.pop(entity_id, None)
        else:
            bucket[entity_id] = value
            self.kept += 1

    def build(self, shape: ExpectedShape, *, ordered_source: bool) -> TimeSeriesDataset:
        keys = list(self._steps)
        numeric = [isinstance(k, (int, float)) for k in keys]
        if any(numeric) and not all(numeric):
            raise ShapeMismatch("step keys mix numbers and labels")
        if self.seen and not self.kept:
            # entity records exist but none yields a value
            raise ShapeMismatch(f"no record carries the required fields for {shape.value}")
        ascending = all(a < b for a, b in zip(keys, keys[1:]))  # type: ignore[operator]
        if not ascending:
            if ordered_source:
                log.debug("source steps not ascending; sorting %d steps by key", len(keys))
            keys.sort()  # type: ignore[arg-type]
        steps = tuple(TimeStep(k, dict(self._steps[k])) for k in keys)
        return TimeSeriesDataset(shape=shape, steps=steps)


def _entity_id(record: Mapping[str, Any], fields: FieldMap, path: str) -> str:
    raw = _pick(record, fields.entity)
    if raw is None or isinstance(raw, (Mapping, list, tuple)):
        raise ShapeMismatch("record has no entity id", path=path)
    return str(raw)


def _from_step_array(raw: Sequence[Mapping[str, Any]], shape, fields, acc: _Accumulator) -> None:
    for i, step in enumerate(raw):
        path = f"[{i}]"
        key = _to_step_key(_pick(step, fields.step), path)
        children = _pick(step, fields.children)
        acc.touch(key)
        if isinstance(children, Mapping):
            for eid, value in children.items():
                acc.put(key, str(eid), _coerce_value(value, shape, fields, f"{path}.{eid}"))
            continue
        if not isinstance(children, (list, tuple)):
            raise ShapeMismatch("step has no entity collection", path=path)
        for j, record in enumerate(children):
            cpath = f"{path}[{j}]"
            if not isinstance(record, Mapping):
                raise ShapeMismatch("entity entry must be a record", path=cpath)
            acc.put(key, _entity_id(record, fields, cpath), _coerce_value(record, shape, fields, cpath))


def _from_flat_points(raw: Sequence[Mapping[str, Any]], shape, fields, acc: _Accumulator) -> None:
    step_names = fields.step if shape is not ExpectedShape.SCALAR else fields.step + fields.x
    for i, record in enumerate(raw):
        path = f"[{i}]"
        if not _has_any(record, step_names):
            raise ShapeMismatch("point has no step key", path=path)
        key = _to_step_key(_pick(record, step_names), path)
        acc.put(key, _entity_id(record, fields, path), _coerce_value(record, shape, fields, path))


def _from_series_list(raw: Sequence[Mapping[str, Any]], shape, fields, acc: _Accumulator) -> None:
    if shape is not ExpectedShape.SCALAR:
        raise ShapeMismatch(f"series lists only carry scalar values, not {shape.value}")
    for i, series in enumerate(raw):
        path = f"[{i}]"
        entity = _entity_id(series, fields, path)
        points = series.get("data")
        if not isinstance(points, (list, tuple)):
            raise ShapeMismatch("series has no data list", path=path)
        for j, point in enumerate(points):
            ppath = f"{path}.data[{j}]"
            if not isinstance(point, Mapping):
                raise ShapeMismatch("series point must be a record", path=ppath)
            key = _to_step_key(_pick(point, fields.step + fields.x), ppath)
            value = _to_number(_pick(point, fields.y + fields.value))
            acc.put(key, entity, None if value is None else Scalar(value, _to_label(point.get("label"))))


def _from_step_map(raw: Mapping[Any, Any], shape, fields, acc: _Accumulator) -> None:
    for step_raw, entities in raw.items():
        path = f".{step_raw}"
        key = _to_step_key(step_raw, path)
        acc.touch(key)
        if isinstance(entities, Mapping):
            for eid, value in entities.items():
                acc.put(key, str(eid), _coerce_value(value, shape, fields, f"{path}.{eid}"))
        elif isinstance(entities, (list, tuple)):
            for j, record in enumerate(entities):
                cpath = f"{path}[{j}]"
                if not isinstance(record, Mapping):
                    raise ShapeMismatch("entity entry must be a record", path=cpath)
                acc.put(key, _entity_id(record, fields, cpath), _coerce_value(record, shape, fields, cpath))
        elif entities is not None:
            raise ShapeMismatch("step entry must be a map or list of entities", path=path)


def _from_entity_map(raw: Mapping[Any, Any], shape, fields, acc: _Accumulator) -> None:
    for eid, per_step in raw.items():
        path = f".{eid}"
        if not isinstance(per_step, Mapping):
            raise ShapeMismatch("entity entry must map steps to values", path=path)
        for step_raw, value in per_step.items():
            spath = f"{path}.{step_raw}"
            acc.put(_to_step_key(step_raw, spath), str(eid), _coerce_value(value, shape, fields, spath))


def _classify_list(raw: Sequence[Any], fields: FieldMap) -> str:
    first = raw[0]
    if _has_any(first, fields.step) and _has_any(first, fields.children):
        return "steps"
    if isinstance(first.get("data"), (list, tuple)) and _has_any(first, fields.entity):
        return "series"
    return "points"


def _step_first(raw: Mapping[Any, Any]) -> Optional[bool]:
    if all(_looks_like_step_key(k) for k in raw):
        return True
    inner = list(raw.values())
    if all(isinstance(v, Mapping) and v and all(_looks_like_step_key(k) for k in v) for v in inner):
        return False
    return None


def normalize(
    raw: Any,
    expected_shape: ExpectedShape | str,
    *,
    fields: FieldMap | None = None,
    step_first: bool | None = None,
) -> TimeSeriesDataset:
    """Normalize ``raw`` into a dataset whose values have ``expected_shape``.

    Raises ``ShapeMismatch`` when the payload cannot be interpreted.
    """
    shape = ExpectedShape(expected_shape)
    fields = fields or FieldMap()
    if isinstance(raw, TimeSeriesDataset):
        if raw.shape is not shape:
            raise ShapeMismatch(f"dataset holds {raw.shape.value}, expected {shape.value}")
        return raw
    acc = _Accumulator()
    if isinstance(raw, (list, tuple)):
        if not raw:
            return TimeSeriesDataset(shape=shape)
        for i, item in enumerate(raw):
            if not isinstance(item, Mapping):
                raise ShapeMismatch("list entries must be records", path=f"[{i}]")
        kind = _classify_list(raw, fields)
        if kind == "steps":
            _from_step_array(raw, shape, fields, acc)
        elif kind == "series":
            _from_series_list(raw, shape, fields, acc)
        else:
            _from_flat_points(raw, shape, fields, acc)
        return acc.build(shape, ordered_source=True)
    if isinstance(raw, Mapping):
        if not raw:
            raise ShapeMismatch("empty object")
        orientation = _step_first(raw) if step_first is None else step_first
        if orientation is None:
            raise ShapeMismatch("map keys are neither step keys nor entity ids over step keys")
        if orientation:
            _from_step_map(raw, shape, fields, acc)
        else:
            _from_entity_map(raw, shape, fields, acc)
        return acc.build(shape, ordered_source=False)
    raise ShapeMismatch(f"unsupported top-level type {type(raw).__name__}")


# --- Canonical serialization ----------------------------------------------------


def _serialize_value(value: EntityValue) -> Dict[str, Any]:
    if isinstance(value, Scalar):
        return {"value": value.value, "label": value.label}
    if isinstance(value, LabeledPoint):
        return {
            "x": value.x,
            "y": value.y,
            "size": value.size,
            "label": value.label,
            "group": value.group,
        }
    if isinstance(value, DualAxisValues):
        return {"primary": value.primary, "secondary": value.secondary, "label": value.label}
    return {
        "bands": [{"age": b.age, "left": b.left, "right": b.right} for b in value.bands],
        "label": value.label,
    }


def serialize(dataset: TimeSeriesDataset) -> List[Dict[str, Any]]:
    """Canonical JSON-compatible form (array of steps)."""
    out: List[Dict[str, Any]] = []
    for step in dataset.steps:
        entities: Iterable[Dict[str, Any]] = (
            {"id": eid, **_serialize_value(value)} for eid, value in step.entities.items()
        )
        out.append({"key": step.key, "entities": list(entities)})
    return out
