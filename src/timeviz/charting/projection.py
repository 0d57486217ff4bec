"""Geographic projection for the choropleth kind.

Implements the Natural Earth I pseudo-cylindrical projection (the same
polynomial approximation used by d3-geo) over numpy arrays and fits it to a
viewport: the projected bounding box of the supplied feature collection is
scaled uniformly and centered inside the viewport minus a margin.

Boundary data is a GeoJSON-like FeatureCollection. The only requirement on it
is that each feature exposes a stable id joinable against entity ids; the
lookup order is an explicit ``id_property``, then the usual ISO alpha-3
properties, then the feature's own ``id``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import numpy as np

from timeviz.domain.errors import ShapeMismatch

__all__ = [
    "GeoFeature",
    "GeoProjection",
    "JoinReport",
    "natural_earth",
    "feature_id",
    "load_features",
    "join_report",
]

_ID_PROPERTIES = ("iso_a3", "ISO_A3", "ADM0_A3", "iso3", "id")
_MISSING_IDS = {"-99", ""}


def natural_earth(lon: np.ndarray, lat: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Raw Natural Earth I projection of degrees to unit plane (y up)."""
    lam = np.radians(np.asarray(lon, dtype=float))
    phi = np.radians(np.asarray(lat, dtype=float))
    phi2 = phi * phi
    phi4 = phi2 * phi2
    x = lam * (0.8707 - 0.131979 * phi2 + phi4 * (-0.013791 + phi4 * (0.003971 * phi2 - 0.001529 * phi4)))
    y = phi * (1.007226 + phi2 * (0.015085 + phi4 * (-0.044475 + 0.028874 * phi2 - 0.005916 * phi4)))
    return x, y


@dataclass(frozen=True)
class GeoFeature:
    id: str
    name: str | None
    rings: Tuple[np.ndarray, ...]  # lon/lat rings, each (N, 2)
    joinable: bool = True


def feature_id(feature: Mapping[str, Any], id_property: str | None = None) -> Optional[str]:
    props = feature.get("properties") or {}
    candidates: Iterable[str] = (id_property,) if id_property else _ID_PROPERTIES
    for name in candidates:
        value = props.get(name)
        if value is not None and str(value) not in _MISSING_IDS:
            return str(value)
    raw = feature.get("id")
    if raw is not None and str(raw) not in _MISSING_IDS:
        return str(raw)
    return None


def _rings(geometry: Mapping[str, Any] | None) -> List[np.ndarray]:
    if not geometry:
        return []
    gtype = geometry.get("type")
    coords = geometry.get("coordinates") or []
    if gtype == "Polygon":
        polygons = [coords]
    elif gtype == "MultiPolygon":
        polygons = coords
    else:
        return []
    out: List[np.ndarray] = []
    for polygon in polygons:
        for ring in polygon:
            arr = np.asarray(ring, dtype=float)
            if arr.ndim == 2 and arr.shape[0] >= 3:
                out.append(arr[:, :2])
    return out


def load_features(collection: Any, id_property: str | None = None) -> List[GeoFeature]:
    """Extract polygon features from a FeatureCollection mapping.

    Features sharing a joinable id (a country split over several records)
    are merged into one feature carrying all of their rings.
    """
    if not isinstance(collection, Mapping) or not isinstance(collection.get("features"), list):
        raise ShapeMismatch("boundary data must be a FeatureCollection with a 'features' list")
    features: Dict[str, GeoFeature] = {}
    for idx, feature in enumerate(collection["features"]):
        if not isinstance(feature, Mapping):
            raise ShapeMismatch("feature must be a mapping", path=f"features[{idx}]")
        rings = _rings(feature.get("geometry"))
        if not rings:
            continue
        fid = feature_id(feature, id_property)
        name = (feature.get("properties") or {}).get("name")
        if fid is None:
            key = f"feature-{idx}"
            features[key] = GeoFeature(key, name, tuple(rings), joinable=False)
        elif fid in features:
            prev = features[fid]
            features[fid] = GeoFeature(fid, prev.name or name, prev.rings + tuple(rings))
        else:
            features[fid] = GeoFeature(fid, name, tuple(rings))
    return list(features.values())


class GeoProjection:
    """Natural Earth projection scaled/translated into screen pixels (y down)."""

    def __init__(self, scale: float = 1.0, tx: float = 0.0, ty: float = 0.0) -> None:
        self.scale = scale
        self.tx = tx
        self.ty = ty

    @classmethod
    def fit_size(
        cls, features: Sequence[GeoFeature], width: float, height: float, margin: float = 20.0
    ) -> "GeoProjection":
        inner_w = max(1.0, width - 2 * margin)
        inner_h = max(1.0, height - 2 * margin)
        if not features:
            return cls(scale=min(inner_w, inner_h) / 2.0, tx=width / 2.0, ty=height / 2.0)
        pts = np.concatenate([ring for f in features for ring in f.rings])
        x, y = natural_earth(pts[:, 0], pts[:, 1])
        y = -y
        x0, x1 = float(x.min()), float(x.max())
        y0, y1 = float(y.min()), float(y.max())
        dx = max(x1 - x0, 1e-9)
        dy = max(y1 - y0, 1e-9)
        k = min(inner_w / dx, inner_h / dy)
        tx = margin + (inner_w - k * dx) / 2.0 - k * x0
        ty = margin + (inner_h - k * dy) / 2.0 - k * y0
        return cls(scale=k, tx=tx, ty=ty)

    def __call__(self, lon: float, lat: float) -> Tuple[float, float]:
        x, y = self.project(np.array([lon]), np.array([lat]))
        return float(x[0]), float(y[0])

    def project(self, lon: np.ndarray, lat: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        x, y = natural_earth(lon, lat)
        return x * self.scale + self.tx, -y * self.scale + self.ty

    def project_rings(self, rings: Iterable[np.ndarray]) -> Tuple[np.ndarray, ...]:
        out = []
        for ring in rings:
            x, y = self.project(ring[:, 0], ring[:, 1])
            out.append(np.column_stack([x, y]))
        return tuple(out)


@dataclass(frozen=True)
class JoinReport:
    unmatched_features: Tuple[str, ...]
    unmatched_entities: Tuple[str, ...]

    @property
    def clean(self) -> bool:
        return not self.unmatched_features and not self.unmatched_entities


def join_report(features: Sequence[GeoFeature], entity_ids: Iterable[str]) -> JoinReport:
    """Features with no entity in any step, and entities with no feature."""
    feature_ids: Set[str] = {f.id for f in features if f.joinable}
    entities: Set[str] = set(entity_ids)
    return JoinReport(
        unmatched_features=tuple(sorted(feature_ids - entities)),
        unmatched_entities=tuple(sorted(entities - feature_ids)),
    )
