"""Canonical data model, error taxonomy and dataset normalization."""

from .errors import ProviderError, ShapeMismatch, TimeVizError, UnknownChartKind  # noqa: F401
from .models import (  # noqa: F401
    AgeBand,
    AgeBandSplit,
    ChartKind,
    ChartSpec,
    DualAxisValues,
    ExpectedShape,
    HoverState,
    LabeledPoint,
    PlaybackState,
    Scalar,
    TimeSeriesDataset,
    TimeStep,
    Viewport,
)
from .normalizer import FieldMap, normalize, serialize  # noqa: F401
