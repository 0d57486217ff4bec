"""timeviz: interactive, animated, time-indexed charts on PyQt6 + matplotlib."""

from .domain import (  # noqa: F401
    ChartKind,
    ChartSpec,
    ProviderError,
    ShapeMismatch,
    TimeSeriesDataset,
    TimeVizError,
    normalize,
    serialize,
)
from .session import ChartSession  # noqa: F401

__version__ = "0.1.0"
