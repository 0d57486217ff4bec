"""Error taxonomy for the visualization engine.

Only conditions that must stop a chart instance are exceptions. Join misses
between map features and entities, and zero-width scale domains, are
recovered locally and never raised.
"""

from __future__ import annotations

__all__ = [
    "TimeVizError",
    "ShapeMismatch",
    "ProviderError",
    "UnknownChartKind",
]


class TimeVizError(Exception):
    """Base class for engine errors."""


class ShapeMismatch(TimeVizError, ValueError):
    """Raw payload cannot be interpreted as any supported dataset shape.

    Distinct from an empty dataset, which is valid and renders an empty state.
    """

    def __init__(self, message: str, *, path: str | None = None) -> None:
        self.path = path
        if path:
            message = f"{message} (at {path})"
        super().__init__(message)


class ProviderError(TimeVizError):
    """The external data provider failed to deliver a payload."""


class UnknownChartKind(TimeVizError, ValueError):
    """A chart spec named a kind the engine does not render."""
