"""PyQt6 host widgets."""

from .chart_view import TemporalChartView  # noqa: F401
