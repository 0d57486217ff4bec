"""Chart palette: entity colors, group colors and sequential color stops.

Colors are plain hex strings; the matplotlib backend converts them to RGBA
through ``to_rgba`` so the scene graph can interpolate fills numerically.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

from matplotlib.colors import to_rgba

__all__ = [
    "SERIES_FALLBACK",
    "ENTITY_COLORS",
    "GROUP_COLORS",
    "SEQUENTIAL_STOPS",
    "NEUTRAL_FILL",
    "PYRAMID_LEFT",
    "PYRAMID_RIGHT",
    "TEXT_PRIMARY",
    "TEXT_MUTED",
    "rgba",
    "color_for_entity",
    "color_for_group",
]

RGBA = Tuple[float, float, float, float]

SERIES_FALLBACK: List[str] = [
    "#4E79A7",
    "#F28E2B",
    "#E15759",
    "#76B7B2",
    "#59A14F",
    "#EDC948",
    "#B07AA1",
    "#FF9DA7",
]

ENTITY_COLORS: Dict[str, str] = {
    "USA": "#6366f1",
    "CHN": "#ef4444",
    "JPN": "#f97316",
    "DEU": "#fbbf24",
    "GBR": "#22c55e",
    "IND": "#14b8a6",
    "FRA": "#3b82f6",
    "ITA": "#8b5cf6",
    "BRA": "#10b981",
    "CAN": "#f43f5e",
    "RUS": "#ec4899",
    "KOR": "#06b6d4",
    "AUS": "#a855f7",
    "ESP": "#eab308",
    "MEX": "#84cc16",
    "IDN": "#f59e0b",
    "NLD": "#6366f1",
    "SAU": "#22d3ee",
    "TUR": "#fb923c",
    "CHE": "#c084fc",
}

GROUP_COLORS: Dict[str, str] = {
    "Americas": "#6366f1",
    "Europe": "#22c55e",
    "Asia": "#f43f5e",
    "Africa": "#f97316",
    "Oceania": "#8b5cf6",
    "Other": "#64748b",
}

# Near black -> purple -> fuchsia -> amber
SEQUENTIAL_STOPS: List[str] = [
    "#0a0a0f",
    "#1e1b4b",
    "#4c1d95",
    "#7c3aed",
    "#c026d3",
    "#f43f5e",
    "#fb923c",
    "#fbbf24",
]

NEUTRAL_FILL = "#1a1a24"
PYRAMID_LEFT = "#6366f1"
PYRAMID_RIGHT = "#ec4899"
TEXT_PRIMARY = "#e6edf3"
TEXT_MUTED = "#6e7681"


def rgba(color: str, alpha: float | None = None) -> RGBA:
    return tuple(to_rgba(color, alpha))  # type: ignore[return-value]


def _stable_index(key: str, modulo: int) -> int:
    # hash() is salted per process; keep colors stable across runs
    return sum(ord(c) for c in key) % modulo


def color_for_entity(entity_id: str) -> str:
    color = ENTITY_COLORS.get(entity_id)
    if color:
        return color
    return SERIES_FALLBACK[_stable_index(entity_id, len(SERIES_FALLBACK))]


def color_for_group(group: str | None) -> str:
    if group is None:
        return GROUP_COLORS["Other"]
    return GROUP_COLORS.get(group, GROUP_COLORS["Other"])
