"""Global configuration and constants for the visualization engine.

Every value may be overridden through an environment variable carrying the
``TIMEVIZ_`` prefix (e.g. ``TIMEVIZ_DOMAIN_PADDING=1.2``). Overrides are read
once at import time; invalid values fall back to the default.
"""

from __future__ import annotations

import os
from typing import Dict, Final


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(f"TIMEVIZ_{name}")
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(f"TIMEVIZ_{name}")
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# Numeric axis domains are [min(0, lo), hi * DOMAIN_PADDING]
DOMAIN_PADDING: Final = _env_float("DOMAIN_PADDING", 1.1)

# Rows shown by the ranked bar race
RANKED_TOP_N: Final = _env_int("RANKED_TOP_N", 10)

# Resize events are coalesced; last-size-wins after this quiet period
RESIZE_DEBOUNCE_MS: Final = _env_int("RESIZE_DEBOUNCE_MS", 90)

# Transition driver cadence (~60 FPS)
FRAME_INTERVAL_MS: Final = _env_int("FRAME_INTERVAL_MS", 16)

# Playback tick interval per chart kind (ms between time steps)
TICK_INTERVAL_MS: Final[Dict[str, int]] = {
    "ranked-bars": _env_int("TICK_RANKED_BARS_MS", 500),
    "choropleth": _env_int("TICK_CHOROPLETH_MS", 200),
    "population-pyramid": _env_int("TICK_POPULATION_PYRAMID_MS", 1500),
    "bubble": _env_int("TICK_BUBBLE_MS", 300),
    "line": _env_int("TICK_LINE_MS", 400),
    "area": _env_int("TICK_AREA_MS", 400),
    "category-bars": _env_int("TICK_CATEGORY_BARS_MS", 600),
}

# Enter/update/exit transition duration per chart kind
TRANSITION_MS: Final[Dict[str, int]] = {
    "ranked-bars": _env_int("TRANSITION_RANKED_BARS_MS", 450),
    "choropleth": _env_int("TRANSITION_CHOROPLETH_MS", 300),
    "population-pyramid": _env_int("TRANSITION_POPULATION_PYRAMID_MS", 500),
    "bubble": _env_int("TRANSITION_BUBBLE_MS", 600),
    "line": _env_int("TRANSITION_LINE_MS", 350),
    "area": _env_int("TRANSITION_AREA_MS", 350),
    "category-bars": _env_int("TRANSITION_CATEGORY_BARS_MS", 500),
}

# Transitions are bounded to this window regardless of overrides
MIN_TRANSITION_MS: Final = 0
MAX_TRANSITION_MS: Final = 1000

DEFAULT_VIEWPORT: Final = (900, 550)

# Choropleth projection inset (px on each side)
MAP_MARGIN_PX: Final = 20


def tick_interval_ms(kind: str) -> int:
    return max(1, TICK_INTERVAL_MS.get(kind, 500))


def transition_ms(kind: str) -> int:
    value = TRANSITION_MS.get(kind, 400)
    return max(MIN_TRANSITION_MS, min(value, MAX_TRANSITION_MS))
