"""Easing curves for scene transitions.

Easing tokens are CSS-like ``cubic-bezier(x1, y1, x2, y2)`` strings, parsed
once and turned into callables mapping normalized time ``t`` in [0, 1] to
progress. No Qt imports; the scene graph samples these directly.
"""

from __future__ import annotations

from typing import Callable, Dict, Tuple

__all__ = [
    "CubicBezier",
    "Easing",
    "EASING_TOKENS",
    "parse_cubic_bezier",
    "cubic_bezier",
    "easing",
    "linear",
]

CubicBezier = Tuple[float, float, float, float]
Easing = Callable[[float], float]

EASING_TOKENS: Dict[str, str] = {
    "standard": "cubic-bezier(0.4, 0.0, 0.2, 1)",
    "decelerate": "cubic-bezier(0.0, 0.0, 0.2, 1)",
    "accelerate": "cubic-bezier(0.4, 0.0, 1, 1)",
    "ease-out": "cubic-bezier(0.0, 0.0, 0.58, 1)",
}


def parse_cubic_bezier(spec: str) -> CubicBezier:
    """Parse ``'cubic-bezier(x1, y1, x2, y2)'`` into a float tuple."""
    s = spec.strip().lower()
    if not s.startswith("cubic-bezier(") or not s.endswith(")"):
        raise ValueError(f"Invalid cubic-bezier format: {spec}")
    inner = s[len("cubic-bezier(") : -1]
    parts = [p.strip() for p in inner.split(",")]
    if len(parts) != 4:
        raise ValueError(f"cubic-bezier requires 4 components, got {len(parts)}: {spec}")
    try:
        x1, y1, x2, y2 = (float(p) for p in parts)
    except ValueError as e:
        raise ValueError(f"Non-numeric cubic-bezier value in {spec}") from e
    if not (0.0 <= x1 <= 1.0 and 0.0 <= x2 <= 1.0):
        raise ValueError(f"cubic-bezier x components must lie in [0, 1]: {spec}")
    return x1, y1, x2, y2


def linear(t: float) -> float:
    return min(1.0, max(0.0, t))


def cubic_bezier(x1: float, y1: float, x2: float, y2: float) -> Easing:
    """Build an easing function for the given control points."""

    def _coord(t: float, p1: float, p2: float) -> float:
        # Bernstein form with P0 = 0 and P3 = 1
        u = 1.0 - t
        return 3 * u * u * t * p1 + 3 * u * t * t * p2 + t * t * t

    def _slope(t: float, p1: float, p2: float) -> float:
        u = 1.0 - t
        return 3 * u * u * p1 + 6 * u * t * (p2 - p1) + 3 * t * t * (1.0 - p2)

    def _solve_t(x: float) -> float:
        t = x
        for _ in range(8):
            err = _coord(t, x1, x2) - x
            if abs(err) < 1e-6:
                return t
            d = _slope(t, x1, x2)
            if abs(d) < 1e-6:
                break
            t -= err / d
        lo, hi = 0.0, 1.0
        t = x
        for _ in range(40):
            cx = _coord(t, x1, x2)
            if abs(cx - x) < 1e-6:
                break
            if cx < x:
                lo = t
            else:
                hi = t
            t = (lo + hi) / 2.0
        return t

    def _ease(t: float) -> float:
        if t <= 0.0:
            return 0.0
        if t >= 1.0:
            return 1.0
        return _coord(_solve_t(t), y1, y2)

    return _ease


def easing(name: str) -> Easing:
    if name == "linear":
        return linear
    raw = EASING_TOKENS.get(name)
    if raw is None:
        raise KeyError(f"Unknown easing token: {name}")
    return cubic_bezier(*parse_cubic_bezier(raw))
