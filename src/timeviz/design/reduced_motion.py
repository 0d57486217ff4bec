"""Adaptive motion reduction utilities.

Single source of truth for whether chart transitions should be skipped
(users who prefer reduced motion, or constrained environments). When reduced
motion is on, every transition collapses to an immediate snap.

Patterns:
- Module level state behind a setter/getter.
- Environment bootstrap: ``TIMEVIZ_PREFER_REDUCED_MOTION=1`` (or "true",
  "yes", "on", case-insensitive) enables reduced motion at import time.

Public API:
- set_reduced_motion(enabled: bool) -> None
- is_reduced_motion() -> bool
- adjust_duration(ms: int, minimum_ms: int = 0) -> int
- temporarily_reduced_motion(force: bool = True) -> context manager
"""

from __future__ import annotations

import contextlib
import os
from typing import Iterator

__all__ = [
    "set_reduced_motion",
    "is_reduced_motion",
    "adjust_duration",
    "temporarily_reduced_motion",
]

_reduced_motion_enabled: bool = False

_env_value = os.getenv("TIMEVIZ_PREFER_REDUCED_MOTION", "").strip().lower()
if _env_value in {"1", "true", "yes", "on"}:
    _reduced_motion_enabled = True


def set_reduced_motion(enabled: bool) -> None:
    global _reduced_motion_enabled
    _reduced_motion_enabled = bool(enabled)


def is_reduced_motion() -> bool:
    return _reduced_motion_enabled


def adjust_duration(ms: int, minimum_ms: int = 0) -> int:
    """Return ``ms`` (clamped to >= 0), or ``minimum_ms`` when motion is reduced."""
    if minimum_ms < 0:
        minimum_ms = 0
    if ms < 0:
        ms = 0
    return minimum_ms if _reduced_motion_enabled else ms


@contextlib.contextmanager
def temporarily_reduced_motion(force: bool = True) -> Iterator[None]:
    """Temporarily force reduced motion on (default) or off; restores on exit."""
    prev = _reduced_motion_enabled
    try:
        set_reduced_motion(force)
        yield
    finally:
        set_reduced_motion(prev)
