"""Spring easing for ranked bar reordering.

Rows in the ranked-bars chart slide to their new rank with a slightly
springy settle. The curve is produced by integrating a damped spring

    m * x'' + c * x' + k * x = 0,   x(0) = 1, v(0) = 0

at a fixed frame rate and reporting progress ``p(t) = 1 - x(t)``. The
sampled curve is then stretched over the transition duration by
``spring_easing`` so it can be used like any other easing callable.

Under reduced motion the samples collapse to ``[0.0, 1.0]`` (a linear ramp),
although transitions are normally snapped before easing is consulted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence

from .motion import Easing
from .reduced_motion import is_reduced_motion

__all__ = [
    "SpringParams",
    "spring_samples",
    "spring_easing",
    "critical_damping",
    "is_overshooting",
]


@dataclass(frozen=True)
class SpringParams:
    stiffness: float = 170.0  # k
    damping: float = 22.0  # c, a touch under critical for mass 1
    mass: float = 1.0  # m

    def validate(self) -> None:
        if self.stiffness <= 0:
            raise ValueError("stiffness must be > 0")
        if self.damping < 0:
            raise ValueError("damping must be >= 0")
        if self.mass <= 0:
            raise ValueError("mass must be > 0")


def critical_damping(stiffness: float, mass: float) -> float:
    """Damping coefficient for critical damping (c = 2 * sqrt(k*m))."""
    if stiffness <= 0 or mass <= 0:
        raise ValueError("stiffness and mass must be > 0")
    return 2.0 * math.sqrt(stiffness * mass)


def spring_samples(
    params: SpringParams,
    fps: int = 60,
    max_ms: int = 1000,
    settle_epsilon: float = 0.001,
) -> List[float]:
    """Normalized progress samples, starting at 0.0 and ending exactly at 1.0."""
    params.validate()
    if fps <= 0:
        raise ValueError("fps must be > 0")
    if max_ms <= 0:
        raise ValueError("max_ms must be > 0")
    if is_reduced_motion():
        return [0.0, 1.0]

    k, c, m = params.stiffness, params.damping, params.mass
    x, v = 1.0, 0.0
    dt = 1.0 / fps
    max_s = max_ms / 1000.0
    t = 0.0
    samples: List[float] = [0.0]
    while t < max_s:
        # semi-implicit Euler
        a = -(c / m) * v - (k / m) * x
        v += a * dt
        x += v * dt
        t += dt
        samples.append(1.0 - x)
        if abs(x) < settle_epsilon and abs(v) < settle_epsilon:
            break
    samples[-1] = 1.0
    return samples


def is_overshooting(samples: Sequence[float]) -> bool:
    return any(s > 1.0 for s in samples)


def spring_easing(params: SpringParams | None = None, fps: int = 60, max_ms: int = 1000) -> Easing:
    """Easing callable that replays the spring curve over normalized time."""
    samples = spring_samples(params or SpringParams(), fps=fps, max_ms=max_ms)
    last = len(samples) - 1

    def _ease(t: float) -> float:
        if t <= 0.0:
            return 0.0
        if t >= 1.0:
            return 1.0
        pos = t * last
        i = int(pos)
        frac = pos - i
        return samples[i] + (samples[i + 1] - samples[i]) * frac

    return _ease
