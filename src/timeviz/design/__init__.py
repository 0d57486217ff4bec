"""Motion design helpers: easing curves, spring easing, reduced motion."""

from .motion import EASING_TOKENS, Easing, cubic_bezier, easing  # noqa: F401
from .reduced_motion import (  # noqa: F401
    adjust_duration,
    is_reduced_motion,
    set_reduced_motion,
    temporarily_reduced_motion,
)
from .spring import SpringParams, spring_easing, spring_samples  # noqa: F401
