"""Chart services: timers, playback, hover, resize coalescing and events."""

from .events import ChartEvent, EventBus  # noqa: F401
from .hover import HoverController, Tooltip, tooltip_content  # noqa: F401
from .playback import PlaybackController  # noqa: F401
from .resize import ResizeCoalescer  # noqa: F401
from .timers import ManualTimerBackend, QtTimerBackend, TimerBackend  # noqa: F401
