"""Charting layer: scales, projection, retained scene graph and renderers.

Everything here is Qt-free. ``renderers`` registers one renderer per
``ChartKind`` on import; ``backends`` mirrors a scene onto matplotlib.
"""

from .backends import MatplotlibSceneBackend  # noqa: F401
from .renderers import RenderContext, render_frame, renderer_registry  # noqa: F401
from .scales import ScaleSet, build_scales  # noqa: F401
from .scene import Frame, Primitive, SceneGraph  # noqa: F401
