"""Matplotlib backend mirroring a ``SceneGraph`` onto an Axes.

The axes is set up as a pixel canvas (x right, y down, origin top-left,
no axis decorations) so scene coordinates are used as-is. One artist is kept
per scene element key and mutated in place on every ``sync``; artists whose
element left the scene are removed.

No Qt imports here: the widget owns the canvas and calls ``draw_idle`` after
syncing, and tests can drive the backend with a plain ``Figure``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import numpy as np
from matplotlib.lines import Line2D
from matplotlib.patches import Circle, PathPatch, Rectangle
from matplotlib.path import Path

from timeviz.domain.models import Viewport

from .scene import ElementHandle, SceneGraph

__all__ = ["MatplotlibSceneBackend"]

log = logging.getLogger(__name__)

_BACKGROUND = "#0d1117"


def _compound_path(rings) -> Path:
    paths = []
    for ring in rings:
        ring = np.asarray(ring, dtype=float)
        if len(ring) < 3:
            continue
        paths.append(Path(np.vstack([ring, ring[:1]]), closed=True))
    if not paths:
        return Path(np.zeros((1, 2)))
    return Path.make_compound_path(*paths)


class MatplotlibSceneBackend:
    def __init__(self, ax: Any, viewport: Viewport | None = None) -> None:
        self.ax = ax
        self._artists: Dict[str, Any] = {}
        self._kinds: Dict[str, str] = {}
        self.ax.set_facecolor(_BACKGROUND)
        self.ax.figure.set_facecolor(_BACKGROUND)
        self.ax.set_position([0.0, 0.0, 1.0, 1.0])
        self.ax.set_axis_off()
        if viewport is not None:
            self.set_viewport(viewport)

    def set_viewport(self, viewport: Viewport) -> None:
        self.ax.set_xlim(0, viewport.width)
        self.ax.set_ylim(viewport.height, 0)

    def __len__(self) -> int:
        return len(self._artists)

    def artist(self, key: str) -> Any:
        return self._artists.get(key)

    # --- artist factories -------------------------------------------------

    def _create(self, handle: ElementHandle) -> Any:
        kind = handle.kind
        if kind == "rect":
            artist = Rectangle((0.0, 0.0), 0.0, 0.0, linewidth=0)
            self.ax.add_patch(artist)
        elif kind == "circle":
            artist = Circle((0.0, 0.0), 0.0, linewidth=0.5)
            self.ax.add_patch(artist)
        elif kind == "polygon":
            artist = PathPatch(_compound_path(handle.current.get("rings", ())), linewidth=0.4)
            self.ax.add_patch(artist)
        elif kind == "polyline":
            artist = Line2D([], [], solid_capstyle="round")
            self.ax.add_line(artist)
        else:
            artist = self.ax.text(0.0, 0.0, "", clip_on=False)
        return artist

    def _update(self, artist: Any, handle: ElementHandle) -> None:
        a = handle.current
        alpha = max(0.0, min(1.0, float(a.get("alpha", 1.0))))
        kind = handle.kind
        if kind == "rect":
            artist.set_xy((a.get("x", 0.0), a.get("y", 0.0)))
            artist.set_width(max(0.0, a.get("width", 0.0)))
            artist.set_height(max(0.0, a.get("height", 0.0)))
            artist.set_facecolor(a.get("fill", "none"))
            artist.set_edgecolor(a.get("edge", "none"))
        elif kind == "circle":
            artist.set_center((a.get("cx", 0.0), a.get("cy", 0.0)))
            artist.set_radius(max(0.0, a.get("r", 0.0)))
            artist.set_facecolor(a.get("fill", "none"))
            artist.set_edgecolor(a.get("edge", "none"))
        elif kind == "polygon":
            artist.set_path(_compound_path(a.get("rings", ())))
            artist.set_facecolor(a.get("fill", "none"))
            artist.set_edgecolor(a.get("edge", "none"))
        elif kind == "polyline":
            points = np.asarray(a.get("points", np.zeros((0, 2))), dtype=float)
            if points.size:
                artist.set_data(points[:, 0], points[:, 1])
            else:
                artist.set_data([], [])
            artist.set_color(a.get("color", "white"))
            artist.set_linewidth(a.get("width", 1.5))
        else:
            artist.set_position((a.get("x", 0.0), a.get("y", 0.0)))
            artist.set_text(a.get("text", ""))
            artist.set_color(a.get("color", "white"))
            artist.set_fontsize(a.get("size", 10.0))
            artist.set_horizontalalignment(a.get("ha", "left"))
            artist.set_verticalalignment(a.get("va", "center"))
            artist.set_fontweight(a.get("weight", "normal"))
        artist.set_alpha(alpha)
        artist.set_zorder(2.0 + handle.z / 1000.0 if kind != "text" else 10.0)

    # --- sync -------------------------------------------------------------

    def sync(self, scene: SceneGraph) -> None:
        """Create, update and remove artists so they match ``scene``."""
        live = set()
        for handle in scene.ordered():
            live.add(handle.key)
            artist = self._artists.get(handle.key)
            if artist is not None and self._kinds.get(handle.key) != handle.kind:
                artist.remove()
                artist = None
            if artist is None:
                artist = self._create(handle)
                self._artists[handle.key] = artist
                self._kinds[handle.key] = handle.kind
            self._update(artist, handle)
        for key in [k for k in self._artists if k not in live]:
            self._artists.pop(key).remove()
            self._kinds.pop(key, None)

    def clear(self) -> None:
        for artist in self._artists.values():
            artist.remove()
        self._artists.clear()
        self._kinds.clear()
