"""Temporal chart host widget.

Embeds a matplotlib ``FigureCanvasQTAgg`` plus transport controls around a
``ChartSession``. The widget owns no chart state of its own: it forwards
button/slider/pointer input to the session and redraws from session events.

* Playback ticks come from the session's ``QtTimerBackend`` (parented to
  this widget).
* A frame timer (``FRAME_INTERVAL_MS``) advances scene transitions and runs
  only while any transition is in flight.
* Canvas resize events go through the session's debounced coalescer.
* Closing the widget closes the session, which clears the playback timer.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Optional

from matplotlib.backends.backend_qtagg import FigureCanvasQTAgg
from matplotlib.figure import Figure
from PyQt6.QtCore import Qt, QTimer
from PyQt6.QtWidgets import QHBoxLayout, QLabel, QPushButton, QSlider, QVBoxLayout, QWidget

from timeviz.charting.backends import MatplotlibSceneBackend
from timeviz.charting.formatting import format_step_key
from timeviz.config import settings
from timeviz.domain.models import ChartKind, ChartSpec, HoverState, PlaybackState, Viewport
from timeviz.services.events import ChartEvent, Event
from timeviz.services.timers import QtTimerBackend, TimerBackend
from timeviz.session import STATUS_ERROR, ChartSession

__all__ = ["TemporalChartView"]

log = logging.getLogger(__name__)


class TemporalChartView(QWidget):
    def __init__(
        self,
        spec: ChartSpec | Mapping[str, Any] | str,
        parent: Optional[QWidget] = None,
        *,
        geometry: Any = None,
        id_property: str | None = None,
        timer_backend: TimerBackend | None = None,
    ) -> None:
        super().__init__(parent)
        self.setObjectName("TemporalChartView")
        width, height = settings.DEFAULT_VIEWPORT
        self.session = ChartSession(
            spec,
            viewport=Viewport(width, height),
            timer_backend=timer_backend if timer_backend is not None else QtTimerBackend(self),
            geometry=geometry,
            id_property=id_property,
        )
        self.figure = Figure(figsize=(width / 100.0, height / 100.0), dpi=100)
        self.canvas = FigureCanvasQTAgg(self.figure)
        self.canvas.setMinimumSize(320, 240)
        self.scene_backend = MatplotlibSceneBackend(self.figure.add_axes([0.0, 0.0, 1.0, 1.0]), self.session.viewport)

        self.play_button = QPushButton("Play")
        self.reset_button = QPushButton("Reset")
        self.prev_button = QPushButton("◀")
        self.next_button = QPushButton("▶")
        self.metric_button = QPushButton(self._metric_text("secondary"))
        self.metric_button.setCheckable(True)
        self.metric_button.setVisible(self.session.spec.kind is ChartKind.CHOROPLETH)
        self.slider = QSlider(Qt.Orientation.Horizontal)
        self.slider.setMinimum(0)
        self.step_label = QLabel("")
        self.step_label.setMinimumWidth(60)
        self.tooltip_label = QLabel(self.canvas)
        self.tooltip_label.setObjectName("chartTooltip")
        self.tooltip_label.setStyleSheet(
            "QLabel#chartTooltip { background: #161b22; color: #e6edf3; border: 1px solid #30363d; padding: 4px; }"
        )
        self.tooltip_label.hide()

        controls = QHBoxLayout()
        for w in (self.play_button, self.reset_button, self.prev_button, self.next_button):
            controls.addWidget(w)
        controls.addWidget(self.slider, 1)
        controls.addWidget(self.step_label)
        controls.addWidget(self.metric_button)
        lay = QVBoxLayout(self)
        lay.setContentsMargins(0, 0, 0, 0)
        lay.addWidget(self.canvas, 1)
        lay.addLayout(controls)

        self._syncing_slider = False
        self._frame_timer = QTimer(self)
        self._frame_timer.setInterval(settings.FRAME_INTERVAL_MS)
        self._frame_timer.timeout.connect(self._on_frame_tick)  # type: ignore[attr-defined]
        self._last_tick: Optional[float] = None

        self.play_button.clicked.connect(self.session.toggle)  # type: ignore[attr-defined]
        self.reset_button.clicked.connect(self.session.reset)  # type: ignore[attr-defined]
        self.prev_button.clicked.connect(lambda: self.session.step(-1))  # type: ignore[attr-defined]
        self.next_button.clicked.connect(lambda: self.session.step(1))  # type: ignore[attr-defined]
        self.metric_button.toggled.connect(self._on_metric_toggled)  # type: ignore[attr-defined]
        self.slider.valueChanged.connect(self._on_slider)  # type: ignore[attr-defined]

        self.session.subscribe(ChartEvent.FRAME_RENDERED, self._on_frame_rendered)
        self.session.subscribe(ChartEvent.PLAYBACK_CHANGED, self._on_playback)
        self.session.subscribe(ChartEvent.STATUS_CHANGED, lambda _evt: self._sync_controls())
        self.session.subscribe(ChartEvent.HOVER_CHANGED, self._on_hover)
        self.canvas.mpl_connect("motion_notify_event", self._on_motion)
        self.canvas.mpl_connect("figure_leave_event", lambda _evt: self.session.pointer_leave())
        self.session.resizer.watch(self.canvas)
        self._sync_scene()
        self._sync_controls()

    # --- data passthrough ---------------------------------------------------------

    def load_raw(self, raw: Any, **kwargs: Any) -> None:
        self.session.load_raw(raw, **kwargs)

    def _metric_text(self, metric: str) -> str:
        labels = self.session.spec.labels
        if metric == "secondary":
            return str(labels.get("secondary") or self.session.spec.secondary_metric_key or "Secondary")
        return str(labels.get("primary") or self.session.spec.metric_key)

    # --- session events ---------------------------------------------------------------

    def _on_frame_rendered(self, _evt: Event) -> None:
        self._sync_scene()
        if self.session.in_flight and not self._frame_timer.isActive():
            self._last_tick = time.perf_counter()
            self._frame_timer.start()

    def _on_playback(self, evt: Event) -> None:
        self._sync_controls(evt.payload)

    def _on_hover(self, evt: Event) -> None:
        state: Optional[HoverState] = evt.payload
        tip = self.session.tooltip
        if state is None or tip is None:
            self.tooltip_label.hide()
            return
        lines = [f"<b>{tip.title}</b> ({tip.step})", *tip.lines]
        self.tooltip_label.setText("<br>".join(lines))
        self.tooltip_label.adjustSize()
        x = int(state.pointer_x * self.canvas.width() / max(1, self.session.viewport.width)) + 12
        y = int(state.pointer_y * self.canvas.height() / max(1, self.session.viewport.height)) + 12
        x = min(x, max(0, self.canvas.width() - self.tooltip_label.width()))
        y = min(y, max(0, self.canvas.height() - self.tooltip_label.height()))
        self.tooltip_label.move(x, y)
        self.tooltip_label.show()
        self.tooltip_label.raise_()

    # --- drawing ----------------------------------------------------------------------

    def _sync_scene(self) -> None:
        self.scene_backend.set_viewport(self.session.viewport)
        self.scene_backend.sync(self.session.scene)
        self.canvas.draw_idle()

    def _on_frame_tick(self) -> None:
        now = time.perf_counter()
        last = self._last_tick if self._last_tick is not None else now
        self._last_tick = now
        running = self.session.advance((now - last) * 1000.0)
        self._sync_scene()
        if not running:
            self._frame_timer.stop()
            self._last_tick = None

    # --- controls ---------------------------------------------------------------------

    def _sync_controls(self, state: Optional[PlaybackState] = None) -> None:
        if self.session.closed:
            return
        state = state or self.session.playback_state
        enabled = self.session.controls_enabled
        for w in (self.play_button, self.reset_button, self.prev_button, self.next_button, self.slider):
            w.setEnabled(enabled)
        self.play_button.setText("Pause" if state.is_playing else "Play")
        self._syncing_slider = True
        try:
            self.slider.setMaximum(self.session.playback.last_index)
            self.slider.setValue(state.current_index)
        finally:
            self._syncing_slider = False
        step = self.session.current_step
        if self.session.status == STATUS_ERROR:
            self.step_label.setText("Error")
        else:
            self.step_label.setText(format_step_key(step.key) if step is not None else "")

    def _on_slider(self, value: int) -> None:
        if self._syncing_slider:
            return
        self.session.scrub(value)

    def _on_metric_toggled(self, checked: bool) -> None:
        self.session.set_metric("secondary" if checked else "primary")
        self.metric_button.setText(self._metric_text("primary" if checked else "secondary"))

    # --- pointer ----------------------------------------------------------------------

    def _on_motion(self, event: Any) -> None:
        if event.inaxes is None or event.xdata is None or event.ydata is None:
            self.session.pointer_leave()
            return
        self.session.pointer(float(event.xdata), float(event.ydata))

    # --- lifecycle --------------------------------------------------------------------

    def closeEvent(self, event: Any) -> None:  # noqa: N802 - Qt override
        self._frame_timer.stop()
        self.session.close()
        super().closeEvent(event)
