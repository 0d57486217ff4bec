"""Chart session: one chart instance's engine.

``ChartSession`` wires normalizer, scale builder, scene graph, playback,
hover and resize coalescing together for a single chart. It owns every piece
of mutable state of that chart (playback timer, hover state, scene, scale
cache); nothing is shared between sessions.

Lifecycle
---------
* ``load_raw(payload)`` / ``load(provider)`` / ``set_dataset(ds)`` swap the
  dataset: the playback timer is cleared first, in-flight transitions are
  dropped, playback resets to ``{0, stopped}``, scales are rebuilt and the
  first step is rendered.
* A malformed payload (``ShapeMismatch``) or a failing provider
  (``ProviderError``) puts the session into the terminal ``"error"`` status:
  playback is emptied and the scene shows only the error element.
* ``resize(w, h)`` is debounced; the committed size rebuilds scales and
  re-renders the current step without a transition, leaving playback and
  hover alone.
* ``close()`` (or leaving a ``with`` block) clears the timer and drops every
  element. A closed session rejects new data.

Time only moves through ``advance(dt_ms)`` (transitions) and the timer
backend (playback ticks); the host widget drives both.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Mapping, Optional, Sequence

from timeviz.charting.projection import GeoFeature, join_report, load_features
from timeviz.charting.renderers import RenderContext, empty_primitives, error_primitives, render_frame
from timeviz.charting.scales import ScaleSet, build_scales
from timeviz.charting.scene import Frame, SceneGraph
from timeviz.config import settings
from timeviz.domain.errors import ProviderError, ShapeMismatch, TimeVizError
from timeviz.domain.models import (
    ChartKind,
    ChartSpec,
    EntityId,
    HoverState,
    PlaybackState,
    TimeSeriesDataset,
    TimeStep,
    Viewport,
)
from timeviz.domain.normalizer import FieldMap, normalize
from timeviz.services.events import ChartEvent, EventBus, EventHandler, Subscription
from timeviz.services.hover import HoverController, Tooltip, tooltip_content
from timeviz.services.playback import PlaybackController
from timeviz.services.resize import ResizeCoalescer
from timeviz.services.timers import QtTimerBackend, TimerBackend

__all__ = ["ChartSession", "STATUS_OK", "STATUS_EMPTY", "STATUS_ERROR"]

log = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_ERROR = "error"


def _as_spec(spec: ChartSpec | Mapping[str, Any] | str) -> ChartSpec:
    if isinstance(spec, ChartSpec):
        return spec
    if isinstance(spec, Mapping):
        return ChartSpec.from_mapping(spec)
    return ChartSpec(kind=spec)  # type: ignore[arg-type]


class ChartSession:
    def __init__(
        self,
        spec: ChartSpec | Mapping[str, Any] | str,
        *,
        viewport: Viewport | None = None,
        timer_backend: TimerBackend | None = None,
        geometry: Any = None,
        features: Sequence[GeoFeature] | None = None,
        id_property: str | None = None,
        fields: FieldMap | None = None,
    ) -> None:
        self.spec = _as_spec(spec)
        self.viewport = viewport or Viewport(*settings.DEFAULT_VIEWPORT)
        self._timers = timer_backend if timer_backend is not None else QtTimerBackend()
        self._fields = fields
        self.events = EventBus()
        self.scene = SceneGraph()
        self.playback = PlaybackController(self._timers, settings.tick_interval_ms(self.spec.kind.value))
        self.playback.add_listener(self._on_playback)
        self.hover = HoverController(self.scene.hit_test)
        self.hover.add_listener(self._on_hover)
        self.resizer = ResizeCoalescer(self._commit_resize, self._timers)

        self.dataset: Optional[TimeSeriesDataset] = None
        self.scales: Optional[ScaleSet] = None
        self.status = STATUS_EMPTY
        self.error: Optional[TimeVizError] = None
        self.frame: Optional[Frame] = None
        self._metric = "primary"
        self._entity_id: Optional[EntityId] = None
        self._highlight_group: Optional[str] = None
        self._features: List[GeoFeature] = list(features) if features is not None else []
        self._join_checked: set = set()
        self._rendered_index: Optional[int] = None
        self._loading = False
        self._closed = False
        if geometry is not None:
            self.set_geometry(geometry, id_property=id_property)
        self._render_placeholder()

    # --- context management -------------------------------------------------------

    def __enter__(self) -> "ChartSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self.playback.dispose()
        self.resizer.cancel()
        self.scene.clear()
        self.hover.clear()
        self.events.clear()
        self._closed = True
        log.debug("session for %s closed", self.spec.kind.value)

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("chart session is closed")

    # --- observation ----------------------------------------------------------------

    @property
    def playback_state(self) -> PlaybackState:
        return self.playback.state

    @property
    def hover_state(self) -> Optional[HoverState]:
        return self.hover.state

    @property
    def controls_enabled(self) -> bool:
        return self.status == STATUS_OK and self.playback.controls_enabled

    @property
    def current_step(self) -> Optional[TimeStep]:
        if self.dataset is None or self.dataset.is_empty:
            return None
        return self.dataset[self.playback.state.current_index]

    @property
    def tooltip(self) -> Optional[Tooltip]:
        entity = self.scales.entity_id if self.spec.kind is ChartKind.POPULATION_PYRAMID and self.scales else None
        return tooltip_content(self.hover.state, self.current_step, self.spec, entity_id=entity)

    @property
    def in_flight(self) -> bool:
        return self.scene.in_flight

    @property
    def metric(self) -> str:
        return self._metric

    @property
    def highlighted_group(self) -> Optional[str]:
        return self._highlight_group

    def subscribe(self, event: ChartEvent | str, handler: EventHandler) -> Subscription:
        return self.events.subscribe(event, handler)

    def on_frame(self, callback: Callable[[Frame], None]) -> Subscription:
        return self.events.subscribe(ChartEvent.FRAME_RENDERED, lambda evt: callback(evt.payload))

    # --- data -----------------------------------------------------------------------

    def _field_map(self) -> FieldMap:
        return self._fields or FieldMap.for_spec(self.spec)

    def load_raw(self, raw: Any, *, step_first: bool | None = None) -> None:
        """Normalize ``raw`` for the current spec and display it."""
        self._check_open()
        try:
            dataset = normalize(raw, self.spec.expected_shape, fields=self._field_map(), step_first=step_first)
        except ShapeMismatch as exc:
            self._fail(exc)
            return
        self.set_dataset(dataset)

    def load(self, provider: Callable[[], Any]) -> None:
        """Fetch a payload from an external provider and display it."""
        self._check_open()
        try:
            raw = provider()
        except ProviderError as exc:
            self._fail(exc)
            return
        except Exception as exc:
            err = ProviderError(f"data provider failed: {exc}")
            err.__cause__ = exc
            self._fail(err)
            return
        self.load_raw(raw)

    def set_dataset(self, dataset: TimeSeriesDataset, *, index: int = 0) -> None:
        self._check_open()
        if dataset.shape is not self.spec.expected_shape:
            self._fail(
                ShapeMismatch(f"{self.spec.kind.value} needs {self.spec.expected_shape.value}, got {dataset.shape.value}")
            )
            return
        self._loading = True
        try:
            self.playback.load(0)
            self.scene.clear()
            self.hover.clear()
            self.dataset = dataset
            self.error = None
            self.status = STATUS_EMPTY if dataset.is_empty else STATUS_OK
            self._rebuild_scales()
            self.playback.load(len(dataset), index)
        finally:
            self._loading = False
        log.info("loaded %d step(s) for %s", len(dataset), self.spec.kind.value)
        self._publish_status()
        self._render(clear_hover=False)

    def set_geometry(self, geometry: Any, *, id_property: str | None = None) -> None:
        """Replace the boundary features used by the choropleth."""
        self._check_open()
        try:
            self._features = load_features(geometry, id_property)
        except ShapeMismatch as exc:
            self._fail(exc)
            return
        self._join_checked.clear()
        if self.dataset is not None and self.status != STATUS_ERROR:
            self._rebuild_scales()
            self._render(duration_ms=0, clear_hover=True)

    def set_spec(self, spec: ChartSpec | Mapping[str, Any] | str, raw: Any = None) -> None:
        """Switch to a new chart spec, optionally with a new payload.

        Playback stops. The current step is kept when its key exists in the
        resulting dataset, otherwise playback returns to the first step.
        """
        self._check_open()
        new_spec = _as_spec(spec)
        current = self.current_step
        key = current.key if current is not None else None
        kind_changed = new_spec.kind is not self.spec.kind
        self.spec = new_spec
        self.playback.pause()
        self.playback.set_interval(settings.tick_interval_ms(new_spec.kind.value))
        if raw is not None:
            try:
                dataset = normalize(raw, new_spec.expected_shape, fields=self._field_map())
            except ShapeMismatch as exc:
                self._fail(exc)
                return
        elif self.dataset is not None:
            dataset = self.dataset
        else:
            if kind_changed:
                self.scene.clear()
            self._render_placeholder()
            return
        index = dataset.index_of(key) if key is not None else None
        if dataset is self.dataset and dataset.shape is new_spec.expected_shape:
            if kind_changed:
                self.scene.clear()
            self._rebuild_scales()
            self._loading = True
            try:
                self.playback.scrub(index or 0)
            finally:
                self._loading = False
            self._render(duration_ms=0 if kind_changed else None, clear_hover=True)
            return
        self.set_dataset(dataset, index=index or 0)

    def set_metric(self, metric: str) -> None:
        """Select the ``"primary"`` or ``"secondary"`` value of dual-axis data."""
        self._check_open()
        if metric not in ("primary", "secondary"):
            raise ValueError(f"metric must be 'primary' or 'secondary', got {metric!r}")
        if metric == self._metric:
            return
        self._metric = metric
        if self.status == STATUS_OK:
            self._rebuild_scales()
            self._render(clear_hover=False)

    def select_entity(self, entity_id: EntityId | None) -> None:
        """Choose which entity the population pyramid shows."""
        self._check_open()
        if entity_id == self._entity_id:
            return
        self._entity_id = entity_id
        if self.status == STATUS_OK:
            self._rebuild_scales()
            self._render(clear_hover=True)

    def highlight_group(self, group: str | None) -> None:
        self._check_open()
        if group == self._highlight_group:
            return
        self._highlight_group = group
        if self.status == STATUS_OK:
            self._render(clear_hover=False)

    # --- transport --------------------------------------------------------------------

    def play(self) -> None:
        self.playback.play()

    def pause(self) -> None:
        self.playback.pause()

    def toggle(self) -> None:
        self.playback.toggle()

    def scrub(self, index: int) -> None:
        self.playback.scrub(index)

    def step(self, delta: int) -> None:
        self.playback.step(delta)

    def reset(self) -> None:
        self.playback.reset()

    # --- time & pointer -----------------------------------------------------------------

    def advance(self, dt_ms: float) -> bool:
        """Advance transitions by ``dt_ms``; True while any are still running."""
        return self.scene.advance(dt_ms)

    def pointer(self, x: float, y: float) -> None:
        self.hover.pointer(x, y)

    def pointer_leave(self) -> None:
        self.hover.leave()

    # --- resize -------------------------------------------------------------------------

    def resize(self, width: int, height: int) -> None:
        """Queue a viewport change; committed after the debounce period."""
        if self._closed:
            return
        self.resizer.notify(width, height)

    def _commit_resize(self, width: int, height: int) -> None:
        viewport = Viewport(width, height)
        if viewport == self.viewport:
            return
        self.viewport = viewport
        if self.status == STATUS_OK:
            self._rebuild_scales()
            self._render(duration_ms=0, clear_hover=False)
        else:
            self._render_placeholder()

    # --- internals ----------------------------------------------------------------------

    def _rebuild_scales(self) -> None:
        if self.dataset is None:
            self.scales = None
            return
        self.scales = build_scales(
            self.dataset,
            self.spec,
            self.viewport,
            features=self._features,
            metric=self._metric,
            entity_id=self._entity_id,
        )
        self._check_join()

    def _check_join(self) -> None:
        if self.spec.kind is not ChartKind.CHOROPLETH or self.dataset is None or self.dataset.is_empty:
            return
        if self.dataset.identity in self._join_checked:
            return
        self._join_checked.add(self.dataset.identity)
        report = join_report(self._features, self.dataset.entity_ids())
        if not report.clean:
            log.warning(
                "map join: %d feature(s) without data, %d entit(ies) without a feature (e.g. %s)",
                len(report.unmatched_features),
                len(report.unmatched_entities),
                ", ".join((report.unmatched_entities or report.unmatched_features)[:5]),
            )

    def _fail(self, exc: TimeVizError) -> None:
        log.warning("chart %s cannot render: %s", self.spec.kind.value, exc)
        self._loading = True
        try:
            self.playback.load(0)
        finally:
            self._loading = False
        self.dataset = None
        self.scales = None
        self.status = STATUS_ERROR
        self.error = exc
        self.hover.clear()
        self.scene.clear()
        self._rendered_index = None
        self.frame = self.scene.reconcile(error_primitives(self.viewport, str(exc)), 0)
        self._publish_status()
        self.events.publish(ChartEvent.FRAME_RENDERED, self.frame)

    def _render_placeholder(self) -> None:
        if self.status == STATUS_ERROR and self.error is not None:
            primitives = error_primitives(self.viewport, str(self.error))
        else:
            primitives = empty_primitives(self.viewport)
        self._rendered_index = None
        self.frame = self.scene.reconcile(primitives, 0)
        self.events.publish(ChartEvent.FRAME_RENDERED, self.frame)

    def _render(self, duration_ms: float | None = None, *, clear_hover: bool) -> None:
        if self.status != STATUS_OK or self.dataset is None or self.scales is None:
            self._render_placeholder()
            return
        if clear_hover:
            self.hover.clear()
        index = self.playback.state.current_index
        context = RenderContext(self.spec, self.dataset, index, self._highlight_group)
        self.frame = render_frame(self.dataset[index], self.scales, self.scene, context=context, duration_ms=duration_ms)
        self._rendered_index = index
        self.events.publish(ChartEvent.FRAME_RENDERED, self.frame)

    def _publish_status(self) -> None:
        self.events.publish(ChartEvent.STATUS_CHANGED, self.status)

    def _on_playback(self, state: PlaybackState) -> None:
        self.events.publish(ChartEvent.PLAYBACK_CHANGED, state)
        if self._loading or self.status != STATUS_OK:
            return
        if state.current_index != self._rendered_index:
            self._render(clear_hover=True)

    def _on_hover(self, state: Optional[HoverState]) -> None:
        self.events.publish(ChartEvent.HOVER_CHANGED, state)
