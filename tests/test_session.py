import logging

import pytest

from timeviz.charting.renderers import EMPTY_KEY, ERROR_KEY, STEP_LABEL_KEY
from timeviz.domain import ChartSpec, PlaybackState, ProviderError, ShapeMismatch, Viewport
from timeviz.services.events import ChartEvent
from timeviz.session import STATUS_EMPTY, STATUS_ERROR, STATUS_OK, ChartSession

RANKED = [
    {"year": 2000, "values": {"USA": 10.0, "CHN": 5.0, "DEU": 3.0}},
    {"year": 2001, "values": {"USA": 11.0, "CHN": 7.0}},
    {"year": 2002, "values": {"USA": 12.0, "CHN": 9.0, "DEU": 4.0}},
    {"year": 2003, "values": {"USA": 13.0, "CHN": 12.0, "DEU": 4.5}},
    {"year": 2004, "values": {"USA": 14.0, "CHN": 15.0, "DEU": 5.0}},
]


@pytest.fixture
def session(timers):
    s = ChartSession("ranked-bars", viewport=Viewport(900, 550), timer_backend=timers)
    yield s
    s.close()


def _square(lon0, lat0, size=10):
    return [[lon0, lat0], [lon0 + size, lat0], [lon0 + size, lat0 + size], [lon0, lat0 + size], [lon0, lat0]]


GEOMETRY = {
    "type": "FeatureCollection",
    "features": [
        {"type": "Feature", "properties": {"iso_a3": "FRA"}, "geometry": {"type": "Polygon", "coordinates": [_square(0, 40)]}},
        {"type": "Feature", "properties": {"iso_a3": "ESP"}, "geometry": {"type": "Polygon", "coordinates": [_square(-10, 30)]}},
    ],
}


def test_new_session_shows_empty_placeholder(session):
    assert session.status == STATUS_EMPTY
    assert session.scene.keys() == [EMPTY_KEY]
    assert not session.controls_enabled


def test_load_renders_first_step(session):
    statuses = []
    session.subscribe(ChartEvent.STATUS_CHANGED, lambda e: statuses.append(e.payload))
    session.load_raw(RANKED)
    assert session.status == STATUS_OK
    assert statuses == [STATUS_OK]
    assert session.playback_state == PlaybackState(0, False)
    assert session.controls_enabled
    assert {"USA", "CHN", "DEU", STEP_LABEL_KEY} <= set(session.scene.visible_keys())
    assert EMPTY_KEY not in session.scene.visible_keys()


def test_ticks_render_new_frames_and_clear_hover(session, timers):
    session.load_raw(RANKED)
    frames = []
    session.on_frame(frames.append)
    session.advance(1000)
    session.pointer(*_center_of(session, "USA"))
    assert session.hover_state.entity_id == "USA"
    session.play()
    timers.advance(session.playback.interval_ms)
    assert session.playback_state == PlaybackState(1, True)
    assert len(frames) == 1
    assert "DEU" in frames[0].exited
    assert session.hover_state is None
    assert session.in_flight


def _center_of(session, key):
    a = session.scene.get(key).current
    return a["x"] + a["width"] / 2, a["y"] + a["height"] / 2


def test_playback_runs_to_end_and_stops(session, timers):
    session.load_raw(RANKED)
    session.play()
    timers.advance(session.playback.interval_ms * 10)
    assert session.playback_state == PlaybackState(4, False)
    assert timers.active_count() == 0
    assert session.current_step.key == 2004


def test_play_at_end_wraps_to_start(session, timers):
    session.load_raw(RANKED)
    session.scrub(4)
    session.play()
    assert session.playback_state == PlaybackState(0, True)
    timers.advance(session.playback.interval_ms)
    assert session.playback_state.current_index == 1


def test_resize_during_transition_snaps_to_new_layout(session, timers):
    session.load_raw(RANKED)
    session.scrub(1)
    session.advance(50)
    assert session.in_flight
    before = session.scales
    session.resize(600, 400)
    session.resize(500, 300)
    timers.advance(89)
    assert session.scales is before
    timers.advance(1)
    assert session.viewport == Viewport(500, 300)
    assert session.scales != before
    assert session.playback_state == PlaybackState(1, False)
    assert not session.in_flight
    usa = session.scene.get("USA").current
    assert usa["x"] + usa["width"] <= 500


def test_resize_keeps_hover(session, timers):
    session.load_raw(RANKED)
    session.advance(1000)
    session.pointer(*_center_of(session, "USA"))
    session.resize(700, 500)
    timers.advance(200)
    assert session.hover_state is not None
    assert session.tooltip.title == "USA"


def test_malformed_payload_enters_error_state(session):
    session.load_raw(RANKED)
    session.load_raw({"no": "steps", "here": 1})
    assert session.status == STATUS_ERROR
    assert isinstance(session.error, ShapeMismatch)
    assert session.scene.keys() == [ERROR_KEY]
    assert session.playback.length == 0
    assert not session.controls_enabled
    session.play()
    assert not session.playback_state.is_playing


def test_payload_without_the_metric_enters_error_state(timers):
    session = ChartSession(ChartSpec(kind="ranked-bars", metric_key="gdp"), timer_backend=timers)
    session.load_raw([{"year": 2000, "values": [{"code": "USA", "population": 1.0}]}, {"year": 2001, "values": [{"code": "USA", "population": 2.0}]}])
    assert session.status == STATUS_ERROR
    assert isinstance(session.error, ShapeMismatch)
    assert not session.controls_enabled
    session.close()


def test_loading_new_data_during_playback_drops_pending_ticks(session, timers):
    session.load_raw(RANKED)
    session.play()
    timers.advance(session.playback.interval_ms)
    assert session.playback_state == PlaybackState(1, True)
    session.load_raw([{"year": 1990, "values": {"A": 1.0}}, {"year": 1991, "values": {"A": 2.0}}])
    assert timers.active_count() == 0
    assert session.playback_state == PlaybackState(0, False)
    frames = []
    session.on_frame(frames.append)
    timers.advance(session.playback.interval_ms * 5)
    assert session.playback_state == PlaybackState(0, False)
    assert session.current_step.key == 1990
    assert frames == []


def test_provider_failure_is_wrapped(session):
    def provider():
        raise ConnectionError("offline")

    session.load(provider)
    assert session.status == STATUS_ERROR
    assert isinstance(session.error, ProviderError)
    assert isinstance(session.error.__cause__, ConnectionError)
    assert session.scene.keys() == [ERROR_KEY]


def test_error_recovers_on_next_load(session):
    session.load_raw(42)
    assert session.status == STATUS_ERROR
    session.load(lambda: RANKED)
    assert session.status == STATUS_OK
    assert ERROR_KEY not in session.scene


def test_empty_payload_shows_placeholder(session):
    session.load_raw([])
    assert session.status == STATUS_EMPTY
    assert session.scene.keys() == [EMPTY_KEY]
    assert session.current_step is None


def test_spec_change_keeps_step_key(session):
    session.load_raw(RANKED)
    session.scrub(2)
    session.play()
    session.set_spec("line")
    assert session.playback_state == PlaybackState(2, False)
    assert "USA:head" in session.scene
    assert "USA" not in session.scene


def test_spec_change_with_new_data_falls_back_to_first_step(session):
    session.load_raw(RANKED)
    session.scrub(4)
    session.set_spec("category-bars", [{"year": 1990, "values": {"A": 1.0}}, {"year": 1991, "values": {"A": 2.0}}])
    assert session.playback_state == PlaybackState(0, False)
    assert session.current_step.key == 1990


def test_close_releases_everything(timers):
    session = ChartSession("ranked-bars", timer_backend=timers)
    session.load_raw(RANKED)
    session.play()
    session.resize(400, 300)
    assert timers.active_count() == 2
    session.close()
    assert timers.active_count() == 0
    assert len(session.scene) == 0
    assert session.closed
    with pytest.raises(RuntimeError):
        session.load_raw(RANKED)
    session.close()


def test_context_manager_closes(timers):
    with ChartSession("bubble", timer_backend=timers) as session:
        session.load_raw([{"id": "A", "year": 2000, "x": 1, "y": 2}, {"id": "A", "year": 2001, "x": 2, "y": 3}])
        session.play()
    assert session.closed
    assert timers.active_count() == 0


def test_listener_exception_does_not_break_session(session, timers):
    def boom(_event):
        raise RuntimeError("host bug")

    session.subscribe(ChartEvent.PLAYBACK_CHANGED, boom)
    session.load_raw(RANKED)
    session.play()
    timers.advance(session.playback.interval_ms)
    assert session.playback_state.current_index == 1
    assert session.events.errors


def test_choropleth_join_warning_logged_once(timers, caplog):
    session = ChartSession("choropleth", timer_backend=timers, geometry=GEOMETRY)
    payload = [
        {"year": 2000, "values": {"FRA": {"primary": 1.0, "secondary": 2.0}, "XKX": {"primary": 3.0}}},
        {"year": 2001, "values": {"FRA": {"primary": 2.0, "secondary": 1.0}}},
    ]
    with caplog.at_level(logging.WARNING, logger="timeviz.session"):
        session.load_raw(payload)
        session.set_metric("secondary")
        session.scrub(1)
    warnings = [r for r in caplog.records if "map join" in r.getMessage()]
    assert len(warnings) == 1
    assert "XKX" in warnings[0].getMessage()
    assert session.metric == "secondary"
    session.close()


def test_set_metric_validates(session):
    with pytest.raises(ValueError):
        session.set_metric("tertiary")


def test_highlight_group_dims_bubbles(timers):
    session = ChartSession("bubble", timer_backend=timers)
    session.load_raw(
        [
            {"id": "IND", "year": 2000, "x": 1, "y": 2, "size": 10, "group": "Asia"},
            {"id": "FRA", "year": 2000, "x": 3, "y": 4, "size": 5, "group": "Europe"},
        ]
    )
    session.highlight_group("Asia")
    session.advance(1000)
    assert session.highlighted_group == "Asia"
    assert session.scene.get("FRA").current["alpha"] == pytest.approx(0.15)
    assert session.scene.get("IND").current["alpha"] == pytest.approx(0.75)
    session.close()
