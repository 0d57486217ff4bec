from types import SimpleNamespace

import pytest

from timeviz.session import STATUS_ERROR
from timeviz.widgets.chart_view import TemporalChartView

RANKED = [
    {"year": 2000, "values": {"USA": 10.0, "CHN": 5.0}},
    {"year": 2001, "values": {"USA": 11.0, "CHN": 7.0}},
    {"year": 2002, "values": {"USA": 12.0, "CHN": 9.0}},
    {"year": 2003, "values": {"USA": 13.0, "CHN": 12.0}},
]


@pytest.fixture
def view(qtbot, timers):
    w = TemporalChartView("ranked-bars", timer_backend=timers)
    qtbot.addWidget(w)
    return w


def test_controls_disabled_until_data(view):
    assert not view.play_button.isEnabled()
    assert not view.slider.isEnabled()
    assert view.metric_button.isHidden()
    view.load_raw(RANKED)
    assert view.play_button.isEnabled()
    assert view.slider.maximum() == 3
    assert view.step_label.text() == "2000"
    assert view.scene_backend.artist("USA") is not None


def test_slider_scrubs_session(view):
    view.load_raw(RANKED)
    view.slider.setValue(2)
    assert view.session.playback_state.current_index == 2
    assert view.step_label.text() == "2002"


def test_play_button_toggles_and_ticks_update_slider(view, timers):
    view.load_raw(RANKED)
    view.play_button.click()
    assert view.play_button.text() == "Pause"
    timers.advance(view.session.playback.interval_ms)
    assert view.slider.value() == 1
    view.play_button.click()
    assert view.play_button.text() == "Play"
    assert timers.active_count() == 0


def test_step_buttons(view):
    view.load_raw(RANKED)
    view.next_button.click()
    view.next_button.click()
    view.prev_button.click()
    assert view.session.playback_state.current_index == 1
    view.reset_button.click()
    assert view.session.playback_state.current_index == 0


def test_transition_starts_frame_timer(view):
    view.load_raw(RANKED)
    assert view.session.in_flight
    assert view._frame_timer.isActive()
    view.session.advance(1000)
    view._on_frame_tick()
    assert not view._frame_timer.isActive()


def test_error_payload_disables_controls(view):
    view.load_raw(RANKED)
    view.load_raw("not a dataset")
    assert view.session.status == STATUS_ERROR
    assert view.step_label.text() == "Error"
    assert not view.play_button.isEnabled()


def test_pointer_motion_shows_tooltip(view):
    view.load_raw(RANKED)
    view.session.advance(1000)
    bar = view.session.scene.get("USA").current
    x, y = bar["x"] + bar["width"] / 2, bar["y"] + bar["height"] / 2
    ax = view.scene_backend.ax
    view._on_motion(SimpleNamespace(inaxes=ax, xdata=x, ydata=y))
    assert view.session.hover_state.entity_id == "USA"
    assert not view.tooltip_label.isHidden()
    assert "USA" in view.tooltip_label.text()
    view._on_motion(SimpleNamespace(inaxes=None, xdata=None, ydata=None))
    assert view.session.hover_state is None
    assert view.tooltip_label.isHidden()


def test_close_releases_session(view, timers):
    view.load_raw(RANKED)
    view.session.play()
    view.show()
    view.close()
    assert view.session.closed
    assert timers.active_count() == 0


def test_choropleth_metric_toggle(qtbot, timers):
    w = TemporalChartView({"kind": "choropleth", "labels": {"secondary": "Per capita"}}, timer_backend=timers)
    qtbot.addWidget(w)
    assert not w.metric_button.isHidden()
    assert w.metric_button.text() == "Per capita"
    w.load_raw([{"year": 2000, "values": {"FRA": {"primary": 1.0, "secondary": 2.0}}}])
    w.metric_button.setChecked(True)
    assert w.session.metric == "secondary"
    w.metric_button.setChecked(False)
    assert w.session.metric == "primary"
