import pytest

from timeviz.__main__ import build_parser
from timeviz.config import settings


def test_transition_ms_is_clamped(monkeypatch):
    monkeypatch.setitem(settings.TRANSITION_MS, "bubble", 5000)
    assert settings.transition_ms("bubble") == settings.MAX_TRANSITION_MS
    monkeypatch.setitem(settings.TRANSITION_MS, "bubble", -10)
    assert settings.transition_ms("bubble") == 0
    assert settings.transition_ms("unknown-kind") == 400


def test_tick_interval_never_zero(monkeypatch):
    monkeypatch.setitem(settings.TICK_INTERVAL_MS, "line", 0)
    assert settings.tick_interval_ms("line") == 1
    assert settings.tick_interval_ms("ranked-bars") == settings.TICK_INTERVAL_MS["ranked-bars"]


def test_env_helpers_fall_back_on_bad_values(monkeypatch):
    monkeypatch.setenv("TIMEVIZ_SOMETHING", "not-a-number")
    assert settings._env_int("SOMETHING", 7) == 7
    assert settings._env_float("SOMETHING", 1.5) == 1.5
    monkeypatch.setenv("TIMEVIZ_SOMETHING", "12")
    assert settings._env_int("SOMETHING", 7) == 12


def test_cli_parser():
    args = build_parser().parse_args(["gdp.json", "--kind", "bar-race", "--unit", "$", "--autoplay"])
    assert args.data == "gdp.json"
    assert args.kind == "bar-race"
    assert args.autoplay
    assert not args.log_scale
    with pytest.raises(SystemExit):
        build_parser().parse_args(["gdp.json"])
