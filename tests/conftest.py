# Shared fixtures. Qt runs on the offscreen platform and matplotlib on Agg so
# the suite works headless; pytest-qt provides 'qtbot' for widget tests.

import os

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
os.environ.setdefault("MPLBACKEND", "Agg")

from timeviz.design.reduced_motion import set_reduced_motion  # noqa: E402
from timeviz.services.timers import ManualTimerBackend  # noqa: E402


@pytest.fixture(autouse=True)
def _full_motion():
    """Tests assume transitions run unless they opt into reduced motion."""
    set_reduced_motion(False)
    yield
    set_reduced_motion(False)


@pytest.fixture
def timers():
    return ManualTimerBackend()
