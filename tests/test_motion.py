import pytest

from timeviz.design.motion import EASING_TOKENS, cubic_bezier, easing, linear, parse_cubic_bezier
from timeviz.design.reduced_motion import (
    adjust_duration,
    is_reduced_motion,
    set_reduced_motion,
    temporarily_reduced_motion,
)
from timeviz.design.spring import (
    SpringParams,
    critical_damping,
    is_overshooting,
    spring_easing,
    spring_samples,
)


@pytest.mark.parametrize("name", sorted(EASING_TOKENS) + ["linear"])
def test_easing_endpoints_and_monotonic(name):
    ease = easing(name)
    assert ease(0.0) == 0.0
    assert ease(1.0) == 1.0
    values = [ease(i / 20) for i in range(21)]
    assert all(b >= a - 1e-9 for a, b in zip(values, values[1:]))


def test_cubic_bezier_identity_curve_is_linear():
    ease = cubic_bezier(1 / 3, 1 / 3, 2 / 3, 2 / 3)
    for t in (0.1, 0.25, 0.5, 0.9):
        assert ease(t) == pytest.approx(t, abs=1e-4)


def test_linear_clamps():
    assert linear(-1) == 0.0
    assert linear(2) == 1.0


def test_parse_cubic_bezier():
    assert parse_cubic_bezier(" cubic-bezier(0.4, 0, 0.2, 1) ") == (0.4, 0.0, 0.2, 1.0)
    for bad in ("ease-in", "cubic-bezier(0.1, 0.2, 0.3)", "cubic-bezier(a, 0, 0, 1)", "cubic-bezier(1.5, 0, 0, 1)"):
        with pytest.raises(ValueError):
            parse_cubic_bezier(bad)


def test_unknown_easing_token():
    with pytest.raises(KeyError):
        easing("bouncy")


def test_spring_samples_end_at_one():
    samples = spring_samples(SpringParams())
    assert samples[0] == 0.0
    assert samples[-1] == 1.0
    assert len(samples) > 2


def test_underdamped_spring_overshoots():
    assert is_overshooting(spring_samples(SpringParams(stiffness=170, damping=5)))
    assert not is_overshooting(spring_samples(SpringParams(stiffness=170, damping=60)))


def test_spring_param_validation():
    with pytest.raises(ValueError):
        spring_samples(SpringParams(stiffness=0))
    with pytest.raises(ValueError):
        spring_samples(SpringParams(), fps=0)
    assert critical_damping(100, 1) == pytest.approx(20.0)


def test_spring_easing_interpolates_samples():
    ease = spring_easing()
    assert ease(0.0) == 0.0
    assert ease(1.0) == 1.0
    assert 0.0 < ease(0.3) < 1.2


def test_reduced_motion_spring_is_two_samples():
    with temporarily_reduced_motion():
        assert spring_samples(SpringParams()) == [0.0, 1.0]
        assert spring_easing()(0.5) == pytest.approx(0.5)


def test_adjust_duration():
    assert adjust_duration(300) == 300
    assert adjust_duration(-5) == 0
    set_reduced_motion(True)
    assert adjust_duration(300) == 0
    assert adjust_duration(300, minimum_ms=40) == 40


def test_temporarily_reduced_motion_restores():
    assert not is_reduced_motion()
    with temporarily_reduced_motion():
        assert is_reduced_motion()
        with temporarily_reduced_motion(False):
            assert not is_reduced_motion()
        assert is_reduced_motion()
    assert not is_reduced_motion()
