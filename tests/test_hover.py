from timeviz.domain import ChartSpec, HoverState, Scalar, TimeStep
from timeviz.domain.models import AgeBand, AgeBandSplit, DualAxisValues, LabeledPoint
from timeviz.services.hover import HoverController, Tooltip, tooltip_content


def test_enter_move_leave():
    seen = []
    hover = HoverController()
    hover.add_listener(seen.append)
    hover.enter("USA", 10, 20)
    assert hover.state == HoverState("USA", 10.0, 20.0)
    hover.move(12, 22)
    assert hover.state == HoverState("USA", 12.0, 22.0)
    hover.leave()
    assert hover.state is None
    assert seen == [HoverState("USA", 10.0, 20.0), HoverState("USA", 12.0, 22.0), None]


def test_move_without_hover_is_ignored():
    hover = HoverController()
    hover.move(1, 1)
    assert hover.state is None


def test_repeated_state_not_renotified():
    seen = []
    hover = HoverController()
    hover.add_listener(seen.append)
    hover.enter("A", 1, 1)
    hover.enter("A", 1, 1)
    hover.clear()
    hover.clear()
    assert len(seen) == 2


def test_pointer_routes_through_hit_test():
    regions = {"A": (0, 10), "B": (10, 20)}

    def hit(x, _y):
        for eid, (lo, hi) in regions.items():
            if lo <= x < hi:
                return eid
        return None

    hover = HoverController(hit)
    hover.pointer(5, 0)
    assert hover.state.entity_id == "A"
    hover.pointer(6, 3)
    assert hover.state == HoverState("A", 6.0, 3.0)
    hover.pointer(15, 0)
    assert hover.state.entity_id == "B"
    hover.pointer(50, 0)
    assert hover.state is None


def test_pointer_without_hit_test_does_nothing():
    hover = HoverController()
    hover.pointer(5, 5)
    assert hover.state is None


# --- tooltips -------------------------------------------------------------------


def test_scalar_tooltip():
    step = TimeStep(2001, {"USA": Scalar(1.5e9, label="United States")})
    tip = tooltip_content(HoverState("USA", 0, 0), step, ChartSpec(kind="ranked-bars", labels={"value": "GDP"}))
    assert tip == Tooltip("United States", "2001", ("GDP: 1.5B",))


def test_no_hover_or_absent_entity():
    step = TimeStep(2001, {"USA": Scalar(1.0)})
    spec = ChartSpec(kind="line")
    assert tooltip_content(None, step, spec) is None
    assert tooltip_content(HoverState("CHN", 0, 0), step, spec) is None


def test_choropleth_missing_value_reports_no_data():
    step = TimeStep(2001, {})
    tip = tooltip_content(HoverState("FRA", 0, 0), step, ChartSpec(kind="choropleth"))
    assert tip.lines == ("No data",)


def test_dual_axis_tooltip_lists_both_metrics():
    step = TimeStep(2001, {"FRA": DualAxisValues(2.0, 3000.0, label="France")})
    spec = ChartSpec(kind="choropleth", labels={"primary": "CO2", "secondary": "Per capita"})
    tip = tooltip_content(HoverState("FRA", 0, 0), step, spec)
    assert tip.title == "France"
    assert tip.lines == ("CO2: 2", "Per capita: 3k")


def test_bubble_tooltip():
    step = TimeStep(1990, {"IND": LabeledPoint(1200.0, 58.5, size=8.7e8, group="Asia")})
    tip = tooltip_content(HoverState("IND", 0, 0), step, ChartSpec(kind="bubble"))
    assert tip.lines == ("x: 1.2k", "y: 58.5", "size: 870M", "Asia")


def test_pyramid_band_tooltip():
    split = AgeBandSplit((AgeBand("0-4", 1200.0, 1100.0),), label="Germany")
    step = TimeStep(2020, {"DEU": split})
    spec = ChartSpec(kind="population-pyramid")
    tip = tooltip_content(HoverState("right:0-4", 0, 0), step, spec, entity_id="DEU")
    assert tip == Tooltip("Germany 0-4", "2020", ("Female: 1.1k",))
    assert tooltip_content(HoverState("left:90+", 0, 0), step, spec, entity_id="DEU") is None
