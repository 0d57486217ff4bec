import pytest

from timeviz.domain import (
    ChartKind,
    ChartSpec,
    ExpectedShape,
    Scalar,
    TimeSeriesDataset,
    TimeStep,
    Viewport,
)
from timeviz.domain.errors import UnknownChartKind


def test_kind_aliases_from_query_collaborator():
    assert ChartKind.parse("horizontal-bar") is ChartKind.RANKED_BARS
    assert ChartKind.parse("scatter") is ChartKind.BUBBLE
    assert ChartKind.parse("bar") is ChartKind.CATEGORY_BARS
    assert ChartKind.parse("Population_Pyramid") is ChartKind.POPULATION_PYRAMID


def test_unknown_kind_rejected():
    with pytest.raises(UnknownChartKind):
        ChartKind.parse("sankey")
    with pytest.raises(ValueError):
        ChartSpec.from_mapping({"type": "pie"})


def test_every_kind_declares_a_shape():
    for kind in ChartKind:
        assert isinstance(kind.expected_shape, ExpectedShape)
    assert ChartKind.CHOROPLETH.expected_shape is ExpectedShape.DUAL_AXIS


def test_spec_from_camel_case_payload():
    spec = ChartSpec.from_mapping(
        {"type": "map", "metricKey": "co2", "secondaryMetricKey": "co2_per_capita", "labels": {"primary": "Total"}}
    )
    assert spec.kind is ChartKind.CHOROPLETH
    assert spec.metric_key == "co2"
    assert spec.secondary_metric_key == "co2_per_capita"
    assert spec.labels["primary"] == "Total"


def test_spec_rejects_bad_x_scale():
    with pytest.raises(ValueError):
        ChartSpec(kind="bubble", x_scale="sqrt")


def test_dataset_requires_increasing_keys():
    with pytest.raises(ValueError):
        TimeSeriesDataset(ExpectedShape.SCALAR, (TimeStep(2001, {}), TimeStep(2000, {})))
    with pytest.raises(ValueError):
        TimeSeriesDataset(ExpectedShape.SCALAR, (TimeStep(2001, {}), TimeStep(2001, {})))


def test_dataset_queries():
    ds = TimeSeriesDataset(
        ExpectedShape.SCALAR,
        [TimeStep(1, {"B": Scalar(1)}), TimeStep(2, {"A": Scalar(2), "B": Scalar(3)})],
    )
    assert len(ds) == 2
    assert ds.last_index == 1
    assert ds.index_of(2) == 1
    assert ds.index_of(9) is None
    assert ds.entity_ids() == ["B", "A"]
    assert ds.history("A") == [(1, None), (2, Scalar(2))]


def test_empty_dataset_last_index_is_zero():
    ds = TimeSeriesDataset(ExpectedShape.SCALAR)
    assert ds.is_empty
    assert ds.last_index == 0


def test_viewport_clamped():
    vp = Viewport(0, -5)
    assert (vp.width, vp.height) == (1, 1)
    assert Viewport(480, 300).is_small
