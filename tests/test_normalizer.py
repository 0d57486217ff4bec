import pytest

from timeviz.domain import (
    AgeBandSplit,
    ChartSpec,
    DualAxisValues,
    ExpectedShape,
    FieldMap,
    LabeledPoint,
    Scalar,
    ShapeMismatch,
    normalize,
    serialize,
)


def _gdp_payload():
    return [
        {"year": 1960, "countries": [{"code": "USA", "name": "United States", "value": 5.4e11}, {"code": "DEU", "value": "7.1e10"}]},
        {"year": 1961, "countries": [{"code": "USA", "value": 5.6e11}, {"code": "DEU", "value": None}]},
        {"year": 1962, "countries": [{"code": "USA", "value": 6.0e11}, {"code": "DEU", "value": 8.0e10}]},
    ]


def test_step_array_with_embedded_entities():
    ds = normalize(_gdp_payload(), ExpectedShape.SCALAR)
    assert ds.keys() == (1960, 1961, 1962)
    assert ds[0].get("USA") == Scalar(5.4e11, "United States")
    # numeric strings are coerced
    assert ds[0].get("DEU") == Scalar(7.1e10)


def test_null_value_is_absence_not_zero():
    ds = normalize(_gdp_payload(), ExpectedShape.SCALAR)
    assert "DEU" not in ds[1]
    assert "DEU" in ds[2]
    assert [v is None for _k, v in ds.history("DEU")] == [False, True, False]


def test_wrong_metric_key_is_a_shape_mismatch():
    raw = [
        {"year": 2000, "countries": [{"code": "USA", "population": 282e6}]},
        {"year": 2001, "countries": [{"code": "USA", "population": 285e6}]},
    ]
    spec = ChartSpec(kind="ranked-bars", metric_key="gdp")
    with pytest.raises(ShapeMismatch, match="no record carries"):
        normalize(raw, spec.expected_shape, fields=FieldMap.for_spec(spec))


def test_non_numeric_scalars_are_absence():
    raw = {"2000": {"USA": True, "CHN": "n/a", "DEU": 3.0}, "2001": {"USA": 1.0, "CHN": False}}
    ds = normalize(raw, ExpectedShape.SCALAR)
    assert set(ds[0].entities) == {"DEU"}
    assert set(ds[1].entities) == {"USA"}


def test_step_first_map_is_sorted():
    raw = {
        "2020": {"USA": {"co2": 4712.8, "co2_per_capita": 14.2}},
        "2018": {"USA": {"co2": "5,376.7", "co2_per_capita": 16.4}, "CHN": {"co2": 10353.9}},
    }
    spec = ChartSpec(kind="choropleth", metric_key="co2", secondary_metric_key="co2_per_capita")
    ds = normalize(raw, spec.expected_shape, fields=FieldMap.for_spec(spec))
    assert ds.keys() == (2018, 2020)
    assert ds[0].get("USA") == DualAxisValues(5376.7, 16.4)
    assert ds[0].get("CHN") == DualAxisValues(10353.9, None)


def test_step_first_map_of_record_lists():
    raw = {
        "2000": [{"code": "USA", "gdp": 36330, "life": 76.6, "pop": 282e6, "region": "Americas"}],
        "1990": [{"code": "USA", "gdp": 23888, "life": 75.2, "pop": 250e6, "region": "Americas"}],
    }
    spec = ChartSpec(kind="bubble", metric_key="gdp", secondary_metric_key="life", x_scale="log")
    ds = normalize(raw, spec.expected_shape, fields=FieldMap.for_spec(spec))
    assert ds.keys() == (1990, 2000)
    assert ds[1].get("USA") == LabeledPoint(36330.0, 76.6, 282e6, None, "Americas")


def test_entity_first_age_bands_with_partial_band():
    raw = {
        "USA": {
            "1990": [{"age": "0-4", "male": 9.4, "female": 9.0}, {"age": "5-9", "male": None, "female": 8.7}],
            "2000": [{"age": "0-4", "male": 9.8, "female": 9.4}],
        }
    }
    ds = normalize(raw, ExpectedShape.AGE_BAND_SPLIT)
    value = ds[0].get("USA")
    assert isinstance(value, AgeBandSplit)
    # the band with a missing side is dropped on its own
    assert [b.age for b in value.bands] == ["0-4"]


def test_flat_point_list_scalar():
    raw = [
        {"entity": "USA", "x": 2002, "y": 10.9},
        {"entity": "USA", "x": 2001, "y": 10.58},
        {"entity": "CHN", "x": 2001, "y": "1.34"},
    ]
    ds = normalize(raw, ExpectedShape.SCALAR)
    assert ds.keys() == (2001, 2002)
    assert ds[0].get("CHN") == Scalar(1.34)


def test_named_series_list():
    raw = [{"name": "USA", "data": [{"x": 2001, "y": 1}, {"x": 2002, "y": 2}]}, {"name": "JPN", "data": [{"x": 2002, "y": 3}]}]
    ds = normalize(raw, ExpectedShape.SCALAR)
    assert ds.entity_ids() == ["USA", "JPN"]
    assert "JPN" not in ds[0]


def test_empty_list_is_valid_empty_dataset():
    ds = normalize([], ExpectedShape.SCALAR)
    assert ds.is_empty
    assert len(ds) == 0


@pytest.mark.parametrize("raw", [{}, 42, "data", None, [1, 2, 3]])
def test_uninterpretable_payload_raises(raw):
    with pytest.raises(ShapeMismatch):
        normalize(raw, ExpectedShape.SCALAR)


def test_mixed_step_keys_rejected():
    raw = [{"key": 2000, "entities": []}, {"key": "later", "entities": []}]
    with pytest.raises(ShapeMismatch):
        normalize(raw, ExpectedShape.SCALAR)


def test_record_without_entity_id_reports_path():
    raw = [{"year": 2000, "countries": [{"value": 1}]}]
    with pytest.raises(ShapeMismatch) as info:
        normalize(raw, ExpectedShape.SCALAR)
    assert info.value.path == "[0][0]"


def test_steps_observed_ascending():
    raw = [{"year": y, "countries": [{"code": "A", "value": y}]} for y in (2003, 2001, 2002)]
    ds = normalize(raw, ExpectedShape.SCALAR)
    keys = ds.keys()
    assert all(a < b for a, b in zip(keys, keys[1:]))


def test_serialize_round_trip():
    ds = normalize(_gdp_payload(), ExpectedShape.SCALAR)
    again = normalize(serialize(ds), ExpectedShape.SCALAR)
    assert again == ds
    assert again.identity != ds.identity


def test_round_trip_pyramid():
    raw = {"USA": {"1990": [{"age": "0-4", "male": 9.4, "female": 9.0}]}}
    ds = normalize(raw, ExpectedShape.AGE_BAND_SPLIT)
    assert normalize(serialize(ds), ExpectedShape.AGE_BAND_SPLIT) == ds


def test_dataset_passes_through_when_shape_matches():
    ds = normalize(_gdp_payload(), ExpectedShape.SCALAR)
    assert normalize(ds, ExpectedShape.SCALAR) is ds
    with pytest.raises(ShapeMismatch):
        normalize(ds, ExpectedShape.DUAL_AXIS)
