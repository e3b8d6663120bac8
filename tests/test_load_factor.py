import pandas as pd
import pytest

from planner.load_factor import (
    DEFAULT_MAX_LOAD_FACTOR,
    LoadFactorEditor,
    LoadFactorInputs,
    base_load_factor_frame,
    clear_override,
    compute_base,
    compute_displayed,
    default_max_load_factor,
    default_seasonality,
    overrides_from_records,
    overrides_to_records,
    prune_route,
    round_half_up,
    route_load_factor_frame,
    set_override,
    yearly_summary,
)
from planner.timeline import MonthKey, MonthKeyError, PeriodMode, Timeline

TIMELINE = Timeline(MonthKey(2026, 1), MonthKey(2028, 12), PeriodMode.DATES)


@pytest.fixture
def inputs():
    seasonality = default_seasonality()
    seasonality["Jul"] = 130
    seasonality["Jan"] = 90
    return LoadFactorInputs(
        ramp_up={"Y": {"2026-01": 55, "2026-03": 40}, "J": {"2026-03": 97}},
        targeted_yearly={"Y": {"Y2": 80, "Y3": 84}, "J": {"Y2": 70}},
        seasonality=seasonality,
        max_load_factor={"Y": 90},
    )


def test_ramp_up_value_is_used_as_is_in_first_year(inputs):
    assert compute_base("Y", "2026-03", inputs, TIMELINE) == 40
    assert compute_base("Y", MonthKey(2026, 2), inputs, TIMELINE) == 0


def test_ramp_up_is_never_capped():
    capped = LoadFactorInputs(ramp_up={"J": {"2026-03": 97}}, max_load_factor={"J": 80})

    assert compute_base("J", "2026-03", capped, TIMELINE) == 97


def test_peak_month_is_capped_at_class_maximum(inputs):
    # round(80 * 130 / 100) = 104, capped at 90
    assert compute_base("Y", "2027-07", inputs, TIMELINE) == 90


def test_targeted_value_scaled_by_seasonality(inputs):
    assert compute_base("Y", "2027-01", inputs, TIMELINE) == 72
    assert compute_base("Y", "2027-02", inputs, TIMELINE) == 80
    assert compute_base("Y", "2028-02", inputs, TIMELINE) == 84


def test_missing_targets_and_caps_use_defaults(inputs):
    # J has no cap entry: 70 * 1.3 = 91 stays uncapped at the 100 default
    assert compute_base("J", "2027-07", inputs, TIMELINE) == 91
    assert compute_base("J", "2028-05", inputs, TIMELINE) == 0
    assert compute_base("W", "2027-05", inputs, TIMELINE) == 0


def test_seasonality_rounds_half_up():
    half = LoadFactorInputs(targeted_yearly={"Y": {"Y2": 85}}, seasonality={"Mar": 110})

    # 85 * 110 / 100 = 93.5
    assert compute_base("Y", "2027-03", half, TIMELINE) == 94
    assert round_half_up(92.5) == 93


def test_month_outside_timeline_has_no_value(inputs):
    assert compute_base("Y", "2025-12", inputs, TIMELINE) == 0
    assert compute_base("Y", "2029-01", inputs, TIMELINE) == 0


def test_year_two_starts_thirteen_months_after_period_start():
    shifted = Timeline(MonthKey(2026, 7), MonthKey(2028, 6))
    lf = LoadFactorInputs(ramp_up={"Y": {"2027-06": 60}}, targeted_yearly={"Y": {"Y2": 75}})

    assert compute_base("Y", "2027-06", lf, shifted) == 60
    assert compute_base("Y", "2027-07", lf, shifted) == 75


def test_computed_values_never_exceed_cap_after_first_year(inputs):
    frame = base_load_factor_frame(["Y"], TIMELINE, inputs)
    after_first_year = frame.iloc[:, 12:]

    assert (after_first_year <= inputs.max_load_factor["Y"]).all().all()


def test_override_wins_over_computed_value(inputs):
    overrides = set_override({}, "r1", "Y", "2027-07", 97)

    assert compute_displayed("r1", "Y", "2027-07", inputs, overrides, TIMELINE) == 97
    assert compute_displayed("r2", "Y", "2027-07", inputs, overrides, TIMELINE) == 90


def test_clearing_last_override_removes_entry(inputs):
    overrides = set_override({}, "r1", "Y", "2027-07", 97)
    overrides = set_override(overrides, "r1", "Y", "2027-08", 50)

    overrides = clear_override(overrides, "r1", "Y", "2027-07")
    assert overrides == {("r1", "Y"): {"2027-08": 50}}
    assert compute_displayed("r1", "Y", "2027-07", inputs, overrides, TIMELINE) == 90

    overrides = clear_override(overrides, "r1", "Y", "2027-08")
    assert overrides == {}


def test_override_edits_return_new_tables():
    original = {("r1", "Y"): {"2027-07": 97}}

    updated = set_override(original, "r1", "Y", "2027-08", 50)
    cleared = clear_override(original, "r1", "Y", "2027-07")

    assert original == {("r1", "Y"): {"2027-07": 97}}
    assert updated[("r1", "Y")] == {"2027-07": 97, "2027-08": 50}
    assert cleared == {}


def test_clearing_absent_override_is_harmless():
    original = {("r1", "Y"): {"2027-07": 97}}

    assert clear_override(original, "r1", "J", "2027-07") == original
    assert clear_override(original, "r1", "Y", "2027-01") == original


def test_override_month_keys_are_validated():
    with pytest.raises(MonthKeyError):
        set_override({}, "r1", "Y", "July 2027", 80)


def test_prune_route_drops_orphaned_overrides():
    overrides = {("r1", "Y"): {"2027-07": 97}, ("r1", "J"): {"2027-07": 60}, ("r2", "Y"): {"2027-07": 70}}

    assert prune_route(overrides, "r1") == {("r2", "Y"): {"2027-07": 70}}


def test_override_records_round_trip_without_empty_entries():
    records = [
        {"routeId": "r1", "classType": "Y", "routeDisplay": "CDG - JFK", "2027-07": 97, "2027-08": None},
        {"routeId": "r2", "classType": "J", "routeDisplay": "CDG - LHR"},
        {"classType": "Y", "2027-07": 12},
    ]

    table = overrides_from_records(records)

    assert table == {("r1", "Y"): {"2027-07": 97}}
    assert overrides_to_records(table) == [{"routeId": "r1", "classType": "Y", "2027-07": 97}]


def test_default_tables():
    assert default_seasonality()["Dec"] == 100
    assert len(default_seasonality()) == 12
    assert default_max_load_factor(["J", "Y"]) == {"J": DEFAULT_MAX_LOAD_FACTOR, "Y": DEFAULT_MAX_LOAD_FACTOR}


def test_base_frame_matches_scalar_computation(inputs):
    frame = base_load_factor_frame(["J", "Y"], TIMELINE, inputs)

    assert list(frame.index) == ["J", "Y"]
    assert frame.shape == (2, 36)
    for code in ("J", "Y"):
        for key in frame.columns:
            assert frame.loc[code, key] == compute_base(code, key, inputs, TIMELINE)


def test_base_frame_for_empty_timeline_has_no_columns(inputs):
    frame = base_load_factor_frame(["Y"], Timeline(None, None), inputs)

    assert frame.shape == (1, 0)


def test_route_frame_applies_overrides_per_route(inputs):
    routes = [
        {"id": "r1", "origin": "CDG", "destination": "JFK"},
        {"id": "r2", "origin": "CDG", "destination": "LHR"},
    ]
    overrides = {("r1", "Y"): {"2027-07": 97}}

    frame = route_load_factor_frame(routes, ["J", "Y"], TIMELINE, inputs, overrides)

    assert list(frame.columns[:3]) == ["routeId", "classType", "routeDisplay"]
    assert len(frame) == 4
    r1_y = frame[(frame["routeId"] == "r1") & (frame["classType"] == "Y")].iloc[0]
    r2_y = frame[(frame["routeId"] == "r2") & (frame["classType"] == "Y")].iloc[0]
    assert r1_y["routeDisplay"] == "CDG - JFK"
    assert r1_y["2027-07"] == 97
    assert r2_y["2027-07"] == 90


def test_yearly_summary_averages_each_year(inputs):
    flat = LoadFactorInputs(
        ramp_up={"Y": {f"2026-{month:02d}": 60 for month in range(1, 13)}},
        targeted_yearly={"Y": {"Y2": 80, "Y3": 85}},
    )
    frame = base_load_factor_frame(["Y"], TIMELINE, flat)

    summary = yearly_summary(frame, TIMELINE)

    expected = pd.DataFrame(
        {
            "classType": ["Y", "Y", "Y"],
            "yearKey": ["Y1", "Y2", "Y3"],
            "label": ["2026", "2027", "2028"],
            "loadFactor": [60.0, 80.0, 85.0],
        }
    )
    pd.testing.assert_frame_equal(summary, expected, check_dtype=False)


def test_yearly_summary_orders_classes_first_to_economy(inputs):
    routes = [{"id": "r1", "origin": "CDG", "destination": "JFK"}]
    grid = route_load_factor_frame(routes, ["Y", "J"], TIMELINE, inputs, {})

    summary = yearly_summary(grid, TIMELINE)

    assert summary["classType"].tolist()[:3] == ["J", "J", "J"]
    assert summary["yearKey"].tolist()[:3] == ["Y1", "Y2", "Y3"]


def test_yearly_summary_of_empty_grid_is_empty():
    summary = yearly_summary(pd.DataFrame(columns=["routeId", "classType"]), TIMELINE)

    assert summary.empty
    assert list(summary.columns) == ["classType", "yearKey", "label", "loadFactor"]


def test_editor_notifies_only_on_change():
    published = []
    editor = LoadFactorEditor(observers=[published.append])

    editor.set_override("r1", "Y", "2027-07", 97)
    editor.clear_override("r1", "Y", "2027-08")
    editor.prune_route("r1")

    assert len(published) == 2
    assert editor.overrides == {}
