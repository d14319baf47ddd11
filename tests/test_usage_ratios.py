import numpy as np
import pandas as pd
import pytest

from unlock_anxiety.errors import InvariantViolation
from unlock_anxiety.features.usage_ratios import (
    away_time,
    correct_home_unlock,
    derive_usage_ratios,
    validate_daily_records,
)


def test_home_unlock_capped_before_ratios(make_daily):
    result = derive_usage_ratios(make_daily([(305, 2, 0, 200, 250, 180)]))
    row = result.records.iloc[0]

    assert row["home_unlock"] == 180
    assert bool(row["home_unlock_capped"])
    assert row["ratio_home"] == 1.0
    assert row["away_unlock"] == 20
    assert row["away_time"] == 1260
    assert row["ratio_away"] == pytest.approx(20 / 1260)
    assert row["ratio_total"] == pytest.approx(200 / 1440)
    assert result.rejected.empty
    assert result.n_capped == 1


def test_never_home_gives_zero_home_ratio(make_daily):
    result = derive_usage_ratios(make_daily([(1, 2, 0, 30, 30, 0)]))
    row = result.records.iloc[0]

    assert row["home_unlock"] == 0
    assert row["ratio_home"] == 0.0
    assert row["ratio_away"] == pytest.approx(30 / 1440)


def test_home_all_day_gives_zero_away_ratio(make_daily):
    result = derive_usage_ratios(
        make_daily([(1, 2, 0, 100, 100, 1440), (1, 2, 1, 120, 100, 1440)])
    )

    assert (result.records["away_time"] == 0).all()
    assert (result.records["ratio_away"] == 0.0).all()


def test_nulls_propagate(make_daily):
    result = derive_usage_ratios(
        make_daily([(1, 2, 0, 100, None, 600), (1, 2, 1, 100, 50, None)])
    )
    no_home, no_location = result.records.iloc[0], result.records.iloc[1]

    assert no_home["ratio_total"] == pytest.approx(100 / 1440)
    assert np.isnan(no_home["ratio_home"])
    assert np.isnan(no_home["ratio_away"])
    assert no_home["away_time"] == 840

    assert np.isnan(no_location["away_time"])
    assert np.isnan(no_location["ratio_home"])
    assert np.isnan(no_location["ratio_away"])
    assert no_location["home_unlock"] == 50
    assert result.rejected.empty


@pytest.mark.parametrize(
    "row, reason",
    [
        ((1, 2, 0, 100, 10, 1500), "time_at_home_out_of_range"),
        ((1, 2, 0, -5, 10, 600), "negative_duration"),
        ((1, 2, 0, 1500, 10, 600), "total_unlock_exceeds_day"),
        ((1, 2, 0, 100, 250, 180), "away_unlock_negative"),
        ((1, 2, 0, 1000, 10, 1000), "away_unlock_exceeds_away_time"),
    ],
)
def test_corrupt_rows_rejected(make_daily, row, reason):
    good = (1, 2, 5, 100, 20, 600)
    result = derive_usage_ratios(make_daily([row, good]))

    assert len(result.records) == 1
    assert result.records.iloc[0]["date"] == pd.Timestamp("2021-03-06")
    assert result.rejected["reason"].tolist() == [reason]
    assert result.rejected["drop_reason"].tolist() == ["data_corruption"]
    assert result.rejected_by_reason() == {reason: 1}


def test_duplicate_day_keeps_first(make_daily):
    valid, rejected = validate_daily_records(
        make_daily([(1, 2, 0, 100, 20, 600), (1, 2, 0, 300, 20, 600)])
    )

    assert valid["total_unlock"].tolist() == [100]
    assert rejected["reason"].tolist() == ["duplicate_day"]


def test_corrected_records_satisfy_invariants(make_daily):
    rows = []
    for i, (total, home, at_home) in enumerate(
        [(0, 0, 0), (200, 250, 180), (1440, 0, 0), (600, 600, 1440), (50, 10, 720),
         (1000, 1000, 900), (10, 9, 1439), (700, 0, 740), (1, 1, 1)]
    ):
        rows.append((7, 3, i, total, home, at_home))
    records = derive_usage_ratios(make_daily(rows)).records

    assert len(records) == len(rows)
    assert (records["home_unlock"] <= records["time_at_home"]).all()
    assert (records["away_unlock"] >= 0).all()
    assert (records["total_unlock"] >= records["home_unlock"]).all()
    for col in ["ratio_total", "ratio_home", "ratio_away"]:
        assert records[col].between(0, 1).all()
    assert (records.loc[records["time_at_home"] == 0, "ratio_home"] == 0).all()
    assert (records.loc[records["time_at_home"] == 1440, "ratio_away"] == 0).all()


def test_input_not_modified(make_daily):
    daily = make_daily([(305, 2, 0, 200, 250, 180)])
    before = daily.copy()
    derive_usage_ratios(daily)
    pd.testing.assert_frame_equal(daily, before)


def test_away_time_scalar():
    assert away_time(180) == 1260
    assert away_time(1440) == 0
    assert away_time(None) is None
    with pytest.raises(InvariantViolation):
        away_time(1500)


def test_correct_home_unlock_scalar():
    assert correct_home_unlock(250, 180) == 180
    assert correct_home_unlock(100, 180) == 100
    assert correct_home_unlock(None, 180) is None
    assert np.isnan(correct_home_unlock(np.nan, 180))
