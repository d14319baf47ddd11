import json

import numpy as np
import pandas as pd
import pytest

from unlock_anxiety.config import StudyConfig
from unlock_anxiety.data.tables import StudyTables
from unlock_anxiety.errors import IdentityContradiction, SchemaError
from unlock_anxiety.pipeline import run_pipeline

from conftest import day


def _study(make_daily, demographics=None, mapping_rows=None):
    rows = []
    # Subject 305 in wave 2, days 0..39; subject 650 (same person) in wave 3, days 400..439
    for d in range(0, 40):
        rows.append((305, 2, d, 120, 60, 600))
    for d in range(400, 440):
        rows.append((650, 3, d, 200, 250, 180))
    # Wave-2 subject 12 with no location data at all
    for d in range(0, 40):
        rows.append((12, 2, d, 100, None, None))
    # One impossible day
    rows.append((305, 2, 50, 100, 10, 1500))
    daily = make_daily(rows)

    surveys = pd.DataFrame(
        [
            {"subject_id": 305, "wave": 2, "date": day(20), "anxiety_score": 1.0},
            {"subject_id": 305, "wave": 2, "date": day(30), "anxiety_score": 4.0},
            {"subject_id": 305, "wave": 2, "date": day(5), "anxiety_score": 2.0},
            {"subject_id": 305, "wave": 2, "date": day(35), "anxiety_score": np.nan},
            {"subject_id": 650, "wave": 3, "date": day(420), "anxiety_score": 6.0},
            {"subject_id": 12, "wave": 2, "date": day(25), "anxiety_score": 0.0},
            {"subject_id": 13, "wave": 2, "date": day(25), "anxiety_score": 9.0},
        ]
    )
    mapping = pd.DataFrame(
        mapping_rows or [(305, 650, None), (11, None, 810)],
        columns=["wave2_id", "wave3_id", "wave4_id"],
    )
    if demographics is None:
        demographics = pd.DataFrame({"subject_id": [305, 12], "age": [14.0, 15.0]})
    return StudyTables.from_frames(surveys, daily, mapping, demographics)


def test_end_to_end(make_daily):
    output = run_pipeline(_study(make_daily), StudyConfig())
    table, report = output.table, output.report

    assert table["canonical_id"].tolist() == [305, 305, 305]
    assert table["subject_id"].tolist() == [305, 305, 650]
    assert table["severity"].tolist() == [1, 2, 3]
    assert table["age"].tolist() == [14.0, 14.0, 14.0]

    wave3 = table.iloc[2]
    assert wave3["ratio_home_median"] == 1.0
    assert wave3["ratio_away_median"] == pytest.approx(20 / 1260)
    assert wave3["elapsed_years"] == pytest.approx(420 / 365.25)

    assert report.daily_records_loaded == 121
    assert report.daily_rejected == {"time_at_home_out_of_range": 1}
    assert report.home_unlock_capped == 40
    assert report.survey_rows_loaded == 7
    assert report.missing_outcome == 1
    assert report.survey_rejected == {"invalid_score": 1}
    assert report.survey_events == 5
    assert report.insufficient_history == 1
    assert report.windows_built == 4
    # Subject 12 has no location, so location ratios are undefined
    assert report.incomplete_window == 1
    assert report.incomplete_by_feature["ratio_home"] == 1
    assert report.incomplete_by_feature["ratio_total"] == 0
    assert report.missing_covariate == 0
    assert report.analysis_rows == 3
    assert report.n_subject_ids == 4
    assert report.n_subjects == 3
    assert report.n_multiwave_subjects == 1

    assert output.identity[650] == 305
    assert output.rejected_days["date"].tolist() == [day(50)]
    assert sorted(output.dropped_events["drop_reason"]) == [
        "incomplete_window",
        "insufficient_history",
    ]


def test_missing_demographics_counted(make_daily):
    demographics = pd.DataFrame({"subject_id": [12], "age": [15.0]})
    output = run_pipeline(_study(make_daily, demographics=demographics))

    assert output.table.empty
    assert output.report.missing_covariate == 3


def test_contradictory_mapping_fails_loudly(make_daily):
    with pytest.raises(IdentityContradiction):
        run_pipeline(_study(make_daily, mapping_rows=[(305, 650, None), (12, 650, None)]))


def test_report_serialises(make_daily, tmp_path):
    output = run_pipeline(_study(make_daily))
    path = output.report.save(tmp_path / "report.json")

    saved = json.loads(path.read_text())
    assert saved["analysis_rows"] == 3
    assert saved["daily_rejected_total"] == 1
    assert saved["incomplete_drop_rate"]["ratio_home"] == 0.25


def test_tables_require_declared_columns(make_daily):
    daily = make_daily([(1, 2, 0, 10, 5, 100)]).drop(columns=["time_at_home"])
    with pytest.raises(SchemaError, match="time_at_home"):
        StudyTables.from_frames(
            pd.DataFrame(columns=["subject_id", "wave", "date", "anxiety_score"]),
            daily,
            pd.DataFrame(columns=["wave2_id", "wave3_id", "wave4_id"]),
            pd.DataFrame(columns=["subject_id", "age"]),
        )
