import numpy as np
import pandas as pd
import pytest

from unlock_anxiety.preprocessing.anxiety import bin_severity, build_survey_events


@pytest.mark.parametrize(
    "score, severity",
    [(0, 0), (1, 1), (2, 1), (3, 2), (4, 2), (5, 3), (6, 3), (4.0, 2)],
)
def test_bin_severity(score, severity):
    assert bin_severity(score) == severity


@pytest.mark.parametrize("score", [-1, 7, 2.5, np.nan])
def test_bin_severity_rejects_invalid(score):
    with pytest.raises(ValueError):
        bin_severity(score)


def _surveys(rows):
    return pd.DataFrame(
        [
            {"subject_id": s, "wave": w, "date": pd.Timestamp(d), "anxiety_score": score}
            for s, w, d, score in rows
        ]
    )


def test_build_survey_events():
    surveys = _surveys(
        [
            (1, 2, "2021-03-10", 3.0),
            (1, 2, "2021-03-11", np.nan),
            (1, 2, "2021-03-12", 7.0),
            (1, 2, "2021-03-13", 2.5),
            (2, 2, "2021-03-10", 6.0),
            (2, 2, "2021-03-10", 0.0),
        ]
    )
    result = build_survey_events(surveys)

    assert result.missing_outcome == 1
    assert result.events[["subject_id", "anxiety_score", "severity"]].values.tolist() == [
        [1, 3, 2],
        [2, 6, 3],
    ]
    assert result.events["severity"].dtype == np.int64
    assert sorted(result.rejected["reason"]) == [
        "duplicate_survey",
        "invalid_score",
        "invalid_score",
    ]


def test_severity_is_function_of_score():
    surveys = _surveys([(1, 2, f"2021-03-{d:02d}", float(d % 7)) for d in range(1, 29)])
    events = build_survey_events(surveys).events
    assert all(
        sev == bin_severity(score)
        for score, sev in zip(events["anxiety_score"], events["severity"])
    )
