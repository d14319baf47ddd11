import numpy as np
import pandas as pd
import pytest

from unlock_anxiety.config import StudyConfig

START = pd.Timestamp("2021-03-01")


def day(n: int) -> pd.Timestamp:
    return START + pd.Timedelta(days=n)


@pytest.fixture
def config() -> StudyConfig:
    return StudyConfig()


@pytest.fixture
def make_daily():
    """Raw subject-day rows: (subject_id, wave, day, total, home, at_home)."""

    def _make(rows):
        return pd.DataFrame(
            [
                {
                    "subject_id": sid,
                    "wave": wave,
                    "date": day(d),
                    "total_unlock": np.nan if total is None else float(total),
                    "home_unlock": np.nan if home is None else float(home),
                    "time_at_home": np.nan if at_home is None else float(at_home),
                }
                for sid, wave, d, total, home, at_home in rows
            ]
        )

    return _make


@pytest.fixture
def make_features():
    """Derived subject-day rows where every feature equals `value`."""

    def _make(subject_id, wave, days, value=None):
        features = ["time_at_home", "away_time", "ratio_total", "ratio_home", "ratio_away"]
        rows = []
        for d in days:
            v = float(d) if value is None else value
            row = {"subject_id": subject_id, "wave": wave, "date": day(d)}
            row.update({f: v for f in features})
            rows.append(row)
        return pd.DataFrame(rows)

    return _make


@pytest.fixture
def make_events():
    """Survey events: (subject_id, wave, day, score)."""

    def _make(rows):
        return pd.DataFrame(
            [
                {
                    "subject_id": sid,
                    "wave": wave,
                    "date": day(d),
                    "anxiety_score": score,
                    "severity": (score + 1) // 2,
                }
                for sid, wave, d, score in rows
            ]
        )

    return _make


@pytest.fixture
def mapping_frame():
    def _make(rows):
        return pd.DataFrame(rows, columns=["wave2_id", "wave3_id", "wave4_id"]).astype("Int64")

    return _make
