"""In-memory bundle of the study's source tables."""

from dataclasses import dataclass

import pandas as pd

from ..errors import SchemaError
from .schemas import DAILY_COLUMNS, DEMOGRAPHIC_COLUMNS, MAPPING_COLUMNS, SURVEY_COLUMNS


def _check_columns(df: pd.DataFrame, columns, source: str) -> None:
    missing = set(columns) - set(df.columns)
    if missing:
        raise SchemaError(source, missing)


def _normalise_dates(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df["date"] = pd.to_datetime(df["date"]).dt.normalize()
    return df


def _nullable_ids(df: pd.DataFrame, columns) -> pd.DataFrame:
    df = df.copy()
    for col in columns:
        df[col] = pd.array(df[col], dtype="Int64")
    return df


@dataclass(frozen=True)
class StudyTables:
    """
    Concatenated, wave-tagged source tables.

    surveys:      subject_id, wave, date, anxiety_score
    daily:        subject_id, wave, date, total_unlock, home_unlock, time_at_home
    mapping:      wave2_id, wave3_id, wave4_id
    demographics: subject_id, age
    """

    surveys: pd.DataFrame
    daily: pd.DataFrame
    mapping: pd.DataFrame
    demographics: pd.DataFrame

    @classmethod
    def from_frames(
        cls,
        surveys: pd.DataFrame,
        daily: pd.DataFrame,
        mapping: pd.DataFrame,
        demographics: pd.DataFrame,
    ) -> "StudyTables":
        """Check columns and normalise dtypes; inputs are not modified."""
        _check_columns(surveys, SURVEY_COLUMNS, "survey")
        _check_columns(daily, DAILY_COLUMNS, "daily")
        _check_columns(mapping, MAPPING_COLUMNS, "mapping")
        _check_columns(demographics, DEMOGRAPHIC_COLUMNS, "demographics")

        surveys = _normalise_dates(surveys[SURVEY_COLUMNS])
        daily = _normalise_dates(daily[DAILY_COLUMNS])
        for df in (surveys, daily):
            df["subject_id"] = df["subject_id"].astype("int64")
            df["wave"] = df["wave"].astype("int64")
        for col in ("total_unlock", "home_unlock", "time_at_home"):
            daily[col] = daily[col].astype("float64")
        surveys["anxiety_score"] = surveys["anxiety_score"].astype("float64")

        mapping = _nullable_ids(mapping[MAPPING_COLUMNS], MAPPING_COLUMNS)
        demographics = demographics[DEMOGRAPHIC_COLUMNS].copy()
        demographics["subject_id"] = demographics["subject_id"].astype("int64")
        demographics["age"] = demographics["age"].astype("float64")

        return cls(
            surveys=surveys.reset_index(drop=True),
            daily=daily.reset_index(drop=True),
            mapping=mapping.reset_index(drop=True),
            demographics=demographics.reset_index(drop=True),
        )

    def observed_ids(self) -> set:
        """Pseudonymous ids appearing in the survey or daily tables."""
        return set(self.surveys["subject_id"].tolist()) | set(
            self.daily["subject_id"].tolist()
        )
