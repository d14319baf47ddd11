"""
Anxiety Survey Preprocessing

Builds survey events from raw survey rows and bins the ordinal anxiety
score (0-6) into four severity levels:

    0   -> 0 (none)
    1-2 -> 1 (mild)
    3-4 -> 2 (moderate)
    5-6 -> 3 (severe)
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd
from loguru import logger

from ..errors import DropReason

SCORE_MIN = 0
SCORE_MAX = 6

SEVERITY_LABELS = {0: "none", 1: "mild", 2: "moderate", 3: "severe"}

EVENT_KEYS = ["subject_id", "wave", "date"]


def bin_severity(score: int) -> int:
    """Map a raw anxiety score in [0, 6] to its severity bin."""
    if pd.isna(score) or score != int(score) or not SCORE_MIN <= score <= SCORE_MAX:
        raise ValueError(f"Anxiety score must be an integer in [0, 6], got {score!r}")
    return (int(score) + 1) // 2


@dataclass
class SurveyEventResult:
    events: pd.DataFrame
    rejected: pd.DataFrame
    missing_outcome: int


def build_survey_events(surveys: pd.DataFrame) -> SurveyEventResult:
    """
    Validate survey rows and attach the severity bin.

    Rows without a score are dropped and counted. Scores that are not an
    integer in [0, 6], and repeated (subject_id, wave, date) rows, are
    rejected as corrupt.

    Args:
        surveys: subject_id, wave, date, anxiety_score

    Returns:
        SurveyEventResult; events gain an integer `severity` column
    """
    df = surveys.copy()

    no_score = df["anxiety_score"].isna()
    n_missing = int(no_score.sum())
    if n_missing:
        logger.info(f"Dropped {n_missing} survey rows without an anxiety score")
    df = df[~no_score]

    score = df["anxiety_score"]
    out_of_range = (score < SCORE_MIN) | (score > SCORE_MAX) | (score != np.floor(score))
    duplicate = (
        df.loc[~out_of_range]
        .duplicated(EVENT_KEYS, keep="first")
        .reindex(df.index, fill_value=False)
    )
    reason = pd.Series(
        np.select([out_of_range, duplicate], ["invalid_score", "duplicate_survey"], default=""),
        index=df.index,
    )
    bad = reason != ""
    rejected = df[bad].assign(reason=reason[bad], drop_reason=DropReason.DATA_CORRUPTION.value)
    for row in rejected.itertuples(index=False):
        logger.warning(
            f"Rejected survey subject_id={row.subject_id} wave={row.wave} "
            f"date={pd.Timestamp(row.date).date()} score={row.anxiety_score}: {row.reason}"
        )

    events = df[~bad].copy()
    events["anxiety_score"] = events["anxiety_score"].astype("int64")
    events["severity"] = ((events["anxiety_score"] + 1) // 2).astype("int64")

    logger.info(
        f"Built {len(events)} survey events; severity distribution "
        f"{events['severity'].value_counts().sort_index().to_dict()}"
    )
    return SurveyEventResult(
        events=events.sort_values(EVENT_KEYS).reset_index(drop=True),
        rejected=rejected.reset_index(drop=True),
        missing_outcome=n_missing,
    )
