"""
Location-conditioned Phone Usage Ratios

Turns raw per-day unlock durations and time-at-home into corrected,
bounded ratios. One row = one subject-day in one wave.

Features:
- away_time: minutes away from home (1440 - time_at_home)
- away_unlock: unlocked minutes while away (total_unlock - home_unlock)
- ratio_total: share of the day spent unlocked
- ratio_home: share of time at home spent unlocked
- ratio_away: share of time away spent unlocked

At-home unlock time larger than time at home is impossible; it is capped
to time at home before any ratio is computed. Rows that cannot be made
consistent are rejected, logged and returned separately.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from loguru import logger

from ..config import MINUTES_PER_DAY
from ..errors import DropReason, InvariantViolation

DAILY_KEYS = ["subject_id", "wave", "date"]
RAW_COLUMNS = ["total_unlock", "home_unlock", "time_at_home"]
RATIO_COLUMNS = ["ratio_total", "ratio_home", "ratio_away"]


@dataclass
class DerivationResult:
    """Derived subject-day records plus the rows rejected on the way."""

    records: pd.DataFrame
    rejected: pd.DataFrame

    @property
    def n_capped(self) -> int:
        return int(self.records["home_unlock_capped"].sum())

    def rejected_by_reason(self) -> dict:
        return self.rejected["reason"].value_counts().sort_index().to_dict()


def away_time(time_at_home: Optional[float]) -> Optional[float]:
    """Minutes away from home on a day with `time_at_home` minutes at home."""
    if time_at_home is None or pd.isna(time_at_home):
        return None
    if not 0 <= time_at_home <= MINUTES_PER_DAY:
        raise InvariantViolation(
            f"time_at_home={time_at_home} outside [0, {MINUTES_PER_DAY}]"
        )
    return MINUTES_PER_DAY - time_at_home


def correct_home_unlock(
    home_unlock: Optional[float], time_at_home: Optional[float]
) -> Optional[float]:
    """Cap at-home unlock time to time at home."""
    if home_unlock is None or time_at_home is None:
        return home_unlock
    if pd.isna(home_unlock) or pd.isna(time_at_home):
        return home_unlock
    return min(home_unlock, time_at_home)


def _log_rejections(rejected: pd.DataFrame) -> None:
    for row in rejected.itertuples(index=False):
        logger.warning(
            f"Rejected subject-day subject_id={row.subject_id} wave={row.wave} "
            f"date={pd.Timestamp(row.date).date()}: {row.reason}"
        )


def validate_daily_records(daily: pd.DataFrame):
    """
    Reject rows violating a physical bound.

    Args:
        daily: subject_id, wave, date, total_unlock, home_unlock, time_at_home

    Returns:
        Tuple of (valid, rejected); rejected carries a `reason` column
    """
    df = daily.copy()

    checks = [
        ("duplicate_day", df.duplicated(DAILY_KEYS, keep="first")),
        ("negative_duration", (df[RAW_COLUMNS] < 0).any(axis=1)),
        ("time_at_home_out_of_range", df["time_at_home"] > MINUTES_PER_DAY),
        ("total_unlock_exceeds_day", df["total_unlock"] > MINUTES_PER_DAY),
    ]
    reason = pd.Series(np.select([m for _, m in checks], [r for r, _ in checks], default=""),
                       index=df.index)

    bad = reason != ""
    rejected = df[bad].assign(reason=reason[bad])
    return df[~bad], rejected


def derive_usage_ratios(daily: pd.DataFrame) -> DerivationResult:
    """
    Correct and derive usage ratios for every subject-day.

    Nulls propagate: a derived field is null when an input it depends on
    is null, except that ratio_home is 0 when time_at_home is 0 and
    ratio_away is 0 when away_time is 0.

    Args:
        daily: subject_id, wave, date, total_unlock, home_unlock, time_at_home

    Returns:
        DerivationResult with records (input columns plus away_time,
        away_unlock, ratio_total, ratio_home, ratio_away,
        home_unlock_capped) and rejected rows
    """
    valid, rejected = validate_daily_records(daily)
    df = valid.copy()

    tah = df["time_at_home"]
    if (tah > MINUTES_PER_DAY).any():
        raise InvariantViolation("time_at_home above a full day reached derivation")

    # Correction runs before any ratio
    capped = df["home_unlock"] > tah
    df["home_unlock"] = df["home_unlock"].mask(capped, tah)
    df["home_unlock_capped"] = capped

    home = df["home_unlock"]
    df["away_time"] = MINUTES_PER_DAY - tah
    df["away_unlock"] = df["total_unlock"] - home
    df["ratio_total"] = df["total_unlock"] / MINUTES_PER_DAY

    df["ratio_home"] = (home / tah.where(tah > 0)).mask(tah == 0, 0.0)
    away = df["away_time"]
    df["ratio_away"] = (df["away_unlock"] / away.where(away > 0)).mask(away == 0, 0.0)

    checks = [
        ("away_unlock_negative", df["away_unlock"] < 0),
        ("away_unlock_exceeds_away_time", (away > 0) & (df["away_unlock"] > away)),
    ]
    reason = pd.Series(np.select([m for _, m in checks], [r for r, _ in checks], default=""),
                       index=df.index)
    bad = reason != ""
    if bad.any():
        corrupt = valid.loc[bad].assign(reason=reason[bad])
        rejected = pd.concat([rejected, corrupt])
    df = df[~bad]

    for col in RATIO_COLUMNS:
        out_of_range = (df[col] < 0) | (df[col] > 1)
        if out_of_range.any():
            first = df.loc[out_of_range, DAILY_KEYS + [col]].iloc[0].to_dict()
            raise InvariantViolation(f"{col} outside [0, 1]: {first}")

    rejected = rejected.assign(drop_reason=DropReason.DATA_CORRUPTION.value)
    _log_rejections(rejected)

    if capped.any():
        logger.info(f"Capped home_unlock to time_at_home on {int(capped.sum())} subject-days")
    logger.info(
        f"Derived usage ratios for {len(df)} subject-days "
        f"({len(rejected)} rejected as corrupt)"
    )

    return DerivationResult(
        records=df.sort_values(DAILY_KEYS).reset_index(drop=True),
        rejected=rejected.reset_index(drop=True),
    )
