"""
Analysis table assembly.

Joins windowed feature sets with canonical subject ids, age and elapsed
study time, and applies the completeness and covariate gates.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import pandas as pd
from loguru import logger

from ..errors import DropReason
from ..preprocessing.identity import IdentityMap

DAYS_PER_YEAR = 365.25

ID_COLUMNS = ["canonical_id", "subject_id", "wave", "date"]
COVARIATE_COLUMNS = ["age", "elapsed_years"]
OUTCOME_COLUMNS = ["anxiety_score", "severity"]


@dataclass
class AssemblyResult:
    table: pd.DataFrame
    incomplete: int = 0
    incomplete_by_feature: Dict[str, int] = field(default_factory=dict)
    missing_covariate: int = 0
    dropped: pd.DataFrame = field(default_factory=pd.DataFrame)


def study_start(surveys: pd.DataFrame, daily: pd.DataFrame) -> pd.Timestamp:
    """First date observed in the earliest wave, across surveys and daily records."""
    dates = pd.concat([surveys[["wave", "date"]], daily[["wave", "date"]]], ignore_index=True)
    if dates.empty:
        raise ValueError("Cannot determine study start from empty tables")
    first_wave = dates["wave"].min()
    return pd.Timestamp(dates.loc[dates["wave"] == first_wave, "date"].min())


def analysis_columns(features: Sequence[str]) -> List[str]:
    cols = ID_COLUMNS + COVARIATE_COLUMNS + OUTCOME_COLUMNS
    for feature in features:
        cols += [f"{feature}_median", f"{feature}_missing"]
    return cols


def _age_lookup(demographics: pd.DataFrame) -> Dict[int, float]:
    demo = demographics.dropna(subset=["age"])
    duplicated = demo["subject_id"].duplicated(keep="first")
    if duplicated.any():
        logger.warning(
            f"{int(duplicated.sum())} duplicate demographic rows; keeping the first per subject"
        )
    demo = demo[~duplicated]
    return dict(zip(demo["subject_id"].astype(int), demo["age"].astype(float)))


def assemble_analysis_table(
    windows: pd.DataFrame,
    identity: IdentityMap,
    demographics: pd.DataFrame,
    start: pd.Timestamp,
    features: Sequence[str],
) -> AssemblyResult:
    """
    Build the final analysis table.

    Rows with any undefined feature median are dropped, as are rows whose
    subject has no age. Age is looked up under the row's own pseudonymous
    id first, then under its canonical id.

    Args:
        windows: Output of WindowAggregator.aggregate
        identity: Resolved identity map covering every subject_id in windows
        demographics: subject_id, age
        start: Origin of the elapsed-time covariate
        features: Window features that must have a defined median

    Returns:
        AssemblyResult
    """
    df = windows.copy()

    undefined = pd.DataFrame({f: df[f"{f}_median"].isna() for f in features}, index=df.index)
    incomplete_by_feature = {f: int(undefined[f].sum()) for f in features}
    incomplete = undefined.any(axis=1)
    dropped = [df[incomplete].assign(drop_reason=DropReason.INCOMPLETE_WINDOW.value)]
    df = df[~incomplete].copy()

    df["canonical_id"] = df["subject_id"].map(identity.canonical).astype("int64")

    ages = _age_lookup(demographics)
    df["age"] = df["subject_id"].map(ages).fillna(df["canonical_id"].map(ages))
    no_age = df["age"].isna()
    dropped.append(df[no_age].assign(drop_reason=DropReason.MISSING_COVARIATE.value))
    df = df[~no_age].copy()

    df["elapsed_years"] = (df["date"] - start).dt.days / DAYS_PER_YEAR

    table = (
        df[analysis_columns(features)]
        .sort_values(["canonical_id", "date", "subject_id"])
        .reset_index(drop=True)
    )

    logger.info(
        f"Analysis table: {len(table)} rows, {table['canonical_id'].nunique()} subjects "
        f"({int(incomplete.sum())} incomplete windows, {int(no_age.sum())} without age)"
    )
    return AssemblyResult(
        table=table,
        incomplete=int(incomplete.sum()),
        incomplete_by_feature=incomplete_by_feature,
        missing_covariate=int(no_age.sum()),
        dropped=pd.concat(dropped, ignore_index=True),
    )
