"""
Source table schemas.

Every column the pipeline reads is declared here with its name in the raw
export, the name used downstream and its polars dtype. Anything not
declared is ignored, so an export that gains or reorders columns cannot
shift the meaning of a field.
"""

from dataclasses import dataclass, field
from typing import Dict, List

import polars as pl


@dataclass(frozen=True)
class ColumnSpec:
    raw: str
    name: str
    dtype: pl.DataType
    required: bool = True


@dataclass(frozen=True)
class TableSchema:
    source: str
    columns: List[ColumnSpec] = field(default_factory=list)
    date_column: str = ""

    @property
    def names(self) -> List[str]:
        return [c.name for c in self.columns]

    def required_raw(self) -> List[str]:
        return [c.raw for c in self.columns if c.required]

    def renames(self) -> Dict[str, str]:
        return {c.raw: c.name for c in self.columns}


SURVEY = TableSchema(
    source="survey",
    columns=[
        ColumnSpec("subject_id", "subject_id", pl.Int64),
        ColumnSpec("date", "date", pl.Utf8),
        # Float on read: integrality is checked when events are built
        ColumnSpec("anxiety_score", "anxiety_score", pl.Float64),
    ],
    date_column="date",
)

# Other location-conditioned unlock durations exist in the export but are
# too sparse to use.
USAGE = TableSchema(
    source="usage",
    columns=[
        ColumnSpec("subject_id", "subject_id", pl.Int64),
        ColumnSpec("date", "date", pl.Utf8),
        ColumnSpec("total_unlock_minutes", "total_unlock", pl.Float64),
        ColumnSpec("home_unlock_minutes", "home_unlock", pl.Float64),
    ],
    date_column="date",
)

# alternate_time_at_home_minutes measures the same quantity and is ignored.
LOCATION = TableSchema(
    source="location",
    columns=[
        ColumnSpec("subject_id", "subject_id", pl.Int64),
        ColumnSpec("date", "date", pl.Utf8),
        ColumnSpec("time_at_home_minutes", "time_at_home", pl.Float64),
    ],
    date_column="date",
)

MAPPING = TableSchema(
    source="mapping",
    columns=[
        ColumnSpec("wave2_id", "wave2_id", pl.Int64, required=False),
        ColumnSpec("wave3_id", "wave3_id", pl.Int64, required=False),
        ColumnSpec("wave4_id", "wave4_id", pl.Int64, required=False),
    ],
)

DEMOGRAPHICS = TableSchema(
    source="demographics",
    columns=[
        ColumnSpec("subject_id", "subject_id", pl.Int64),
        ColumnSpec("age", "age", pl.Float64),
    ],
)

SCHEMAS: Dict[str, TableSchema] = {
    s.source: s for s in (SURVEY, USAGE, LOCATION, MAPPING, DEMOGRAPHICS)
}

# Column order of the in-memory tables handed to the pipeline
SURVEY_COLUMNS = ["subject_id", "wave", "date", "anxiety_score"]
DAILY_COLUMNS = ["subject_id", "wave", "date", "total_unlock", "home_unlock", "time_at_home"]
MAPPING_COLUMNS = ["wave2_id", "wave3_id", "wave4_id"]
DEMOGRAPHIC_COLUMNS = ["subject_id", "age"]
