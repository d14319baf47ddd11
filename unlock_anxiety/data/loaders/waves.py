"""
Wave-structured study loader.

Reads one survey, usage and location export per wave plus a single
identity mapping and demographics file, against the static schemas in
unlock_anxiety.data.schemas.
"""

from pathlib import Path
from typing import Dict, List, Optional

import polars as pl
from loguru import logger

from ...config import StudyConfig, WaveFiles
from ...errors import SchemaError
from ..schemas import (
    DAILY_COLUMNS,
    DEMOGRAPHICS,
    LOCATION,
    MAPPING,
    SURVEY,
    SURVEY_COLUMNS,
    USAGE,
    TableSchema,
)
from .base import BaseStudyLoader, DatasetInfo

KEYS = ["subject_id", "wave", "date"]


class WaveStudyLoader(BaseStudyLoader):
    """Loader for per-wave CSV exports described by StudyConfig.data."""

    def __init__(self, data_dir: Path, config: Optional[StudyConfig] = None):
        super().__init__(data_dir, config)
        self._waves: Dict[int, WaveFiles] = {w.wave: w for w in self.config.data.waves}
        if not self._waves:
            raise ValueError("No waves configured under data.waves")

    def get_waves(self) -> List[int]:
        return sorted(self._waves)

    def read_table(self, path: Path, schema: TableSchema) -> pl.DataFrame:
        """
        Read one CSV export against its schema.

        Required columns must be present; optional ones are filled with
        nulls. Only declared columns are kept, renamed to their canonical
        names, and the date column is parsed.
        """
        if not path.exists():
            raise FileNotFoundError(f"{schema.source} file not found: {path}")

        header = pl.read_csv(path, n_rows=0).columns
        missing = set(schema.required_raw()) - set(header)
        if missing:
            raise SchemaError(f"{schema.source} ({path.name})", missing)

        present = [c for c in schema.columns if c.raw in header]
        df = pl.read_csv(
            path,
            columns=[c.raw for c in present],
            schema_overrides={c.raw: c.dtype for c in present},
        )
        df = df.rename({c.raw: c.name for c in present})

        for col in schema.columns:
            if col.raw not in header:
                df = df.with_columns(pl.lit(None, dtype=col.dtype).alias(col.name))

        if schema.date_column:
            df = df.with_columns(
                pl.col(schema.date_column)
                .str.strip_chars()
                .str.to_date(self.config.data.date_format)
            )

        if "subject_id" in df.columns:
            n_null = df["subject_id"].null_count()
            if n_null:
                logger.warning(f"{path.name}: dropping {n_null} rows without subject_id")
                df = df.filter(pl.col("subject_id").is_not_null())

        return df.select(schema.names)

    def _read_wave(self, wave: int, source: str, schema: TableSchema) -> pl.DataFrame:
        files = self._waves[wave]
        df = self.read_table(self.data_dir / getattr(files, source), schema)
        logger.info(f"Loaded wave {wave} {source}: {len(df)} records")
        return df.with_columns(pl.lit(wave, dtype=pl.Int64).alias("wave"))

    def load_surveys(self) -> pl.DataFrame:
        frames = [self._read_wave(w, "survey", SURVEY) for w in self.get_waves()]
        return pl.concat(frames, how="vertical").select(SURVEY_COLUMNS)

    def load_daily(self) -> pl.DataFrame:
        usage = pl.concat(
            [self._read_wave(w, "usage", USAGE) for w in self.get_waves()],
            how="vertical",
        )
        location = pl.concat(
            [self._read_wave(w, "location", LOCATION) for w in self.get_waves()],
            how="vertical",
        )
        # A day may have usage without location or the reverse
        daily = usage.join(location, on=KEYS, how="full", coalesce=True)
        logger.info(
            f"Joined usage ({len(usage)}) and location ({len(location)}) "
            f"into {len(daily)} subject-days"
        )
        return daily.select(DAILY_COLUMNS).sort(KEYS)

    def load_mapping(self) -> pl.DataFrame:
        df = self.read_table(self.data_dir / self.config.data.mapping, MAPPING)
        logger.info(f"Loaded identity mapping: {len(df)} rows")
        return df

    def load_demographics(self) -> pl.DataFrame:
        df = self.read_table(self.data_dir / self.config.data.demographics, DEMOGRAPHICS)
        logger.info(f"Loaded demographics: {len(df)} subjects")
        return df

    def get_dataset_info(self) -> DatasetInfo:
        surveys = self.load_surveys()
        daily = self.load_daily()
        ids = set(surveys["subject_id"].to_list()) | set(daily["subject_id"].to_list())
        dates = pl.concat([surveys.select("date"), daily.select("date")])["date"]
        n_daily = max(len(daily), 1)
        missing_rate = {
            col: daily[col].null_count() / n_daily
            for col in ("total_unlock", "home_unlock", "time_at_home")
        }
        missing_rate["anxiety_score"] = surveys["anxiety_score"].null_count() / max(len(surveys), 1)
        return DatasetInfo(
            name=self.data_dir.name,
            waves=self.get_waves(),
            n_subject_ids=len(ids),
            n_survey_rows=len(surveys),
            n_daily_rows=len(daily),
            time_range=(str(dates.min()), str(dates.max())),
            missing_rate=missing_rate,
        )
