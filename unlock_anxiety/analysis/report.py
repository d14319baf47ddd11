"""
Pipeline drop report.

Counts of records removed at each gate, emitted alongside the analysis
table so a run can be audited and reproduced.
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Union

from loguru import logger


@dataclass
class PipelineReport:
    """Counts per gate of one pipeline run."""

    # Subject-day records
    daily_records_loaded: int = 0
    daily_rejected: Dict[str, int] = field(default_factory=dict)
    home_unlock_capped: int = 0

    # Survey events
    survey_rows_loaded: int = 0
    missing_outcome: int = 0
    survey_rejected: Dict[str, int] = field(default_factory=dict)
    survey_events: int = 0

    # Windows
    window_days: int = 14
    insufficient_history: int = 0
    windows_built: int = 0
    incomplete_window: int = 0
    incomplete_by_feature: Dict[str, int] = field(default_factory=dict)

    # Identities and covariates
    n_subject_ids: int = 0
    n_subjects: int = 0
    n_multiwave_subjects: int = 0
    missing_covariate: int = 0

    analysis_rows: int = 0

    @property
    def daily_rejected_total(self) -> int:
        return sum(self.daily_rejected.values())

    @property
    def survey_rejected_total(self) -> int:
        return sum(self.survey_rejected.values())

    def drop_rate(self, feature: str) -> float:
        """Share of built windows whose `feature` median was undefined."""
        if self.windows_built == 0:
            return 0.0
        return self.incomplete_by_feature.get(feature, 0) / self.windows_built

    def to_dict(self) -> dict:
        d = asdict(self)
        d["daily_rejected_total"] = self.daily_rejected_total
        d["survey_rejected_total"] = self.survey_rejected_total
        d["incomplete_drop_rate"] = {
            f: round(self.drop_rate(f), 4) for f in self.incomplete_by_feature
        }
        return d

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Saved report to {path}")
        return path

    def log_summary(self) -> None:
        logger.info("Pipeline report")
        logger.info(
            f"  Subject-days: {self.daily_records_loaded} loaded, "
            f"{self.daily_rejected_total} rejected {self.daily_rejected}, "
            f"{self.home_unlock_capped} capped"
        )
        logger.info(
            f"  Surveys: {self.survey_rows_loaded} loaded, {self.missing_outcome} without score, "
            f"{self.survey_rejected_total} rejected, {self.survey_events} events"
        )
        logger.info(
            f"  Windows ({self.window_days}d): {self.insufficient_history} insufficient history, "
            f"{self.windows_built} built, {self.incomplete_window} incomplete"
        )
        for feature, n in self.incomplete_by_feature.items():
            logger.info(f"    {feature}: {n} undefined ({self.drop_rate(feature):.1%})")
        logger.info(
            f"  Identities: {self.n_subject_ids} ids -> {self.n_subjects} subjects "
            f"({self.n_multiwave_subjects} multi-wave)"
        )
        logger.info(
            f"  Final: {self.analysis_rows} rows ({self.missing_covariate} dropped without age)"
        )
