"""
End-to-end construction of the analysis table.

    StudyTables
      -> usage ratios per subject-day        (features.usage_ratios)
      -> survey events with severity bins    (preprocessing.anxiety)
      -> trailing windows per survey event   (features.windows)
      -> canonical subject identities        (preprocessing.identity)
      -> analysis table                      (analysis.assembly)

Every stage returns new frames; the report collects what each gate
dropped.
"""

from dataclasses import dataclass
from typing import Optional

import pandas as pd
from loguru import logger

from .analysis.assembly import assemble_analysis_table, study_start
from .analysis.report import PipelineReport
from .config import StudyConfig
from .data.tables import StudyTables
from .features.usage_ratios import derive_usage_ratios
from .features.windows import WindowAggregator
from .preprocessing.anxiety import build_survey_events
from .preprocessing.identity import IdentityMap, IdentityResolver


@dataclass
class PipelineOutput:
    table: pd.DataFrame
    report: PipelineReport
    identity: IdentityMap
    daily: pd.DataFrame
    windows: pd.DataFrame
    rejected_days: pd.DataFrame
    rejected_surveys: pd.DataFrame
    dropped_events: pd.DataFrame


def run_pipeline(tables: StudyTables, config: Optional[StudyConfig] = None) -> PipelineOutput:
    """
    Build the analysis table from the loaded study.

    Row-level problems are dropped and counted; only schema errors,
    invariant violations and identity contradictions are raised.

    Args:
        tables: Loaded, wave-tagged source tables
        config: Study configuration (defaults if omitted)

    Returns:
        PipelineOutput with the analysis table and the drop report
    """
    config = config or StudyConfig()
    report = PipelineReport(window_days=config.window_days)

    report.daily_records_loaded = len(tables.daily)
    derived = derive_usage_ratios(tables.daily)
    report.daily_rejected = derived.rejected_by_reason()
    report.home_unlock_capped = derived.n_capped

    report.survey_rows_loaded = len(tables.surveys)
    surveys = build_survey_events(tables.surveys)
    report.missing_outcome = surveys.missing_outcome
    report.survey_rejected = surveys.rejected["reason"].value_counts().sort_index().to_dict()
    report.survey_events = len(surveys.events)

    aggregator = WindowAggregator(
        window_days=config.window_days,
        features=config.features,
        history_scope=config.history_scope,
    )
    windows = aggregator.aggregate(surveys.events, derived.records)
    report.insufficient_history = windows.n_insufficient
    report.windows_built = len(windows.windows)

    identity = IdentityResolver(config.wave_ranges).resolve(tables.observed_ids(), tables.mapping)
    classes = identity.classes()
    report.n_subject_ids = len(identity)
    report.n_subjects = len(classes)
    report.n_multiwave_subjects = sum(1 for members in classes.values() if len(members) > 1)

    assembled = assemble_analysis_table(
        windows.windows,
        identity,
        tables.demographics,
        start=study_start(tables.surveys, tables.daily),
        features=config.features,
    )
    report.incomplete_window = assembled.incomplete
    report.incomplete_by_feature = assembled.incomplete_by_feature
    report.missing_covariate = assembled.missing_covariate
    report.analysis_rows = len(assembled.table)

    report.log_summary()
    logger.success(f"Analysis table ready: {len(assembled.table)} rows")

    dropped_events = pd.concat([windows.insufficient, assembled.dropped], ignore_index=True)
    return PipelineOutput(
        table=assembled.table,
        report=report,
        identity=identity,
        daily=derived.records,
        windows=windows.windows,
        rejected_days=derived.rejected,
        rejected_surveys=surveys.rejected,
        dropped_events=dropped_events,
    )
