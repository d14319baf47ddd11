"""
Study configuration.

Structured defaults live in the dataclasses below; a YAML file
(configs/study.yaml) and command-line dotlist overrides are merged on top
with OmegaConf, then converted back to plain dataclasses.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from omegaconf import OmegaConf

MINUTES_PER_DAY = 1440

TRACKED_FEATURES = [
    "time_at_home",
    "away_time",
    "ratio_total",
    "ratio_home",
    "ratio_away",
]

HISTORY_SCOPES = ("subject", "wave")


@dataclass
class WaveRange:
    """Inclusive pseudonymous id range assigned by one wave."""

    wave: int
    first_id: int
    last_id: int

    def contains(self, subject_id: int) -> bool:
        return self.first_id <= subject_id <= self.last_id


@dataclass
class WaveFiles:
    """Per-wave export files, relative to DataConfig.root."""

    wave: int
    survey: str
    usage: str
    location: str


@dataclass
class DataConfig:
    root: str = "data/raw"
    waves: List[WaveFiles] = field(default_factory=list)
    mapping: str = "id_mapping.csv"
    demographics: str = "demographics.csv"
    date_format: str = "%Y-%m-%d"


@dataclass
class RegressionConfig:
    formula: str = (
        "severity ~ ratio_home_median + ratio_away_median + ratio_total_median"
        " + age + elapsed_years + (1 | canonical_id)"
    )
    method: str = "ordinal"  # 'ordinal' or 'linear_mixed'
    link: str = "logit"


@dataclass
class StudyConfig:
    window_days: int = 14
    minutes_per_day: int = MINUTES_PER_DAY
    # Where the earliest available date for the history gate comes from:
    # the subject's own records in that wave, or the whole wave.
    history_scope: str = "subject"
    features: List[str] = field(default_factory=lambda: list(TRACKED_FEATURES))
    wave_ranges: List[WaveRange] = field(
        default_factory=lambda: [
            WaveRange(wave=2, first_id=1, last_id=499),
            WaveRange(wave=3, first_id=500, last_id=799),
            WaveRange(wave=4, first_id=800, last_id=1199),
        ]
    )
    data: DataConfig = field(default_factory=DataConfig)
    regression: RegressionConfig = field(default_factory=RegressionConfig)
    output_dir: str = "outputs"


def validate_config(config: StudyConfig) -> StudyConfig:
    """Reject configurations the pipeline cannot honour."""
    if config.window_days < 1:
        raise ValueError(f"window_days must be >= 1, got {config.window_days}")

    if config.minutes_per_day != MINUTES_PER_DAY:
        raise ValueError(
            f"minutes_per_day is fixed at {MINUTES_PER_DAY}, got {config.minutes_per_day}"
        )

    if config.history_scope not in HISTORY_SCOPES:
        raise ValueError(
            f"history_scope must be one of {HISTORY_SCOPES}, got {config.history_scope!r}"
        )

    unknown = [f for f in config.features if f not in TRACKED_FEATURES]
    if unknown or not config.features:
        raise ValueError(f"Unknown or empty window features: {unknown}")

    ranges = sorted(config.wave_ranges, key=lambda r: r.first_id)
    for r in ranges:
        if r.first_id > r.last_id:
            raise ValueError(f"Wave {r.wave} range is empty: {r.first_id}..{r.last_id}")
    for prev, cur in zip(ranges, ranges[1:]):
        if cur.first_id <= prev.last_id:
            raise ValueError(f"Wave id ranges overlap: wave {prev.wave} and wave {cur.wave}")

    waves = [r.wave for r in config.wave_ranges]
    if len(set(waves)) != len(waves):
        raise ValueError(f"Duplicate wave in wave_ranges: {waves}")

    if config.regression.method not in ("ordinal", "linear_mixed"):
        raise ValueError(f"Unknown regression method: {config.regression.method!r}")

    return config


def load_config(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Sequence[str]] = None,
) -> StudyConfig:
    """
    Load the study configuration.

    Args:
        path: Optional YAML file merged over the structured defaults
        overrides: Optional dotlist overrides, e.g. ["window_days=7"]

    Returns:
        Validated StudyConfig
    """
    cfg = OmegaConf.structured(StudyConfig)
    if path is not None:
        cfg = OmegaConf.merge(cfg, OmegaConf.load(str(path)))
    if overrides:
        cfg = OmegaConf.merge(cfg, OmegaConf.from_dotlist(list(overrides)))
    return validate_config(OmegaConf.to_object(cfg))
