"""
Base class for study loaders.

Provides a standardized interface for loading a wave-structured study
into the in-memory StudyTables bundle consumed by the pipeline.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import polars as pl

from ...config import StudyConfig
from ..tables import StudyTables


@dataclass
class DatasetInfo:
    """Metadata about the loaded study."""

    name: str
    waves: List[int]
    n_subject_ids: int
    n_survey_rows: int
    n_daily_rows: int
    time_range: Tuple[str, str]
    missing_rate: Dict[str, float]


class BaseStudyLoader(ABC):
    """
    Abstract base class for study loaders.

    Provides a standardized interface for loading:
    - Survey data (one row per subject-day-wave)
    - Daily phone usage joined with location (one row per subject-day-wave)
    - Identity mapping across waves
    - Demographics

    Subclasses must implement all abstract methods.
    """

    def __init__(self, data_dir: Path, config: Optional[StudyConfig] = None):
        """
        Initialize the loader.

        Args:
            data_dir: Path to the raw export directory
            config: Optional study configuration
        """
        self.data_dir = Path(data_dir)
        self.config = config or StudyConfig()
        self._validate_data_dir()

    def _validate_data_dir(self) -> None:
        """Verify the data directory exists."""
        if not self.data_dir.exists():
            raise FileNotFoundError(f"Data directory not found: {self.data_dir}")

    @abstractmethod
    def get_waves(self) -> List[int]:
        """Waves configured for this study, in increasing order."""

    @abstractmethod
    def load_surveys(self) -> pl.DataFrame:
        """
        Load survey rows of all waves.

        Returns:
            DataFrame with columns subject_id, wave, date, anxiety_score
        """

    @abstractmethod
    def load_daily(self) -> pl.DataFrame:
        """
        Load usage and location rows of all waves, joined per subject-day.

        Returns:
            DataFrame with columns subject_id, wave, date, total_unlock,
            home_unlock, time_at_home
        """

    @abstractmethod
    def load_mapping(self) -> pl.DataFrame:
        """Load the cross-wave identity mapping (wave2_id, wave3_id, wave4_id)."""

    @abstractmethod
    def load_demographics(self) -> pl.DataFrame:
        """Load demographics (subject_id, age)."""

    @abstractmethod
    def get_dataset_info(self) -> DatasetInfo:
        """Summary statistics of the loaded study."""

    def load_all(self) -> StudyTables:
        """
        Load all sources.

        Returns:
            StudyTables of pandas DataFrames ready for the pipeline
        """
        return StudyTables.from_frames(
            surveys=self.load_surveys().to_pandas(),
            daily=self.load_daily().to_pandas(),
            mapping=self.load_mapping().to_pandas(),
            demographics=self.load_demographics().to_pandas(),
        )
