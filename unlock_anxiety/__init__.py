"""
Phone unlock patterns and anxiety in a multi-wave sensing study.

Builds an analysis table of windowed, location-conditioned phone usage
features per survey event, with cross-wave subject identities, and fits
an ordinal model of anxiety severity.
"""

from .config import StudyConfig, load_config
from .pipeline import PipelineOutput, run_pipeline

__version__ = "0.1.0"

__all__ = ["StudyConfig", "load_config", "PipelineOutput", "run_pipeline"]
