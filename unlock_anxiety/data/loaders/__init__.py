from .base import BaseStudyLoader, DatasetInfo
from .waves import WaveStudyLoader

__all__ = ["BaseStudyLoader", "DatasetInfo", "WaveStudyLoader"]
