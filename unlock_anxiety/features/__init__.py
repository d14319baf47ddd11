from .usage_ratios import DerivationResult, derive_usage_ratios
from .windows import WindowAggregator, WindowResult
