"""
Error taxonomy.

Exceptions are raised for conditions that must stop the pipeline. Routine,
row-level data problems are not raised: they are tagged with a DropReason,
logged and counted in the PipelineReport.
"""

from enum import Enum
from typing import Iterable, Tuple


class UnlockAnxietyError(Exception):
    """Base class for pipeline errors."""


class SchemaError(UnlockAnxietyError):
    """A source table is missing one or more declared columns."""

    def __init__(self, source: str, missing: Iterable[str]):
        self.source = source
        self.missing = sorted(missing)
        super().__init__(f"{source}: missing required columns {self.missing}")


class InvariantViolation(UnlockAnxietyError):
    """A derived quantity broke an invariant the derivation guarantees."""


class IdentityContradiction(UnlockAnxietyError):
    """The identity mapping links ids that resolution already placed apart."""

    def __init__(self, ids: Tuple[int, ...], detail: str):
        self.ids = tuple(ids)
        super().__init__(f"Contradictory identity mapping for ids {self.ids}: {detail}")


class DropReason(str, Enum):
    DATA_CORRUPTION = "data_corruption"
    INSUFFICIENT_HISTORY = "insufficient_history"
    INCOMPLETE_WINDOW = "incomplete_window"
    MISSING_COVARIATE = "missing_covariate"
    MISSING_OUTCOME = "missing_outcome"
