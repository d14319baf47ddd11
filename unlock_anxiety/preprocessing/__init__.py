"""
Preprocessing of survey events and cross-wave identities.
"""

from .anxiety import bin_severity, build_survey_events
from .identity import IdentityMap, IdentityResolver

__all__ = ["bin_severity", "build_survey_events", "IdentityMap", "IdentityResolver"]
