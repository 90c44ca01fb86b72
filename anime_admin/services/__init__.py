"""Services for anime-admin."""

from .parser import Release, parse_filename
from .quality import Quality, classify
from .scoring import Decision, DecisionReason, QualityProfile, ReleaseScorer
from .matcher import LibraryMatcher

__all__ = [
    "Release", "parse_filename", "Quality", "classify",
    "Decision", "DecisionReason", "QualityProfile", "ReleaseScorer", "LibraryMatcher",
]
