"""Traffic classification: pattern matching and the description table."""

from .patterns import MatchType, PatternEntry, build_matcher, wildcard_to_regex
from .descriptions import DescriptionDatabase, DescriptionEntry, LookupResult

__all__ = [
    "MatchType",
    "PatternEntry",
    "build_matcher",
    "wildcard_to_regex",
    "DescriptionDatabase",
    "DescriptionEntry",
    "LookupResult",
]
