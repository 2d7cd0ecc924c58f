"""
Threshold based detection of slow queries, N+1 query storms and
requests that issue too many queries.
"""
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from ..models.query_profile import PatternSummary, PerformanceThresholds, QueryProfile, QueryRecord
from .normalizer import extract_query_pattern


class HeuristicFlag(str, Enum):
    """Findings that need the complete query list of a finished profile"""
    HIGH_QUERY_COUNT = "high_query_count"
    POTENTIAL_N1 = "potential_n1"


def count_patterns(queries: Iterable[QueryRecord]) -> Dict[str, PatternSummary]:
    """
    Group records by extracted query pattern.

    The returned mapping keeps the order in which each pattern was first seen.
    """
    patterns: Dict[str, PatternSummary] = {}
    for record in queries:
        pattern = extract_query_pattern(record.query)
        summary = patterns.get(pattern)
        if summary is None:
            summary = patterns[pattern] = PatternSummary(pattern=pattern)
        summary.count += 1
        summary.total_duration += record.duration
    return patterns


class HeuristicsEngine:
    """Evaluates queries and finished profiles against configured thresholds."""

    def __init__(self, thresholds: Optional[PerformanceThresholds] = None):
        self.thresholds = thresholds or PerformanceThresholds()

    def is_slow(self, query: Union[QueryRecord, int]) -> bool:
        duration = query.duration if isinstance(query, QueryRecord) else query
        return duration > self.thresholds.slow_query_ms

    def slow_queries(self, queries: Iterable[QueryRecord]) -> List[QueryRecord]:
        return [q for q in queries if self.is_slow(q)]

    def repeated_patterns(self, queries: Iterable[QueryRecord]) -> List[PatternSummary]:
        """Patterns repeated more often than the N+1 threshold allows."""
        return [
            summary
            for summary in count_patterns(queries).values()
            if summary.count > self.thresholds.n1_threshold
        ]

    def detect_n1_pattern(self, queries: Iterable[QueryRecord]) -> bool:
        """
        Detect the "1 list query + N detail queries" pattern.

        Many distinct queries never flag, only repetitions of the same
        structural pattern do.
        """
        return bool(self.repeated_patterns(queries))

    def exceeds_query_budget(self, profile: QueryProfile) -> bool:
        return profile.query_count > self.thresholds.max_queries_per_request

    def exceeds_duration_budget(self, profile: QueryProfile) -> bool:
        return profile.total_duration > self.thresholds.slow_total_duration_ms

    def evaluate(self, profile: QueryProfile) -> List[HeuristicFlag]:
        """
        Return the finish-time findings for a profile.

        Uses ``profile.potential_n1`` when it was already computed.
        """
        flags = []
        if self.exceeds_query_budget(profile):
            flags.append(HeuristicFlag.HIGH_QUERY_COUNT)
        potential_n1 = profile.potential_n1
        if potential_n1 is None:
            potential_n1 = self.detect_n1_pattern(profile.queries)
        if potential_n1:
            flags.append(HeuristicFlag.POTENTIAL_N1)
        return flags
