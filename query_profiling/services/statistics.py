"""
Cross-request rollup of the profiles that are currently active.
"""
from typing import Iterable, Optional

from ..models.query_profile import PerformanceThresholds, QueryProfile, QueryStatistics
from .heuristics import HeuristicsEngine


def compute_statistics(
    profiles: Iterable[QueryProfile],
    thresholds: Optional[PerformanceThresholds] = None,
) -> QueryStatistics:
    """
    Compute totals, the average query count and the slow query count.

    Finished profiles are not part of the input, so this is a
    point-in-time view. With no profiles every field is zero.
    """
    heuristics = HeuristicsEngine(thresholds)
    request_count = 0
    total_queries = 0
    slow_queries = 0

    for profile in profiles:
        request_count += 1
        total_queries += len(profile.queries)
        slow_queries += len(heuristics.slow_queries(profile.queries))

    return QueryStatistics(
        total_queries=total_queries,
        average_queries_per_request=total_queries / request_count if request_count else 0.0,
        slow_queries=slow_queries,
        active_requests=request_count,
    )


def slow_query_percentage(stats: QueryStatistics) -> float:
    if stats.total_queries == 0:
        return 0.0
    return stats.slow_queries / stats.total_queries * 100
