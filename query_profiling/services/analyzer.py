"""
Human readable recommendations and reports for query profiles and
cross-request statistics.
"""
from typing import List, Optional

from ..models.query_profile import (
    PerformanceStatus,
    PerformanceThresholds,
    QueryProfile,
    QueryStatistics,
)
from .heuristics import HeuristicsEngine, count_patterns
from .statistics import slow_query_percentage

PATTERN_DISPLAY_LENGTH = 80


def analyze_profile(
    profile: QueryProfile,
    thresholds: Optional[PerformanceThresholds] = None,
) -> List[str]:
    """
    Generate recommendations for a finished profile.

    Args:
        profile: The profile to analyze
        thresholds: Thresholds to evaluate against (defaults when omitted)

    Returns:
        List[str]: Recommendations, empty when nothing stands out
    """
    heuristics = HeuristicsEngine(thresholds)
    recommendations: List[str] = []

    if heuristics.exceeds_query_budget(profile):
        recommendations.append(
            f"High query count ({profile.query_count}). Consider using JOINs to reduce queries."
        )

    if heuristics.exceeds_duration_budget(profile):
        recommendations.append(
            f"Total query time is {profile.total_duration}ms. "
            "Consider adding caching or optimizing queries."
        )

    if profile.potential_n1:
        recommendations.append(
            "Potential N+1 query pattern detected. "
            "Review query logs and add JOINs to fetch related data."
        )

    slow_count = len(heuristics.slow_queries(profile.queries))
    if slow_count > 0:
        recommendations.append(
            f"{slow_count} slow queries detected. "
            "Consider adding indexes or optimizing query structure."
        )

    return recommendations


def format_profile(
    profile: QueryProfile,
    thresholds: Optional[PerformanceThresholds] = None,
) -> str:
    """Render a profile as a multi-line block for logs and diagnostics."""
    lines = [
        f"Query Profile: {profile.request_id}",
        f"Total Queries: {profile.query_count}",
        f"Total Duration: {profile.total_duration}ms",
        f"Potential N+1: {'YES' if profile.potential_n1 else 'NO'}",
        "",
        "Query Patterns:",
    ]

    for summary in count_patterns(profile.queries).values():
        pattern = summary.pattern
        if len(pattern) > PATTERN_DISPLAY_LENGTH:
            pattern = pattern[:PATTERN_DISPLAY_LENGTH] + "..."
        lines.append(f"  {summary.count}x ({summary.total_duration}ms): {pattern}")

    recommendations = analyze_profile(profile, thresholds)
    if recommendations:
        lines.append("")
        lines.append("Recommendations:")
        lines.extend(f"  - {rec}" for rec in recommendations)

    return "\n".join(lines)


def get_performance_status(
    stats: QueryStatistics,
    thresholds: Optional[PerformanceThresholds] = None,
    cache_hit_rate: Optional[float] = None,
) -> PerformanceStatus:
    """
    Rate overall query performance.

    Cache criteria only apply when a cache hit rate (percent) is supplied.
    """
    thresholds = thresholds or PerformanceThresholds()
    average = stats.average_queries_per_request
    slow_pct = slow_query_percentage(stats)

    def cache_above(rate: float) -> bool:
        return cache_hit_rate is None or cache_hit_rate > rate

    if average < 5 and slow_pct < 5 and cache_above(80):
        return PerformanceStatus.EXCELLENT
    if average < 10 and slow_pct < 10 and cache_above(60):
        return PerformanceStatus.GOOD
    if average < thresholds.max_queries_per_request and slow_pct < 20:
        return PerformanceStatus.FAIR
    return PerformanceStatus.POOR


def get_statistics_recommendations(
    stats: QueryStatistics,
    thresholds: Optional[PerformanceThresholds] = None,
    cache_hit_rate: Optional[float] = None,
) -> List[str]:
    """Generate recommendations from cross-request statistics."""
    thresholds = thresholds or PerformanceThresholds()
    recommendations: List[str] = []
    average = stats.average_queries_per_request

    if average > thresholds.max_queries_per_request:
        recommendations.append(
            f"High average queries per request ({average:.1f}). "
            "Consider using JOINs to reduce query count."
        )
    elif average > 20:
        recommendations.append(
            f"Moderate query count per request ({average:.1f}). "
            "Review for potential N+1 patterns."
        )

    slow_pct = slow_query_percentage(stats)
    if slow_pct > 20:
        recommendations.append(
            f"{slow_pct:.1f}% of queries are slow (>{thresholds.slow_query_ms}ms). "
            "Add indexes or optimize query structure."
        )
    elif slow_pct > 10:
        recommendations.append(
            f"{slow_pct:.1f}% of queries are slow. "
            "Consider adding indexes for frequently accessed columns."
        )

    if cache_hit_rate is not None:
        if cache_hit_rate < 50:
            recommendations.append(
                f"Low cache hit rate ({cache_hit_rate:.1f}%). "
                "Increase TTL or review cache invalidation strategy."
            )
        elif cache_hit_rate < 70:
            recommendations.append(
                f"Moderate cache hit rate ({cache_hit_rate:.1f}%). "
                "Consider extending TTL for stable data."
            )

    if not recommendations:
        recommendations.append("Performance metrics look good. Continue monitoring for trends.")

    return recommendations
