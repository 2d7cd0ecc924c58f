"""Tests for profile recommendations, report formatting and performance rating."""

from query_profiling.models.query_profile import (
    PerformanceStatus,
    PerformanceThresholds,
    QueryProfile,
    QueryRecord,
    QueryStatistics,
)
from query_profiling.services.analyzer import (
    analyze_profile,
    format_profile,
    get_performance_status,
    get_statistics_recommendations,
)


def _profile(records, potential_n1=False, request_id="req_1_a"):
    return QueryProfile(
        request_id=request_id,
        queries=records,
        query_count=len(records),
        total_duration=sum(r.duration for r in records),
        potential_n1=potential_n1,
    )


class TestAnalyzeProfile:
    """Tests for analyze_profile."""

    def test_high_query_count(self):
        profile = _profile([QueryRecord(query=f"select {i}", duration=1) for i in range(60)])
        recommendations = analyze_profile(profile)
        assert any("query count" in r.lower() for r in recommendations)
        assert any("(60)" in r for r in recommendations)

    def test_slow_total_duration(self):
        profile = _profile([QueryRecord(query=f"select {i}", duration=100) for i in range(11)])
        assert profile.total_duration == 1100
        recommendations = analyze_profile(profile)
        assert any("query time" in r.lower() for r in recommendations)
        assert any("1100ms" in r for r in recommendations)

    def test_potential_n1(self):
        profile = _profile([QueryRecord(query="select 1", duration=1)], potential_n1=True)
        assert any("N+1" in r for r in analyze_profile(profile))

    def test_slow_queries_counted(self):
        profile = _profile([
            QueryRecord(query="select 1", duration=150),
            QueryRecord(query="select 2", duration=250),
            QueryRecord(query="select 3", duration=5),
        ])
        recommendations = analyze_profile(profile)
        assert "2 slow queries detected. Consider adding indexes or optimizing query structure." in recommendations

    def test_clean_profile(self):
        profile = _profile([QueryRecord(query="select 1", duration=5)])
        assert analyze_profile(profile) == []

    def test_custom_thresholds(self):
        profile = _profile([QueryRecord(query="select 1", duration=5)] * 3)
        thresholds = PerformanceThresholds(max_queries_per_request=2, slow_query_ms=1)
        recommendations = analyze_profile(profile, thresholds)
        assert any("High query count (3)" in r for r in recommendations)
        assert any(r.startswith("3 slow queries") for r in recommendations)


class TestFormatProfile:
    """Tests for format_profile."""

    def test_contains_summary_and_patterns(self):
        records = [
            QueryRecord(query=f"select * from users where id = ${i}", duration=10)
            for i in range(1, 4)
        ] + [QueryRecord(query="select * from courses", duration=7)]
        text = format_profile(_profile(records, potential_n1=True))

        assert "Query Profile: req_1_a" in text
        assert "Total Queries: 4" in text
        assert "Total Duration: 37ms" in text
        assert "Potential N+1: YES" in text
        assert "Query Patterns:" in text
        assert "3x (30ms): select * from users where id = $x" in text
        assert "1x (7ms): select * from courses" in text
        assert "Recommendations:" in text

    def test_no_recommendations_section_when_clean(self):
        text = format_profile(_profile([QueryRecord(query="select 1", duration=1)]))
        assert "Potential N+1: NO" in text
        assert "Recommendations:" not in text

    def test_long_patterns_are_cut(self):
        long_query = "select " + ", ".join(f"column_{i}" for i in range(40)) + " from t"
        text = format_profile(_profile([QueryRecord(query=long_query, duration=1)]))
        assert long_query[:80] + "..." in text
        assert long_query not in text


class TestPerformanceStatus:
    """Tests for get_performance_status."""

    def test_excellent_without_cache(self):
        stats = QueryStatistics(total_queries=4, average_queries_per_request=2.0, slow_queries=0)
        assert get_performance_status(stats) is PerformanceStatus.EXCELLENT

    def test_cache_hit_rate_lowers_rating(self):
        stats = QueryStatistics(total_queries=4, average_queries_per_request=2.0, slow_queries=0)
        assert get_performance_status(stats, cache_hit_rate=70) is PerformanceStatus.GOOD
        assert get_performance_status(stats, cache_hit_rate=30) is PerformanceStatus.FAIR

    def test_fair(self):
        stats = QueryStatistics(total_queries=300, average_queries_per_request=30.0, slow_queries=30)
        assert get_performance_status(stats) is PerformanceStatus.FAIR

    def test_poor(self):
        stats = QueryStatistics(total_queries=120, average_queries_per_request=60.0, slow_queries=0)
        assert get_performance_status(stats) is PerformanceStatus.POOR

    def test_zero_stats(self):
        assert get_performance_status(QueryStatistics()) is PerformanceStatus.EXCELLENT


class TestStatisticsRecommendations:
    """Tests for get_statistics_recommendations."""

    def test_all_good(self):
        recommendations = get_statistics_recommendations(QueryStatistics())
        assert recommendations == ["Performance metrics look good. Continue monitoring for trends."]

    def test_high_average(self):
        stats = QueryStatistics(total_queries=120, average_queries_per_request=60.0)
        assert any("High average queries per request (60.0)" in r for r in get_statistics_recommendations(stats))

    def test_moderate_average(self):
        stats = QueryStatistics(total_queries=50, average_queries_per_request=25.0)
        assert any("N+1" in r for r in get_statistics_recommendations(stats))

    def test_slow_percentage(self):
        stats = QueryStatistics(total_queries=10, average_queries_per_request=5.0, slow_queries=3)
        recommendations = get_statistics_recommendations(stats)
        assert any(r.startswith("30.0% of queries are slow (>100ms)") for r in recommendations)

    def test_low_cache_hit_rate(self):
        recommendations = get_statistics_recommendations(QueryStatistics(), cache_hit_rate=40.0)
        assert any("Low cache hit rate (40.0%)" in r for r in recommendations)
