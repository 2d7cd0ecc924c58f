from .query_profile import (
    ParamValue,
    PatternSummary,
    PerformanceStatus,
    PerformanceThresholds,
    QueryProfile,
    QueryRecord,
    QueryStatistics,
)

__all__ = [
    "ParamValue",
    "PatternSummary",
    "PerformanceStatus",
    "PerformanceThresholds",
    "QueryProfile",
    "QueryRecord",
    "QueryStatistics",
]
