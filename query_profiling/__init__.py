"""
Query profiling and N+1 detection.

This package records the database queries issued while serving each
request, flags slow queries and repeated-pattern (N+1) query storms, and
reports aggregate performance diagnostics.
"""

from .__version__ import __version__
from .config import ProfilingSettings, get_settings
from .models.query_profile import (
    PerformanceStatus,
    PerformanceThresholds,
    QueryProfile,
    QueryRecord,
    QueryStatistics,
)
from .services.analyzer import (
    analyze_profile,
    format_profile,
    get_performance_status,
    get_statistics_recommendations,
)
from .services.heuristics import HeuristicFlag, HeuristicsEngine
from .services.normalizer import extract_query_pattern, normalize_query
from .services.profile_store import ProfileStore
from .services.query_profiler import ERROR_MARKER, QueryProfiler, current_request_id, query_profiler
from .services.request_id import generate_request_id
from .services.statistics import compute_statistics
from .decorators import profile_db_query, apply_profiling_to_class
from .middleware import QueryProfilingMiddleware
from .module import ProfilingModule

# For convenience, expose context managers
profile_query = query_profiler.profile_query
track_query = query_profiler.track_query

# Export public API
__all__ = [
    "__version__",
    "ERROR_MARKER",
    "HeuristicFlag",
    "HeuristicsEngine",
    "PerformanceStatus",
    "PerformanceThresholds",
    "ProfileStore",
    "ProfilingModule",
    "ProfilingSettings",
    "QueryProfile",
    "QueryProfiler",
    "QueryProfilingMiddleware",
    "QueryRecord",
    "QueryStatistics",
    "analyze_profile",
    "apply_profiling_to_class",
    "compute_statistics",
    "current_request_id",
    "extract_query_pattern",
    "format_profile",
    "generate_request_id",
    "get_performance_status",
    "get_settings",
    "get_statistics_recommendations",
    "normalize_query",
    "profile_db_query",
    "profile_query",
    "query_profiler",
    "track_query",
]
