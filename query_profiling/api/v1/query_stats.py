import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException

from ...config import ProfilingSettings, get_settings
from ...services.analyzer import get_performance_status, get_statistics_recommendations
from ...services.heuristics import count_patterns
from ...services.query_profiler import QueryProfiler, query_profiler
from ...services.statistics import slow_query_percentage

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["query-profiling"],
    responses={404: {"description": "Not found"}},
)


def get_profiling_settings() -> ProfilingSettings:
    return get_settings()


def get_query_profiler() -> QueryProfiler:
    return query_profiler


def get_cache_hit_rate() -> Optional[float]:
    """
    Cache hit rate (percent) taken into account by the performance rating.

    Returns None by default; applications with a cache override this
    dependency to report their hit rate.
    """
    return None


# Helper function to check if query profiling is enabled
def check_profiling_enabled(settings: ProfilingSettings = Depends(get_profiling_settings)):
    """Check if query profiling is enabled in settings"""
    if not settings.ENABLE_QUERY_PROFILING:
        raise HTTPException(
            status_code=404,
            detail="Query profiling is not enabled. Enable it in settings."
        )
    return True


@router.get("", response_model=Dict[str, Any])
async def get_query_stats(
    _: bool = Depends(check_profiling_enabled),
    profiler: QueryProfiler = Depends(get_query_profiler),
    cache_hit_rate: Optional[float] = Depends(get_cache_hit_rate),
):
    """
    Get query performance statistics over all requests currently being profiled.

    Returns totals, averages, slow query counts, the configured thresholds,
    an overall performance rating and recommendations.
    """
    stats = profiler.get_query_statistics()
    thresholds = profiler.thresholds

    response: Dict[str, Any] = {
        "success": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "query": {
            "totalQueries": stats.total_queries,
            "averageQueriesPerRequest": round(stats.average_queries_per_request, 2),
            "slowQueries": stats.slow_queries,
            "activeRequests": stats.active_requests,
            "slowQueryThresholdMs": thresholds.slow_query_ms,
            "n1Threshold": thresholds.n1_threshold,
            "maxQueriesPerRequest": thresholds.max_queries_per_request,
            "slowQueryPercentage": round(slow_query_percentage(stats), 2),
        },
        "cache": {"hitRate": round(cache_hit_rate, 2)} if cache_hit_rate is not None else None,
        "performance": {
            "status": get_performance_status(stats, thresholds, cache_hit_rate).value,
            "recommendations": get_statistics_recommendations(stats, thresholds, cache_hit_rate),
        },
    }

    logger.info(
        f"Query stats retrieved: total_queries={stats.total_queries}, "
        f"slow_queries={stats.slow_queries}"
    )
    return response


@router.get("/active", response_model=List[Dict[str, Any]])
async def get_active_profiles(
    _: bool = Depends(check_profiling_enabled),
    profiler: QueryProfiler = Depends(get_query_profiler),
):
    """
    List the requests currently being profiled.

    Pattern counts are a preview; the N+1 flag is only decided when a
    request finishes.
    """
    return [
        {
            "requestId": profile.request_id,
            "queryCount": profile.query_count,
            "totalDuration": profile.total_duration,
            "startTime": profile.start_time.isoformat(),
            "patterns": [
                summary.model_dump(by_alias=True)
                for summary in count_patterns(profile.queries).values()
            ],
            "recommendations": profiler.analyze(profile),
        }
        for profile in profiler.get_active_profiles()
    ]


@router.get("/active/{request_id}", response_model=Dict[str, Any])
async def get_active_profile_report(
    request_id: str,
    _: bool = Depends(check_profiling_enabled),
    profiler: QueryProfiler = Depends(get_query_profiler),
):
    """Get the formatted report for one request that is still being profiled."""
    profile = profiler.get_profile(request_id)
    if profile is None:
        raise HTTPException(status_code=404, detail=f"No active profile for request {request_id}")
    return {
        "requestId": request_id,
        "report": profiler.format(profile),
        "recommendations": profiler.analyze(profile),
    }


@router.post("/reset")
async def reset_profiling_data(
    _: bool = Depends(check_profiling_enabled),
    profiler: QueryProfiler = Depends(get_query_profiler),
):
    """Drop every active profile."""
    cleared = profiler.clear_profiling_data()
    return {"status": "success", "message": f"Cleared {cleared} active profiles"}
