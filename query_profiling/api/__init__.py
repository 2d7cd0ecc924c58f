from typing import Optional

from fastapi import APIRouter

from ..config import ProfilingSettings, get_settings


def create_router(settings: Optional[ProfilingSettings] = None) -> APIRouter:
    """Build the profiling router for the enabled features."""
    settings = settings or get_settings()
    router = APIRouter()

    if settings.ENABLE_PROMETHEUS:
        from .metrics import router as metrics_router
        router.include_router(
            metrics_router,
            prefix=settings.METRICS_ENDPOINT,
            tags=settings.METRICS_ROUTE_TAGS,
        )

    if settings.ENABLE_QUERY_PROFILING:
        from .v1.query_stats import router as query_stats_router
        router.include_router(query_stats_router, prefix=settings.QUERY_STATS_ENDPOINT)

    return router


__all__ = ["create_router"]
