from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.query_profile import PerformanceThresholds


class ProfilingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PROFILING_", extra="ignore")

    # Feature flags
    ENABLE_QUERY_PROFILING: bool = True
    ENABLE_PROMETHEUS: bool = True

    # Heuristic thresholds
    SLOW_QUERY_MS: int = Field(default=100, ge=0)  # Queries slower than this are flagged
    N1_THRESHOLD: int = Field(default=10, ge=0)  # More repeats of one pattern than this suggests N+1
    MAX_QUERIES_PER_REQUEST: int = Field(default=50, ge=0)
    SLOW_TOTAL_DURATION_MS: int = Field(default=1000, ge=0)

    # Query recording settings
    ENVIRONMENT: str = "production"
    INCLUDE_STACKTRACE: Optional[bool] = None  # None: capture only outside production
    STACKTRACE_DEPTH: int = Field(default=5, ge=1)
    MAX_QUERY_LENGTH: int = Field(default=1000, ge=1)  # Truncate long queries in logs
    LOG_PARAMS: bool = False  # Don't log parameters by default (may contain sensitive data)

    # Request boundary settings
    REQUEST_ID_HEADER: str = "X-Request-ID"
    ADD_PROFILING_HEADERS: bool = False
    SKIP_PATHS: List[str] = [
        "/static/",
        "/favicon.ico",
        "/metrics",
        "/_health",
        "/docs",
        "/redoc",
        "/openapi.json",
    ]

    # Endpoint settings
    METRICS_ENDPOINT: str = "/metrics"
    METRICS_ROUTE_TAGS: List[str] = ["monitoring"]
    QUERY_STATS_ENDPOINT: str = "/query-stats"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() in ("production", "prod")

    @property
    def capture_stacktrace(self) -> bool:
        if self.INCLUDE_STACKTRACE is not None:
            return self.INCLUDE_STACKTRACE
        return not self.is_production

    def thresholds(self) -> PerformanceThresholds:
        return PerformanceThresholds(
            slow_query_ms=self.SLOW_QUERY_MS,
            n1_threshold=self.N1_THRESHOLD,
            max_queries_per_request=self.MAX_QUERIES_PER_REQUEST,
            slow_total_duration_ms=self.SLOW_TOTAL_DURATION_MS,
        )


@lru_cache()
def get_settings() -> ProfilingSettings:
    """Return the cached profiling settings loaded from the environment."""
    return ProfilingSettings()
