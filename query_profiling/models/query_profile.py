from enum import Enum
from datetime import datetime, timezone
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Bind values are kept for display only and never interpreted
ParamValue = Union[None, bool, int, float, str, bytes]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PerformanceStatus(str, Enum):
    """Overall health rating reported by the diagnostic endpoint"""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class PerformanceThresholds(BaseModel):
    """Thresholds driving the slow query, N+1 and query count heuristics"""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    slow_query_ms: int = Field(100, ge=0, description="A query slower than this is slow")
    n1_threshold: int = Field(10, ge=0, description="More repeats of one pattern than this flags N+1")
    max_queries_per_request: int = Field(50, ge=0, description="Query count that triggers a warning")
    slow_total_duration_ms: int = Field(1000, ge=0, description="Total query time that triggers a warning")


class QueryRecord(BaseModel):
    """A single executed query, captured once and never modified"""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    query: str = Field(..., description="Normalized query text")
    duration: int = Field(..., ge=0, description="Elapsed time in milliseconds")
    params: List[ParamValue] = Field(default_factory=list, description="Bind values, display only")
    timestamp: datetime = Field(default_factory=utcnow, description="When the query was captured")
    stack_trace: Optional[str] = Field(None, description="Call site, captured outside production")


class QueryProfile(BaseModel):
    """All queries issued while serving one logical request"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    request_id: str = Field(..., description="Request the queries belong to")
    queries: List[QueryRecord] = Field(default_factory=list, description="Queries in execution order")
    query_count: int = Field(0, ge=0)
    total_duration: int = Field(0, ge=0, description="Sum of query durations in milliseconds")
    potential_n1: Optional[bool] = Field(None, description="Computed when profiling finishes")
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None


class PatternSummary(BaseModel):
    """Occurrences of one extracted query pattern within a profile"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    pattern: str
    count: int = 0
    total_duration: int = 0


class QueryStatistics(BaseModel):
    """Point-in-time rollup over every active profile"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_queries: int = 0
    average_queries_per_request: float = 0.0
    slow_queries: int = 0
    active_requests: int = 0
