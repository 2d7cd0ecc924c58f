from .query_profiling_middleware import QueryProfilingMiddleware

__all__ = ["QueryProfilingMiddleware"]
