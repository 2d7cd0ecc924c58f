"""
Query profiler service tracking the database queries issued by each request.
"""
import contextlib
import math
import os
import time
import logging
import traceback
from contextlib import asynccontextmanager, contextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Iterator, List, Optional, TypeVar

from ..config import ProfilingSettings, get_settings
from ..metrics import (
    ACTIVE_PROFILES,
    HIGH_QUERY_COUNT_WARNINGS,
    N_PLUS_ONE_WARNINGS,
    QUERY_COUNT,
    QUERY_DURATION,
    QUERY_ERRORS,
    SLOW_QUERIES,
)
from ..models.query_profile import (
    ParamValue,
    PerformanceThresholds,
    QueryProfile,
    QueryRecord,
    QueryStatistics,
)
from .analyzer import analyze_profile, format_profile
from .heuristics import HeuristicFlag, HeuristicsEngine
from .normalizer import normalize_query, truncate_query
from .profile_store import ProfileStore
from .request_id import generate_request_id
from .statistics import compute_statistics

# Create logger
logger = logging.getLogger(__name__)

T = TypeVar("T")

StackTraceProvider = Callable[[], Optional[str]]

# Appended before normalization, so stored queries carry it as "[error]"
ERROR_MARKER = " [ERROR]"

# Request being served by the current thread/task
current_request_id: ContextVar[Optional[str]] = ContextVar("current_request_id", default=None)

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_CONTEXTLIB_FILE = os.path.abspath(contextlib.__file__)


def no_stack_trace() -> Optional[str]:
    return None


def _is_internal_frame(filename: str) -> bool:
    path = os.path.abspath(filename)
    return path.startswith(_PACKAGE_DIR + os.sep) or path == _CONTEXTLIB_FILE


def stack_trace_capturer(depth: int = 5) -> StackTraceProvider:
    """
    Build a provider returning the ``depth`` innermost application frames.

    Frames from this package (wrappers, decorators) and from contextlib are
    skipped so the trace ends at the code that issued the query.
    """

    def capture() -> Optional[str]:
        frames = [f for f in traceback.extract_stack() if not _is_internal_frame(f.filename)]
        return "".join(traceback.format_list(frames[-depth:]))

    return capture


def _to_param_value(value: Any) -> ParamValue:
    if value is None or isinstance(value, (bool, int, float, str, bytes)):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return str(value)


class QueryProfiler:
    """
    Service for tracking the queries issued while serving a request.

    This class provides methods to:
    1. Start and finish a profile per request
    2. Record and time individual queries
    3. Flag slow queries, N+1 patterns and high query counts
    4. Aggregate statistics over all active requests

    Usage:
        request_id = generate_request_id()
        query_profiler.start_profiling(request_id)

        rows = query_profiler.measure(
            request_id, "SELECT * FROM users WHERE id = $1", lambda: db.fetch(sql, user_id)
        )

        # Or as a context manager, using the request bound by the middleware
        async with query_profiler.profile_query("SELECT * FROM courses"):
            rows = await conn.fetch("SELECT * FROM courses")

        profile = query_profiler.finish_profiling(request_id)
    """

    def __init__(
        self,
        store: Optional[ProfileStore] = None,
        thresholds: Optional[PerformanceThresholds] = None,
        stack_trace_provider: Optional[StackTraceProvider] = None,
        enabled: bool = True,
        max_query_length: int = 1000,
        log_params: bool = False,
    ):
        self.store = store if store is not None else ProfileStore()
        self.heuristics = HeuristicsEngine(thresholds)
        self.stack_trace_provider = stack_trace_provider or no_stack_trace
        self.enabled = enabled
        self.max_query_length = max_query_length
        self.log_params = log_params

    @classmethod
    def from_settings(
        cls,
        settings: Optional[ProfilingSettings] = None,
        store: Optional[ProfileStore] = None,
    ) -> "QueryProfiler":
        """Build a profiler configured from ``ProfilingSettings``."""
        profiler = cls(store=store)
        profiler.initialize(settings or get_settings())
        return profiler

    def initialize(self, settings: ProfilingSettings) -> None:
        """
        Apply profiling settings to this profiler.

        Args:
            settings: Thresholds, stack trace capture and logging options
        """
        self.heuristics = HeuristicsEngine(settings.thresholds())
        self.enabled = settings.ENABLE_QUERY_PROFILING
        self.max_query_length = settings.MAX_QUERY_LENGTH
        self.log_params = settings.LOG_PARAMS
        if settings.capture_stacktrace:
            self.stack_trace_provider = stack_trace_capturer(settings.STACKTRACE_DEPTH)
        else:
            self.stack_trace_provider = no_stack_trace

        logger.info(
            f"QueryProfiler initialized: enabled={self.enabled}, "
            f"slow_query_ms={settings.SLOW_QUERY_MS}, n1_threshold={settings.N1_THRESHOLD}, "
            f"max_queries_per_request={settings.MAX_QUERIES_PER_REQUEST}"
        )

    @property
    def thresholds(self) -> PerformanceThresholds:
        return self.heuristics.thresholds

    def _resolve_request_id(self, request_id: Optional[str]) -> Optional[str]:
        if request_id is not None:
            return request_id
        return current_request_id.get()

    def _update_active_gauge(self) -> None:
        ACTIVE_PROFILES.set(len(self.store))

    # Request lifecycle

    def start_profiling(self, request_id: str) -> bool:
        """
        Start profiling a request. Starting an already active request is a no-op.

        Returns:
            bool: True if a new profile was created
        """
        if not self.enabled:
            return False
        try:
            created = self.store.start(request_id)
            self._update_active_gauge()
            return created
        except Exception as e:
            logger.error(f"Error starting profile for request {request_id}: {e}", exc_info=True)
            return False

    def record_query(
        self,
        request_id: str,
        query: str,
        duration: float,
        params: Optional[Iterable[Any]] = None,
    ) -> Optional[QueryRecord]:
        """
        Record an executed query, starting the request's profile if needed.

        Args:
            request_id: Request the query belongs to
            query: Raw query text, normalized before it is stored
            duration: Execution time in milliseconds
            params: Bind values, kept for display only

        Returns:
            The stored record, or None if profiling is disabled, failed, or the
            request already finished
        """
        if not self.enabled:
            return None
        try:
            normalized = normalize_query("" if query is None else str(query))
            duration_ms = max(0, int(round(duration)))
            values = [_to_param_value(p) for p in params] if params is not None else []
            record = self.store.record(
                request_id,
                normalized,
                duration_ms,
                values,
                stack_trace=self.stack_trace_provider(),
            )
            if record is None:
                logger.debug(f"Dropped query for finished request {request_id}: {normalized[:80]}")
                return None

            QUERY_COUNT.inc()
            QUERY_DURATION.observe(duration_ms / 1000)

            # Slow queries are reported at record time, everything else at finish
            if self.heuristics.is_slow(record):
                SLOW_QUERIES.inc()
                message = (
                    f"Slow query detected ({duration_ms}ms): request_id={request_id} "
                    f"query={truncate_query(normalized, self.max_query_length)}"
                )
                if self.log_params and values:
                    message += f" params={values!r}"
                logger.warning(message)

            return record
        except Exception as e:
            logger.error(f"Error recording query for request {request_id}: {e}", exc_info=True)
            return None

    def finish_profiling(self, request_id: str) -> Optional[QueryProfile]:
        """
        Finish profiling a request and return its analyzed profile.

        Returns:
            The profile, or None if the request is not being profiled
            (never started, already finished, or cleared)
        """
        try:
            profile = self.store.finish(request_id)
            if profile is None:
                return None
            self._update_active_gauge()

            profile.potential_n1 = self.heuristics.detect_n1_pattern(profile.queries)

            for flag in self.heuristics.evaluate(profile):
                if flag is HeuristicFlag.HIGH_QUERY_COUNT:
                    HIGH_QUERY_COUNT_WARNINGS.inc()
                    logger.warning(
                        f"High query count detected: {profile.query_count} queries "
                        f"in request {request_id}"
                    )
                elif flag is HeuristicFlag.POTENTIAL_N1:
                    N_PLUS_ONE_WARNINGS.inc()
                    repeated = self.heuristics.repeated_patterns(profile.queries)
                    logger.warning(
                        f"Potential N+1 query pattern detected in request {request_id}: "
                        + ", ".join(
                            f"{p.count}x {truncate_query(p.pattern, self.max_query_length)}"
                            for p in repeated
                        )
                    )

            return profile
        except Exception as e:
            logger.error(f"Error finishing profile for request {request_id}: {e}", exc_info=True)
            return None

    def clear_profiling_data(self) -> int:
        """Drop all active profiles (test isolation, process-wide reset)."""
        try:
            count = self.store.clear()
            self._update_active_gauge()
            logger.debug(f"Cleared {count} active profiles")
            return count
        except Exception as e:
            logger.error(f"Error clearing profiling data: {e}", exc_info=True)
            return 0

    def get_profile(self, request_id: Optional[str] = None) -> Optional[QueryProfile]:
        """Snapshot of an active profile, defaulting to the current request."""
        request_id = self._resolve_request_id(request_id)
        if request_id is None:
            return None
        return self.store.get(request_id)

    def get_active_profiles(self) -> List[QueryProfile]:
        return self.store.snapshot_all()

    def get_query_statistics(self) -> QueryStatistics:
        """Aggregate statistics over every active profile."""
        try:
            return compute_statistics(self.store.snapshot_all(), self.thresholds)
        except Exception as e:
            logger.error(f"Error computing query statistics: {e}", exc_info=True)
            return QueryStatistics()

    def analyze(self, profile: QueryProfile) -> List[str]:
        return analyze_profile(profile, self.thresholds)

    def format(self, profile: QueryProfile) -> str:
        return format_profile(profile, self.thresholds)

    def report(self, profile: QueryProfile) -> None:
        """Log a finished profile, in full when a finish-time heuristic fired."""
        if self.heuristics.evaluate(profile) or self.heuristics.slow_queries(profile.queries):
            logger.info(self.format(profile))
        else:
            logger.debug(
                f"Request {profile.request_id} issued {profile.query_count} queries "
                f"in {profile.total_duration}ms"
            )

    # Measurement

    def _record_measurement(
        self,
        request_id: str,
        description: Any,
        started: float,
        params: Optional[Iterable[Any]],
        error: Optional[BaseException] = None,
    ) -> None:
        # Runs inside the wrappers' exception handlers, so it must never raise
        try:
            # Round up so the recorded duration never undercuts the elapsed time
            duration_ms = math.ceil((time.perf_counter() - started) * 1000)
            text = "" if description is None else str(description)
            if error is not None:
                text += ERROR_MARKER
            self.record_query(request_id, text, duration_ms, params)
            if error is not None:
                QUERY_ERRORS.labels(exception_type=type(error).__name__).inc()
        except Exception as e:
            logger.error(f"Error recording measured query for request {request_id}: {e}", exc_info=True)

    def measure(
        self,
        request_id: Optional[str],
        description: str,
        operation: Callable[[], T],
        params: Optional[Iterable[Any]] = None,
    ) -> T:
        """
        Time a query-executing callable and record it.

        A failing operation is recorded with an error marker and its
        exception is re-raised unchanged.

        Args:
            request_id: Request to record under; None uses the current request
            description: Query text or description to record
            operation: Zero-argument callable executing the query
            params: Bind values, kept for display only
        """
        request_id = self._resolve_request_id(request_id)
        if request_id is None or not self.enabled:
            return operation()

        started = time.perf_counter()
        try:
            result = operation()
        except BaseException as e:
            self._record_measurement(request_id, description, started, params, error=e)
            raise
        self._record_measurement(request_id, description, started, params)
        return result

    async def measure_async(
        self,
        request_id: Optional[str],
        description: str,
        operation: Callable[[], Awaitable[T]],
        params: Optional[Iterable[Any]] = None,
    ) -> T:
        """Coroutine counterpart of :meth:`measure`; cancellation is recorded too."""
        request_id = self._resolve_request_id(request_id)
        if request_id is None or not self.enabled:
            return await operation()

        started = time.perf_counter()
        try:
            result = await operation()
        except BaseException as e:
            self._record_measurement(request_id, description, started, params, error=e)
            raise
        self._record_measurement(request_id, description, started, params)
        return result

    @contextmanager
    def track_query(
        self,
        description: str,
        request_id: Optional[str] = None,
        params: Optional[Iterable[Any]] = None,
    ) -> Iterator[None]:
        """
        Context manager for timing a query block.

        Usage:
            with query_profiler.track_query("SELECT * FROM orders WHERE id = $1", params=[order_id]):
                cursor.execute(sql, (order_id,))
        """
        request_id = self._resolve_request_id(request_id)
        if request_id is None or not self.enabled:
            yield
            return

        started = time.perf_counter()
        try:
            yield
        except BaseException as e:
            self._record_measurement(request_id, description, started, params, error=e)
            raise
        self._record_measurement(request_id, description, started, params)

    @asynccontextmanager
    async def profile_query(
        self,
        description: str,
        request_id: Optional[str] = None,
        params: Optional[Iterable[Any]] = None,
    ) -> AsyncIterator[None]:
        """
        Async context manager for timing a query block.

        Usage:
            async with query_profiler.profile_query("SELECT * FROM courses"):
                rows = await conn.fetch("SELECT * FROM courses")
        """
        request_id = self._resolve_request_id(request_id)
        if request_id is None or not self.enabled:
            yield
            return

        started = time.perf_counter()
        try:
            yield
        except BaseException as e:
            self._record_measurement(request_id, description, started, params, error=e)
            raise
        self._record_measurement(request_id, description, started, params)

    # Request binding

    @contextmanager
    def bind_request(self, request_id: str) -> Iterator[str]:
        """Make ``request_id`` the current request for wrappers called without one."""
        token = current_request_id.set(request_id)
        try:
            yield request_id
        finally:
            current_request_id.reset(token)

    @contextmanager
    def request_context(self, request_id: Optional[str] = None) -> Iterator[str]:
        """
        Profile a unit of work outside of HTTP, e.g. a background job.

        Usage:
            with query_profiler.request_context() as request_id:
                run_job()
        """
        request_id = request_id or generate_request_id()
        self.start_profiling(request_id)
        try:
            with self.bind_request(request_id):
                yield request_id
        finally:
            profile = self.finish_profiling(request_id)
            if profile is not None:
                self.report(profile)


# Create a singleton instance
query_profiler = QueryProfiler.from_settings()
