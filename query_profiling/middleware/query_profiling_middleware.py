import logging
import re
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from ..config import ProfilingSettings, get_settings
from ..models.query_profile import QueryProfile
from ..services.query_profiler import QueryProfiler, current_request_id, query_profiler
from ..services.request_id import generate_request_id

logger = logging.getLogger(__name__)

_INCOMING_REQUEST_ID_RE = re.compile(r"^req_\d+_[a-z0-9]+$")


class QueryProfilingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for profiling database queries during HTTP requests.

    This middleware:
    1. Generates a request ID (or reuses a well-formed incoming one)
    2. Starts a profile and binds the request ID for query wrappers
    3. Finishes the profile once the response is produced
    4. Logs the profile report when a heuristic fired
    5. Adds profiling summary information to response headers (optional)

    A failure inside the profiler never aborts the request.
    """

    def __init__(
        self,
        app: ASGIApp,
        profiler: Optional[QueryProfiler] = None,
        settings: Optional[ProfilingSettings] = None,
    ):
        """
        Initialize the query profiling middleware.

        Args:
            app: The wrapped ASGI application
            profiler: Profiler to record into (defaults to the module singleton)
            settings: Profiling settings (defaults to the cached settings)
        """
        super().__init__(app)
        self.profiler = profiler or query_profiler
        self.settings = settings or get_settings()

        logger.info("QueryProfilingMiddleware initialized")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self.settings.ENABLE_QUERY_PROFILING or self._should_skip_profiling(request):
            return await call_next(request)

        request_id = self._resolve_request_id(request)
        request.state.request_id = request_id
        self.profiler.start_profiling(request_id)

        token = current_request_id.set(request_id)
        profile: Optional[QueryProfile] = None
        try:
            response = await call_next(request)
        finally:
            current_request_id.reset(token)
            profile = self._finish(request_id)

        if self.settings.ADD_PROFILING_HEADERS:
            self._add_profiling_headers(response, request_id, profile)

        return response

    def _should_skip_profiling(self, request: Request) -> bool:
        """Skip profiling for static files, metrics and profiling endpoints, docs, etc."""
        path = request.url.path
        skip_paths = [
            *self.settings.SKIP_PATHS,
            self.settings.METRICS_ENDPOINT,
            self.settings.QUERY_STATS_ENDPOINT,
        ]
        return any(path.startswith(p) for p in skip_paths if p)

    def _resolve_request_id(self, request: Request) -> str:
        incoming = request.headers.get(self.settings.REQUEST_ID_HEADER)
        if incoming and _INCOMING_REQUEST_ID_RE.match(incoming):
            return incoming
        return generate_request_id()

    def _finish(self, request_id: str) -> Optional[QueryProfile]:
        profile = self.profiler.finish_profiling(request_id)
        if profile is None:
            return None
        try:
            self.profiler.report(profile)
        except Exception as e:
            logger.error(f"Error reporting profile for request {request_id}: {e}", exc_info=True)
        return profile

    def _add_profiling_headers(
        self,
        response: Response,
        request_id: str,
        profile: Optional[QueryProfile],
    ) -> None:
        response.headers[self.settings.REQUEST_ID_HEADER] = request_id
        response.headers["X-Profiling-DB-Queries"] = str(profile.query_count if profile else 0)
        response.headers["X-Profiling-DB-Time-Ms"] = str(profile.total_duration if profile else 0)
        if profile is not None and profile.potential_n1:
            response.headers["X-Profiling-Potential-N1"] = "true"
