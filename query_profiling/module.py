import logging
from typing import Optional

from fastapi import FastAPI

from .__version__ import __version__
from .api import create_router
from .config import ProfilingSettings, get_settings
from .middleware import QueryProfilingMiddleware
from .services.query_profiler import QueryProfiler, query_profiler

logger = logging.getLogger(__name__)


class ProfilingModule:
    """
    Wires query profiling into a FastAPI application.

    Usage:
        profiling = ProfilingModule()

        @asynccontextmanager
        async def lifespan(app):
            yield
            await profiling.shutdown()

        app = FastAPI(lifespan=lifespan)
        profiling.register(app)
    """

    version = __version__

    def __init__(
        self,
        settings: Optional[ProfilingSettings] = None,
        profiler: Optional[QueryProfiler] = None,
    ):
        self.settings = settings or get_settings()
        self.profiler = profiler or query_profiler

    def register(self, app: FastAPI) -> None:
        """Register middleware and routes on the application"""
        logger.info("Initializing profiling module")

        self.profiler.initialize(self.settings)

        if self.settings.ENABLE_QUERY_PROFILING:
            app.add_middleware(
                QueryProfilingMiddleware,
                profiler=self.profiler,
                settings=self.settings,
            )
            logger.info(f"Added middleware: {QueryProfilingMiddleware.__name__}")

        app.include_router(create_router(self.settings))

        if self.settings.ENABLE_QUERY_PROFILING:
            # Route dependencies default to the singleton profiler and cached settings
            from .api.v1.query_stats import get_profiling_settings, get_query_profiler
            app.dependency_overrides[get_query_profiler] = lambda: self.profiler
            app.dependency_overrides[get_profiling_settings] = lambda: self.settings

        logger.info("Profiling module initialized")

    async def shutdown(self) -> None:
        """Clean up resources on application shutdown"""
        logger.info("Shutting down profiling module")

        cleared = self.profiler.clear_profiling_data()
        if cleared:
            logger.warning(f"Discarded {cleared} unfinished query profiles on shutdown")

        logger.info("Profiling module shutdown complete")
