"""Pytest configuration and shared fixtures."""

import pytest

from query_profiling.config import ProfilingSettings
from query_profiling.models.query_profile import PerformanceThresholds
from query_profiling.services.profile_store import ProfileStore
from query_profiling.services.query_profiler import QueryProfiler, query_profiler


@pytest.fixture
def thresholds():
    return PerformanceThresholds()


@pytest.fixture
def store():
    return ProfileStore()


@pytest.fixture
def profiler(store, thresholds):
    """Isolated profiler with default thresholds and no stack capture."""
    return QueryProfiler(store=store, thresholds=thresholds)


@pytest.fixture
def settings():
    return ProfilingSettings(ENVIRONMENT="test", INCLUDE_STACKTRACE=False)


@pytest.fixture(autouse=True)
def reset_default_profiler():
    """Keep the module-level profiler clean between tests."""
    query_profiler.clear_profiling_data()
    yield
    query_profiler.clear_profiling_data()
