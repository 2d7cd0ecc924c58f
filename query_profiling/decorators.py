import functools
import inspect
import logging
from typing import Any, Callable, Iterable, Optional, TypeVar, cast

from .services.query_profiler import QueryProfiler, query_profiler

logger = logging.getLogger(__name__)

# Type variables for decorator functions
F = TypeVar('F', bound=Callable[..., Any])


def _extract_query(args: tuple, kwargs: dict, query_arg: str) -> Optional[str]:
    # Query is the first positional arg after self/client, or passed by keyword
    query = kwargs.get(query_arg)
    if query is None and len(args) > 1 and isinstance(args[1], str):
        query = args[1]
    if query is None:
        return None
    # Clause objects (e.g. SQLAlchemy text()) render their SQL through str()
    try:
        return str(query)
    except Exception as e:
        logger.debug(f"Could not render query argument {type(query).__name__}: {e}")
        return None


def _extract_params(args: tuple, kwargs: dict, params_arg: str) -> Optional[Iterable[Any]]:
    params = kwargs.get(params_arg)
    if params is None and len(args) > 2:
        params = args[2]
    if isinstance(params, dict):
        return list(params.values())
    if isinstance(params, (list, tuple)):
        return params
    return None


def profile_db_query(
    description: Optional[str] = None,
    query_arg: str = "query",
    params_arg: str = "params",
    profiler: Optional[QueryProfiler] = None,
) -> Callable[[F], F]:
    """
    Decorator to profile a query-executing function under the current request.

    The recorded description is, in order of preference, the ``description``
    argument, the query string passed to the function, or the function's
    qualified name. Works for both plain and async functions.

    Usage:
    ```python
    @profile_db_query()
    async def fetch(conn, query, params=None):
        return await conn.fetch(query, *(params or []))

    @profile_db_query("load course reviews")
    def load_reviews(cursor, course_id):
        cursor.execute("SELECT * FROM reviews WHERE course_id = %s", (course_id,))
        return cursor.fetchall()
    ```
    """

    def decorator(func: F) -> F:
        def resolve(args: tuple, kwargs: dict):
            text = description or _extract_query(args, kwargs, query_arg) or func.__qualname__
            return text, _extract_params(args, kwargs, params_arg)

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                active = profiler or query_profiler
                text, params = resolve(args, kwargs)
                async with active.profile_query(text, params=params):
                    return await func(*args, **kwargs)

            return cast(F, async_wrapper)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            active = profiler or query_profiler
            text, params = resolve(args, kwargs)
            with active.track_query(text, params=params):
                return func(*args, **kwargs)

        return cast(F, wrapper)

    return decorator


def apply_profiling_to_class(cls, methods: Iterable[str], **decorator_kwargs) -> bool:
    """
    Apply ``profile_db_query`` to methods of a database client class.

    Args:
        cls: Class to patch in place
        methods: Names of the query-executing methods
        decorator_kwargs: Passed through to ``profile_db_query``

    Returns:
        bool: True if at least one method was patched
    """
    patched = False
    for method_name in methods:
        method = getattr(cls, method_name, None)
        if method is None or not callable(method):
            logger.debug(f"{cls.__name__} has no method {method_name}, skipping")
            continue
        if getattr(method, "__query_profiled__", False):
            continue
        wrapped = profile_db_query(**decorator_kwargs)(method)
        wrapped.__query_profiled__ = True
        setattr(cls, method_name, wrapped)
        patched = True
    if patched:
        logger.info(f"Applied query profiling to {cls.__name__}")
    return patched
