from prometheus_client import Counter, Gauge, Histogram

# Prometheus metrics
QUERY_COUNT = Counter(
    "db_query_count_total",
    "Total number of profiled database queries.",
)
QUERY_DURATION = Histogram(
    "db_query_duration_seconds",
    "Histogram of profiled query execution time (in seconds)",
    buckets=[0.001, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
SLOW_QUERIES = Counter(
    "db_slow_queries_total",
    "Total number of queries slower than the slow query threshold.",
)
QUERY_ERRORS = Counter(
    "db_query_errors_total",
    "Total count of profiled queries that raised by exception type",
    ["exception_type"],
)
N_PLUS_ONE_WARNINGS = Counter(
    "db_n_plus_one_warnings_total",
    "Total number of requests flagged with a potential N+1 query pattern.",
)
HIGH_QUERY_COUNT_WARNINGS = Counter(
    "db_high_query_count_warnings_total",
    "Total number of requests that exceeded the per-request query budget.",
)
ACTIVE_PROFILES = Gauge(
    "db_profiles_active",
    "Gauge of requests currently being profiled",
)
