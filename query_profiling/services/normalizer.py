"""
Lossy canonicalization of query text so that structurally identical
queries compare equal.
"""
import re

_WHITESPACE_RE = re.compile(r"\s+")
_PLACEHOLDER_RE = re.compile(r"\$\d+")

PLACEHOLDER_WILDCARD = "$x"


def normalize_query(query: str) -> str:
    """
    Collapse whitespace runs, trim and lowercase a query.

    Anything appended to the query before this step (such as an error
    marker) is lowercased as well.
    """
    if not query:
        return ""
    return _WHITESPACE_RE.sub(" ", query).strip().lower()


def extract_query_pattern(query: str) -> str:
    """
    Replace positional placeholders with a single wildcard.

    ``select * from users where id = $1`` -> ``select * from users where id = $x``
    """
    return _PLACEHOLDER_RE.sub(PLACEHOLDER_WILDCARD, query)


def truncate_query(query: str, max_length: int) -> str:
    """Shorten query text for log output."""
    if len(query) <= max_length:
        return query
    return query[:max_length] + "..."
