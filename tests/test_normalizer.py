"""Tests for query normalization, pattern extraction and request IDs."""

import re

from query_profiling.services.normalizer import (
    extract_query_pattern,
    normalize_query,
    truncate_query,
)
from query_profiling.services.request_id import generate_request_id


class TestNormalizeQuery:
    """Tests for normalize_query."""

    def test_collapses_whitespace(self):
        assert normalize_query("SELECT  *   FROM   users") == normalize_query("SELECT * FROM users")

    def test_lowercases_and_trims(self):
        assert normalize_query("  SELECT *\n\tFROM Users  ") == "select * from users"

    def test_empty_string(self):
        assert normalize_query("") == ""
        assert normalize_query("   \n ") == ""

    def test_marker_is_lowercased(self):
        assert normalize_query("SELECT 1 [ERROR]") == "select 1 [error]"

    def test_literals_differing_only_in_case(self):
        assert normalize_query("WHERE name = 'BOB'") == normalize_query("where NAME = 'bob'")


class TestExtractPattern:
    """Tests for extract_query_pattern."""

    def test_replaces_placeholders(self):
        assert (
            extract_query_pattern("select * from users where id = $1")
            == "select * from users where id = $x"
        )

    def test_multi_digit_and_multiple_placeholders(self):
        pattern = extract_query_pattern("select * from t where a = $1 and b = $12")
        assert pattern == "select * from t where a = $x and b = $x"

    def test_different_positions_compare_equal(self):
        assert extract_query_pattern("select 1 where id = $1") == extract_query_pattern(
            "select 1 where id = $2"
        )

    def test_no_placeholders(self):
        assert extract_query_pattern("select 1") == "select 1"


class TestTruncateQuery:
    """Tests for log truncation."""

    def test_short_query_untouched(self):
        assert truncate_query("select 1", 100) == "select 1"

    def test_long_query_cut(self):
        assert truncate_query("x" * 20, 10) == "x" * 10 + "..."


class TestGenerateRequestId:
    """Tests for generate_request_id."""

    def test_format(self):
        assert re.fullmatch(r"req_\d+_[a-z0-9]+", generate_request_id())

    def test_unique(self):
        ids = [generate_request_id() for _ in range(1000)]
        assert len(set(ids)) == 1000
        assert all(re.fullmatch(r"req_\d+_[a-z0-9]+", i) for i in ids)
