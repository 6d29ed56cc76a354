"""
========================================================
Pytest suite for utils/query_normalizer.py
========================================================

Sections:
---------
1. Unit tests - Comment stripping and whitespace collapsing
2. Edge case tests - Quoted literals and empty input

Available markers:
------------------
unit, edge_case

How to Execute:
---------------
All tests:          pytest tests/tests_utils/test_query_normalizer.py -v
By category:        pytest tests/tests_utils/test_query_normalizer.py -m unit
"""

import pytest

from utils.query_normalizer import normalize_query

# ====================
# Unit Tests
# ====================

@pytest.mark.unit
def test_collapses_whitespace_runs():
    assert normalize_query("SELECT  id,\n\tname\n  FROM   country") == "SELECT id, name FROM country"


@pytest.mark.unit
def test_strips_line_comments():
    query = """
        -- all countries
        SELECT id # primary key
        FROM country
    """
    assert normalize_query(query) == "SELECT id FROM country"


@pytest.mark.unit
def test_strips_block_comments():
    assert normalize_query("SELECT /* columns\n spanning lines */ id FROM country") == "SELECT id FROM country"


@pytest.mark.unit
def test_formatting_variants_share_one_key():
    """Queries differing only in comments and layout normalize identically."""
    compact = "SELECT * FROM t WHERE a = 1"
    verbose = """SELECT *   -- everything
                 FROM t
                 /* filter */ WHERE a = 1
              """
    assert normalize_query(compact) == normalize_query(verbose)


@pytest.mark.unit
def test_keeps_statement_terminator():
    assert normalize_query("SELECT 1 -- first\n  FROM  t;") == "SELECT 1 FROM t;"


# ====================
# Edge Case Tests
# ====================

@pytest.mark.edge_case
def test_comment_marker_inside_literal_is_kept():
    assert normalize_query("SELECT '--' AS dashes  FROM t") == "SELECT '--' AS dashes FROM t"


@pytest.mark.edge_case
def test_whitespace_inside_literal_is_kept():
    assert normalize_query("SELECT 'a   b' , \"x  y\"") == "SELECT 'a   b' , \"x  y\""


@pytest.mark.edge_case
def test_escaped_quote_inside_literal():
    query = "SELECT 'it\\'s  -- fine'   FROM t"
    assert normalize_query(query) == "SELECT 'it\\'s  -- fine' FROM t"


@pytest.mark.edge_case
@pytest.mark.parametrize("raw_query", ["", "   ", "-- only a comment", "/* nothing */\n"])
def test_blank_queries_normalize_to_empty(raw_query):
    assert normalize_query(raw_query) == ""
