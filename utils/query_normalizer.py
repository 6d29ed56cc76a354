"""
=========================================
SQL query normalization for mock lookups.
=========================================

Strips comments and collapses whitespace so that queries differing only in
formatting map to the same key. Quoted literals are copied verbatim, so
``'--'`` or ``'a  b'`` inside a string is never altered.

Handled comment forms:
    - ``-- ...`` and ``# ...`` up to end of line
    - ``/* ... */`` block comments (not nested)

Example:
    >>> normalize_query("SELECT 1 -- first\\n  FROM  t;")
    'SELECT 1 FROM t;'
"""

import re

_TOKEN_RE = re.compile(
    r"""
    (?P<literal>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
    |(?P<gap>(?:\s+|--[^\n]*|\#[^\n]*|/\*.*?\*/)+)
    """,
    re.VERBOSE | re.DOTALL,
)


def _replace(match: re.Match) -> str:
    if match.group('literal') is not None:
        return match.group('literal')
    return ' '


def normalize_query(raw_query: str) -> str:
    """Return the query without comments and with single spaces between tokens.

    Args:
        raw_query: Query text as written in code or fixtures

    Returns:
        Normalized single-line query
    """
    return _TOKEN_RE.sub(_replace, raw_query).strip()
