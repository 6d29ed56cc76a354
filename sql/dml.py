"""
====================================================
Data Manipulation Language (DML) literal helpers.
====================================================

Functions:
    dict_to_hstore: Render a mapping as a PostgreSQL hstore literal

Example:
    >>> dict_to_hstore({'lang': 'fr', 'region': None})
    '\\'"lang" => "fr", "region" => NULL\\'::hstore'
"""

from typing import Any, Mapping


def dict_to_hstore(data: Mapping[str, Any]) -> str:
    """
    Convert a mapping to PostgreSQL hstore syntax.

    Args:
        data: Keys and values; None values become NULL

    Returns:
        hstore literal, e.g. ``'"a" => "1"'::hstore``

    See:
        http://www.postgresql.org/docs/current/hstore.html
    """
    pairs = []
    for key, value in data.items():
        if value is None:
            pairs.append(f'"{key}" => NULL')
        else:
            escaped = str(value).replace('"', '\\"')
            pairs.append(f'"{key}" => "{escaped}"')
    return "'" + ", ".join(pairs) + "'::hstore"
