"""
=====================================================
Metadata queries used by the test database lifecycle.
=====================================================

Query builders return ``(sql, params)`` pairs using ``:name`` placeholders,
ready for ``ManagedConnection.fetch_all``.

Functions:
    generation_pattern: Regex matching every generation of a prefix
    list_database_generations_sql: List databases named ``<prefix>_<integer>``
"""

import re
from typing import Any, Dict, Tuple

from db.errors import UnsupportedDriverError


def generation_pattern(prefix: str) -> str:
    """
    Build the anchored regex matching ``<prefix>_<integer>`` names.

    Args:
        prefix: Generation prefix (regex metacharacters are escaped)

    Returns:
        POSIX regex usable with PostgreSQL's ``~`` operator
    """
    return f"^{re.escape(prefix)}_[0-9]+$"


def list_database_generations_sql(prefix: str, driver: str) -> Tuple[str, Dict[str, Any]]:
    """
    Generate SQL listing every generation of a database prefix.

    Args:
        prefix: Generation prefix
        driver: Driver kind of the connection that will run the query

    Returns:
        Tuple of (SQL returning a ``dbname`` column, bound parameters)

    Raises:
        UnsupportedDriverError: If the driver has no database catalog query
    """
    if driver == 'postgresql':
        sql = """SELECT datname AS dbname
FROM pg_database
WHERE datname ~ :pattern
ORDER BY datname ASC"""
        return sql, {'pattern': generation_pattern(prefix)}

    raise UnsupportedDriverError(driver, 'listing all databases')
