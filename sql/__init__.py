"""
=========================================================
SQL utilities package for test database operations.
=========================================================

Pure functions generating SQL strings; nothing here touches a connection.

The package follows the same organization by operation type:
    - ddl.py: Data Definition Language (DROP DATABASE)
    - dml.py: Literal builders (hstore)
    - query_builder.py: Catalog queries returning (sql, params)

Example:
    >>> from sql.ddl import drop_database_sql
    >>> from sql.query_builder import list_database_generations_sql
    >>>
    >>> query, params = list_database_generations_sql('app', 'postgresql')
    >>> drop_database_sql('app_1')
    'DROP DATABASE IF EXISTS "app_1";'
"""

__version__ = "1.0.0"
__all__ = [
    'drop_database_sql',
    'dict_to_hstore',
    'generation_pattern',
    'list_database_generations_sql',
]

from .ddl import drop_database_sql
from .dml import dict_to_hstore
from .query_builder import generation_pattern, list_database_generations_sql
