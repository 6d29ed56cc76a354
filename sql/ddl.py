"""
========================================================
Data Definition Language (DDL) utilities for test databases.
========================================================

Pure functions generating the DDL the lifecycle manager issues itself.
Everything else (roles, databases, schemas) comes from build directives.

Functions:
    drop_database_sql: Generate an idempotent DROP DATABASE statement

Example:
    >>> drop_database_sql('app_3')
    'DROP DATABASE IF EXISTS "app_3";'
"""


def drop_database_sql(
    database_name: str,
    if_exists: bool = True,
    force: bool = False
) -> str:
    """
    Generate DROP DATABASE statement.

    Note: DROP DATABASE cannot run inside a transaction block; the managed
    connection runs in autocommit mode.

    Args:
        database_name: Name of the database to drop
        if_exists: Add IF EXISTS clause
        force: Add WITH (FORCE) clause (PostgreSQL 13+)

    Returns:
        SQL DROP DATABASE statement
    """
    sql_parts = ["DROP DATABASE"]

    if if_exists:
        sql_parts.append("IF EXISTS")

    sql_parts.append(f'"{database_name}"')

    if force:
        sql_parts.append("WITH (FORCE)")

    return " ".join(sql_parts) + ";"
