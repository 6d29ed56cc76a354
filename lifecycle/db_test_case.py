"""
=====================================================
Base test case for tests needing a disposable database.
=====================================================

unittest instantiates a TestCase once per test method; DbTestCase makes the
first instance build the database and lets every later instance reuse the
built database and its connection through the shared TestEnvironment.

Subclasses set ``directive_source`` and may override any other class
attribute; unset values come from ``core.config``.

Example:
    >>> class CountryTest(DbTestCase):
    ...     directive_source = 'tests/resources/build_db.py'
    ...
    ...     def test_no_orphans(self):
    ...         self.assert_query_returns_nothing(
    ...             "SELECT * FROM city WHERE country_id NOT IN (SELECT id FROM country)"
    ...         )
    ...
    ...     def test_countries(self):
    ...         self.assert_query_equals_csv("SELECT * FROM country", 'tests/expected/countries.csv')
"""

import unittest
from pathlib import Path
from typing import Optional, Union

from core.config import config
from db.errors import DatabaseBuildError
from db.managed_connection import ManagedConnection
from db.parameters import ConnectionParameters
from db.registry import TestEnvironment, get_default_environment
from lifecycle.build_directives import DirectiveSource
from lifecycle.database_lifecycle import DatabaseLifecycleManager


class DbTestCase(unittest.TestCase):
    """TestCase owning a managed test database.

    Attributes:
        directive_source: Directives building the database (required)
        connection_parameters: Target database (defaults to config)
        retention_count: Generations kept when pruning (defaults to config)
        query_log_path: Query log path (defaults to config)
        environment: Shared state (defaults to the process environment)
        db: Long-lived ManagedConnection, available in test methods
        db_manager: DatabaseLifecycleManager of this test case
    """

    directive_source: Optional[DirectiveSource] = None
    connection_parameters: Optional[ConnectionParameters] = None
    retention_count: Optional[int] = None
    query_log_path: Optional[str] = None
    environment: Optional[TestEnvironment] = None

    db: ManagedConnection
    db_manager: DatabaseLifecycleManager

    @classmethod
    def _query_log_path(cls) -> Optional[str]:
        return cls.query_log_path or config.query_log_path

    def setUp(self):
        super().setUp()
        # Class attribute lookup keeps a plain function from binding to self
        directive_source = type(self).directive_source
        if directive_source is None:
            self.fail(f"{type(self).__name__}.directive_source is not set")

        retention_count = self.retention_count
        if retention_count is None:
            retention_count = config.max_db_to_keep

        self.db_manager = DatabaseLifecycleManager(
            parameters=self.connection_parameters or config.get_connection_parameters(),
            directive_source=directive_source,
            retention_count=retention_count,
            query_log_path=self._query_log_path(),
            environment=self.environment or get_default_environment()
        )
        try:
            self.db = self.db_manager.ensure_built()
        except DatabaseBuildError as e:
            self.fail(str(e))

    @classmethod
    def tearDownClass(cls):
        query_log_path = cls._query_log_path()
        if query_log_path:
            Path(query_log_path).unlink(missing_ok=True)
        super().tearDownClass()

    def load_raw_sql_file(self, sql_path: Union[str, Path]) -> None:
        self.db_manager.load_raw_sql_file(sql_path)

    def convert_query_to_csv(self, query: str) -> str:
        return self.db_manager.query_to_csv(query)

    def assert_query_returns_nothing(self, query: str) -> None:
        self.db_manager.assert_no_rows(query)

    def assert_query_equals_csv(
        self,
        query: str,
        csv_path: Union[str, Path],
        delimiter: str = ',',
        enclosure: str = '"'
    ) -> None:
        self.db_manager.assert_result_matches_csv(query, csv_path, delimiter, enclosure)
