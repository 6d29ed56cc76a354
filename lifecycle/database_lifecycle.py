"""
=====================================================
Test database lifecycle: build once, prune old copies.
=====================================================

Coordinates the one-time build of a named test database for a whole test
run, then keeps only the most recent generations of that database.

Per database name, within one TestEnvironment:

    NotBuilt --ensure_built()--> Building --success--> Built
                                    |
                                    +--failure--> NotBuilt (DatabaseBuildError)

A database already Built is never rebuilt nor pruned again; later test cases
only get the cached ManagedConnection.

Generations:
    A database named ``<prefix>_<integer>`` is one generation of ``<prefix>``.
    After a build, every generation older than the ``retention_count`` most
    recent ones is dropped (``DROP DATABASE IF EXISTS``). The retention count
    is floored at 1 and the active database is never dropped. Names not
    following the pattern are never pruned.

Example:
    >>> manager = DatabaseLifecycleManager(
    ...     parameters=config.get_connection_parameters(),
    ...     directive_source='tests/resources/build_db.py',
    ...     retention_count=3,
    ... )
    >>> db = manager.ensure_built()
    >>> manager.assert_result_matches_csv("SELECT * FROM country", 'tests/expected/countries.csv')
"""

import difflib
import re
import time
from pathlib import Path
from typing import Iterable, List, Optional, Union

from core.config import config
from core.logger import get_logger
from db.errors import DatabaseBuildError, QueryExecutionError
from db.managed_connection import ManagedConnection
from db.parameters import ConnectionParameters
from db.registry import TestEnvironment, get_default_environment
from lifecycle.build_directives import (
    BuildDirective,
    BuildDirectiveInterpreter,
    DirectiveSource,
    load_directives,
)
from sql.ddl import drop_database_sql
from sql.query_builder import list_database_generations_sql
from utils.csv_codec import encode

logger = get_logger(__name__)

GENERATION_RE = re.compile(r'^(.*)_([0-9]+)$')

# Drivers able to list their databases for pruning
PRUNABLE_DRIVERS = ('postgresql',)


def generation_prefix(database_name: str) -> Optional[str]:
    """Return ``<prefix>`` of a ``<prefix>_<integer>`` name, None otherwise."""
    match = GENERATION_RE.match(database_name)
    return match.group(1) if match else None


def _generation_sort_key(database_name: str):
    match = GENERATION_RE.match(database_name)
    number = int(match.group(2)) if match else -1
    return number, database_name


def select_generations_to_drop(database_names: Iterable[str], retention_count: int) -> List[str]:
    """Return the generations to drop, oldest first.

    Generations are ordered by their integer suffix; the ``max(1, retention_count)``
    most recent ones are kept.

    Example:
        >>> select_generations_to_drop([f'app_{i}' for i in range(1, 8)], 3)
        ['app_1', 'app_2', 'app_3', 'app_4']
    """
    keep = max(1, retention_count)
    ordered = sorted(database_names, key=_generation_sort_key)
    if len(ordered) <= keep:
        return []
    return ordered[:-keep]


class DatabaseLifecycleManager:
    """Build a test database at most once per environment and prune old generations.

    Attributes:
        parameters: Connection parameters of the test database; its
            ``database_name`` is the database identity
        directive_source: Directives building the database
        retention_count: Number of generations kept when pruning (min 1)
        query_log_path: Optional query log for the long-lived connection
        environment: TestEnvironment holding connections and built databases
        connection: Long-lived ManagedConnection, set by ensure_built()
    """

    def __init__(
        self,
        parameters: ConnectionParameters,
        directive_source: DirectiveSource,
        retention_count: int = 3,
        query_log_path: Optional[str] = None,
        environment: Optional[TestEnvironment] = None,
        interpreter_factory=BuildDirectiveInterpreter
    ):
        self.parameters = parameters
        self.directive_source = directive_source
        self.retention_count = max(1, int(retention_count))
        self.query_log_path = query_log_path
        self.environment = environment or get_default_environment()
        self._interpreter_factory = interpreter_factory
        self.connection: Optional[ManagedConnection] = None

    @property
    def database_name(self) -> str:
        return self.parameters.database_name

    def create_interpreter(self) -> BuildDirectiveInterpreter:
        """Interpreter sharing this environment's connections."""
        return self._interpreter_factory(
            self.parameters,
            self.environment.connections,
            bulk_load_threshold=config.build.bulk_load_threshold,
            psql_binary=config.build.psql_binary,
            temp_prefix=config.build.temp_prefix
        )

    def ensure_built(self) -> ManagedConnection:
        """Make sure the database is built, then return its long-lived connection.

        Returns:
            ManagedConnection to the test database as the configured user

        Raises:
            DatabaseBuildError: If any directive failed; the database is not
                marked as built, so tests never run against a partial build
        """
        if self.environment.is_built(self.database_name):
            logger.debug(f"Test database {self.database_name} already built")
            return self._acquire_connection()

        logger.info(f"Building test database {self.database_name}")
        start = time.perf_counter()
        try:
            directives = load_directives(
                self.directive_source,
                self.database_name,
                self.parameters.username
            )
            applied = self.create_interpreter().run(directives)
        except Exception as e:
            logger.exception(f"Test DB's build failed for {self.database_name}")
            raise DatabaseBuildError(f"Test DB's build failed! {e}") from e

        connection = self._acquire_connection()
        self.environment.mark_built(self.database_name)
        logger.info(
            f"Built test database {self.database_name} "
            f"({applied} directives in {time.perf_counter() - start:.2f}s)"
        )

        if self.parameters.driver in PRUNABLE_DRIVERS:
            self.prune_old_generations()
        else:
            logger.info(f"Pruning skipped: driver '{self.parameters.driver}' cannot list databases")
        return connection

    def _acquire_connection(self) -> ManagedConnection:
        connection = self.environment.connections.get(self.parameters, query_log_path=self.query_log_path)
        if self.query_log_path:
            connection.set_query_log_path(self.query_log_path)
        self.connection = connection
        return connection

    def _require_connection(self) -> ManagedConnection:
        if self.connection is None:
            return self._acquire_connection()
        return self.connection

    def prune_old_generations(self) -> List[str]:
        """Drop generations of this database beyond the retention count.

        Returns:
            Names of the databases dropped

        Raises:
            UnsupportedDriverError: If the driver cannot list its databases
        """
        prefix = generation_prefix(self.database_name)
        if prefix is None:
            logger.debug(f"{self.database_name} is not a generation name, nothing to prune")
            return []

        connection = self._require_connection()
        query, params = list_database_generations_sql(prefix, self.parameters.driver)
        try:
            names = [row['dbname'] for row in connection.fetch_all(query, params)]
        except QueryExecutionError as e:
            logger.warning(f"Could not list generations of '{prefix}', nothing pruned: {e}")
            return []

        dropped = []
        for name in select_generations_to_drop(names, self.retention_count):
            if name == self.database_name:
                continue
            statement = drop_database_sql(name)
            logger.debug(f"SQL# {statement}")
            try:
                connection.execute(statement)
            except QueryExecutionError as e:
                logger.warning(f"Could not drop old test database {name}: {e}")
                continue
            dropped.append(name)

        if dropped:
            logger.info(f"Dropped {len(dropped)} old generation(s) of '{prefix}': {', '.join(dropped)}")
        return dropped

    def load_raw_sql_file(self, sql_path: Union[str, Path]) -> None:
        """Apply one SQL or gzipped SQL file to the test database as its owner."""
        directive = BuildDirective(
            target_user=self.parameters.username,
            target_database=self.database_name,
            payload=str(sql_path)
        )
        self.create_interpreter().run([directive])

    # ------------------------------------------------------------------
    # Assertions
    # ------------------------------------------------------------------

    def query_to_csv(self, query: str, delimiter: str = ',', enclosure: str = '"') -> str:
        """Run the query and encode its rows as CSV text."""
        rows = self._require_connection().fetch_all(query)
        return encode(rows, delimiter, enclosure, config.fixtures.null_token)

    def assert_no_rows(self, query: str) -> None:
        """Fail if the query returns any row, even an all-NULL one."""
        rows = self._require_connection().fetch_all(query)
        if rows:
            raise AssertionError(
                f"Query returned {len(rows)} row(s), expected none: {query}\n"
                f"First row: {rows[0]!r}"
            )

    def assert_result_matches_csv(
        self,
        query: str,
        csv_path: Union[str, Path],
        delimiter: str = ',',
        enclosure: str = '"'
    ) -> None:
        """Fail unless the query's CSV encoding equals the trimmed file content."""
        expected = Path(csv_path).read_text(encoding='utf-8').strip()
        actual = self.query_to_csv(query, delimiter, enclosure)
        if actual != expected:
            diff = '\n'.join(difflib.unified_diff(
                expected.splitlines(),
                actual.splitlines(),
                fromfile=str(csv_path),
                tofile='query result',
                lineterm=''
            ))
            raise AssertionError(f"Query result does not match {csv_path}:\n{diff}")
