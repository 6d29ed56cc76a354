"""
=============================================
Lazily-connected, instrumented database handle.
=============================================

A ManagedConnection owns at most one live SQLAlchemy connection for one set
of ConnectionParameters. The connection is opened on first use, session
settings are applied once per physical connection, and every query is timed.
When a query log path is configured, each query appends one line::

    {sequence};{YYYY-MM-DD HH:MM:SS.mmm+ZZZZ};{elapsed ms, 1 decimal};{single-line query}

Driver errors are wrapped into QueryExecutionError / ConnectError and never
cross this boundary.

Example:
    >>> from db.managed_connection import ManagedConnection
    >>>
    >>> connection = ManagedConnection(params, query_log_path='/tmp/queries.log')
    >>> connection.execute("CREATE TABLE country (id INT, name TEXT)")
    >>> rows = connection.fetch_all("SELECT * FROM country ORDER BY id")
    >>> elapsed, count = connection.get_stats()
"""

import logging
import sqlite3
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import psycopg2
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, CursorResult, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import TextClause
from sqlalchemy.types import String, TypeEngine

from db.errors import ConnectError, QueryExecutionError, UnsupportedDriverError
from db.parameters import ConnectionParameters
from utils.query_normalizer import normalize_query

logger = logging.getLogger(__name__)

DRIVER_ERRORS = (SQLAlchemyError, psycopg2.Error, sqlite3.Error)

LAST_INSERT_ID_SQL = {
    'postgresql': 'SELECT lastval()',
    'mysql': 'SELECT LAST_INSERT_ID()',
    'sqlite': 'SELECT last_insert_rowid()',
}


def format_log_timestamp(moment: float) -> str:
    """Format an epoch timestamp as local time with milliseconds and offset."""
    local = datetime.fromtimestamp(moment).astimezone()
    return (
        local.strftime('%Y-%m-%d %H:%M:%S.')
        + f"{local.microsecond // 1000:03d}"
        + local.strftime('%z')
    )


def _to_text(value: Any) -> str:
    if isinstance(value, bytes):
        try:
            return value.decode('utf-8')
        except UnicodeDecodeError:
            return value.decode('latin-1')
    return str(value)


class ManagedConnection:
    """Cached, lazily-connected database handle with timing and query log.

    Attributes:
        parameters: ConnectionParameters this handle connects with
        query_log_path: Optional path of the append-only query log
    """

    def __init__(
        self,
        parameters: ConnectionParameters,
        query_log_path: Optional[str] = None,
        engine_factory: Callable[..., Engine] = create_engine
    ):
        """Initialize an unconnected handle.

        Args:
            parameters: Connection parameters
            query_log_path: Optional path where every query is appended
            engine_factory: Factory building the SQLAlchemy engine
        """
        self.parameters = parameters
        self.query_log_path = query_log_path
        self._engine_factory = engine_factory
        self._engine: Optional[Engine] = None
        self._connection: Optional[Connection] = None
        self._total_elapsed_time = 0.0
        self._total_query_count = 0

    def __repr__(self):
        state = 'connected' if self.is_connected else 'unconnected'
        return f"<ManagedConnection {self.parameters.describe()} ({state})>"

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def driver(self) -> str:
        return self.parameters.driver

    def set_query_log_path(self, query_log_path: Optional[str]) -> None:
        """Set (or clear with None) the query log path."""
        self.query_log_path = query_log_path

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    def _get_engine(self) -> Engine:
        if self._engine is None:
            url = self.parameters.to_url()
            self._engine = self._engine_factory(
                url,
                isolation_level='AUTOCOMMIT',
                echo=False,
                execution_options={'no_parameters': True}
            )
        return self._engine

    def _connect(self, force: bool = False) -> Connection:
        if self._connection is not None and not force:
            return self._connection

        if self._connection is not None:
            self._connection.close()
            self._connection = None

        engine = self._get_engine()
        try:
            connection = engine.connect()
        except DRIVER_ERRORS as e:
            raise ConnectError(f"{e}. DSN was: '{self.parameters.describe()}'.") from e

        try:
            self._setup_session(connection)
        except DRIVER_ERRORS as e:
            connection.close()
            raise ConnectError(
                f"Session setup failed: {e}. DSN was: '{self.parameters.describe()}'."
            ) from e

        self._connection = connection
        logger.debug(f"Connected to {self.parameters.describe()}")
        return connection

    def _setup_session(self, connection: Connection) -> None:
        driver = self.parameters.driver
        if driver == 'postgresql':
            connection.exec_driver_sql("SET NAMES 'UTF8';")
            version = connection.exec_driver_sql("SHOW server_version_num;").scalar()
            application_name = self.parameters.driver_options.get('application_name')
            if application_name and int(version) >= 90000:
                quoted = String().literal_processor(connection.dialect)(application_name)
                connection.exec_driver_sql(f"SET application_name TO {quoted};")
        elif driver == 'mysql':
            connection.exec_driver_sql("SET NAMES 'UTF8';")
            connection.exec_driver_sql("SET time_zone = '+00:00';")
            connection.exec_driver_sql("SET SESSION time_zone = '+00:00';")
        elif driver != 'sqlite':
            raise UnsupportedDriverError(driver, 'connection')

    def reconnect(self) -> None:
        """Open a new physical connection, replaying session setup."""
        self._connect(force=True)

    def dispose(self) -> None:
        """Close the live connection and release the engine."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    # ------------------------------------------------------------------
    # Timing and logging
    # ------------------------------------------------------------------

    def _timed(self, query: str, action: Callable[[Connection], Any], values: Optional[Any] = None,
               log_text: Optional[str] = None) -> Any:
        connection = self._connect()
        started_at = time.time()
        start = time.perf_counter()
        try:
            result = action(connection)
        except DRIVER_ERRORS as e:
            logger.error(f"Query failed on {self.parameters.describe()}: {e}")
            raise QueryExecutionError(str(e), query, values) from e
        self._end_timer(started_at, time.perf_counter() - start, log_text or query)
        return result

    def _end_timer(self, started_at: float, elapsed: float, query: str) -> None:
        self._total_elapsed_time += elapsed
        self._total_query_count += 1

        if self.query_log_path:
            line = (
                f"{self._total_query_count};{format_log_timestamp(started_at)};"
                f"{round(elapsed * 1000, 1)};{normalize_query(query)}\n"
            )
            with open(self.query_log_path, 'a', encoding='utf-8') as log_file:
                log_file.write(line)

    def _passthrough(self, query: str, action: Callable[[Connection], Any]) -> Any:
        connection = self._connect()
        try:
            return action(connection)
        except DRIVER_ERRORS as e:
            raise QueryExecutionError(str(e), query) from e

    def get_stats(self) -> Tuple[float, int]:
        """Return (total elapsed seconds, total number of queries)."""
        return self._total_elapsed_time, self._total_query_count

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query(self, query: str) -> CursorResult:
        """Execute a statement and return its live result cursor."""
        return self._timed(query, lambda conn: conn.exec_driver_sql(query))

    def execute(self, query: str) -> int:
        """Execute a statement and return the number of affected rows.

        Statements that affect no rows (DDL included) return 0.
        """
        def action(conn):
            return max(conn.exec_driver_sql(query).rowcount, 0)
        return self._timed(query, action)

    def execute_script(self, script: str) -> int:
        """Execute SQL that may hold several statements.

        sqlite3 refuses more than one statement per execute, so SQLite
        scripts go through the driver's ``executescript``. Other drivers
        accept a whole script in one execute.
        """
        if self.parameters.driver != 'sqlite':
            return self.execute(script)

        def action(conn):
            conn.connection.driver_connection.executescript(script)
            return 0
        return self._timed(script, action)

    def fetch_all(self, query: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Return every row of the query as a list of dicts.

        Args:
            query: Statement to execute
            params: Optional named parameters (``:name`` placeholders)
        """
        def action(conn):
            if params:
                result = conn.execute(text(query), dict(params))
            else:
                result = conn.exec_driver_sql(query)
            return [dict(row) for row in result.mappings()]
        return self._timed(query, action, values=params)

    def fetch_one(self, query: str) -> Optional[Dict[str, Any]]:
        """Return the first row of the query as a dict, or None."""
        def action(conn):
            row = conn.exec_driver_sql(query).mappings().first()
            return dict(row) if row is not None else None
        return self._timed(query, action)

    def fetch_scalar(self, query: str, column_index: int = 0) -> Any:
        """Return one column of the first row, or None when there is no row."""
        def action(conn):
            row = conn.exec_driver_sql(query).fetchone()
            if row is None:
                return None
            if not -len(row) <= column_index < len(row):
                raise QueryExecutionError(
                    f"Column index {column_index} out of range for {len(row)} column(s).", query
                )
            return row[column_index]
        return self._timed(query, action)

    def prepare(self, query: str) -> TextClause:
        """Prepare a statement using ``:name`` placeholders."""
        self._connect()
        try:
            return text(query)
        except SQLAlchemyError as e:
            raise QueryExecutionError(str(e), query) from e

    def execute_statement(self, statement: TextClause, values: Mapping[str, Any]) -> bool:
        """Execute a prepared statement with bound values."""
        values = dict(values)
        log_text = f"{statement.text} => [{', '.join(str(value) for value in values.values())}]"
        self._timed(statement.text, lambda conn: conn.execute(statement, values),
                    values=values, log_text=log_text)
        return True

    # ------------------------------------------------------------------
    # Quoting
    # ------------------------------------------------------------------

    def quote(self, value: Any, type_hint: Optional[TypeEngine] = None) -> Any:
        """Quote a value as a SQL literal using the dialect's rules.

        When the dialect cannot render the given type as a literal, the raw
        value is returned unchanged.
        """
        connection = self._connect()
        if type_hint is None:
            type_hint = String()
        elif isinstance(type_hint, type):
            type_hint = type_hint()
        processor = type_hint.literal_processor(connection.dialect)
        if processor is None:
            return value
        return processor(value)

    def format_value(self, value: Any) -> str:
        """Render a Python value as a literal for hand-written SQL.

        None -> NULL, True/False -> 't'/'f', anything else is quoted text.
        """
        if value is None:
            return 'NULL'
        if value is True:
            return "'t'"
        if value is False:
            return "'f'"
        return self.quote(_to_text(value))

    # ------------------------------------------------------------------
    # Pass-through
    # ------------------------------------------------------------------

    def last_insert_id(self, sequence_name: Optional[str] = None) -> Optional[str]:
        """Return the last inserted row id or the current value of a sequence."""
        driver = self.parameters.driver
        if driver not in LAST_INSERT_ID_SQL:
            raise UnsupportedDriverError(driver, 'last insert id')

        if sequence_name and driver == 'postgresql':
            query = 'SELECT currval(:sequence_name)'
            value = self._passthrough(
                query,
                lambda conn: conn.execute(text(query), {'sequence_name': sequence_name}).scalar()
            )
        else:
            query = LAST_INSERT_ID_SQL[driver]
            value = self._passthrough(query, lambda conn: conn.exec_driver_sql(query).scalar())
        return None if value is None else str(value)

    def begin_transaction(self) -> bool:
        self._passthrough('BEGIN', lambda conn: conn.exec_driver_sql('BEGIN'))
        return True

    def commit(self) -> bool:
        self._passthrough('COMMIT', lambda conn: conn.exec_driver_sql('COMMIT'))
        return True

    def rollback(self) -> bool:
        self._passthrough('ROLLBACK', lambda conn: conn.exec_driver_sql('ROLLBACK'))
        return True
