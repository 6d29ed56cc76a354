"""
==========================================================
Build directive interpreter for disposable test databases.
==========================================================

A build script is an ordered list of directives ``(user, database, payload)``.
Each directive is applied as ``user`` on ``database``; order matters because
later directives depend on earlier ones (create the role, then the database
it owns, then the schema inside it).

Payload dispatch:
    - literal SQL: terminated with ';' if needed, executed in-process
    - ``*.sql`` below the bulk-load threshold: read and executed in-process
    - ``*.sql`` at or above the threshold: loaded by ``psql`` out-of-process
    - ``*.gz``: decompressed to a temporary file, then handled as ``*.sql``;
      the temporary file is removed on every exit path

A payload is a file reference when it ends with ``.sql`` or ``.gz``
(case-insensitive). The first failing directive aborts the whole run.

Directive sources:
    - a sequence of 3-tuples
    - a callable ``(db_name, db_user) -> sequence``
    - a path to a Python build file defining ``build_directives(db_name, db_user)``

Example:
    >>> interpreter = BuildDirectiveInterpreter(params, environment.connections)
    >>> interpreter.run(load_directives([
    ...     ('postgres', 'template1', 'DROP DATABASE IF EXISTS app_42'),
    ...     ('postgres', 'template1', 'CREATE DATABASE app_42 OWNER app'),
    ...     ('app', 'app_42', '/path/to/schema.sql'),
    ...     ('app', 'app_42', '/path/to/data.sql.gz'),
    ... ], 'app_42', 'app'))
"""

import gzip
import logging
import os
import re
import runpy
import shutil
import subprocess
import tempfile
import time
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, List, Sequence, Union

from db.errors import DirectiveError, ExternalCommandError, UnsupportedDriverError
from db.managed_connection import ManagedConnection
from db.parameters import ConnectionParameters
from db.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

FILE_PAYLOAD_RE = re.compile(r'\.(sql|gz)$', re.IGNORECASE)
COMPRESSED_PAYLOAD_RE = re.compile(r'\.gz$', re.IGNORECASE)

BULK_LOAD_THRESHOLD = 1024 * 1024

# Drivers whose command-line client can bulk load SQL files
BULK_LOAD_DRIVERS = ('postgresql',)

DirectiveSource = Union[Sequence[Sequence[str]], Callable[[str, str], Iterable[Sequence[str]]], str, Path]


def terminate_statement(sql: str) -> str:
    """Append ';' to a statement unless it already ends with one."""
    statement = sql.rstrip()
    if not statement.endswith(';'):
        statement += ';'
    return statement


@dataclass(frozen=True)
class BuildDirective:
    """One build step: which user and database, and what SQL or file to apply.

    Attributes:
        target_user: Role the payload runs as
        target_database: Database the payload runs in
        payload: Literal SQL or path of a ``.sql`` / ``.gz`` file
    """

    target_user: str
    target_database: str
    payload: str

    @classmethod
    def from_entry(cls, entry: Any) -> 'BuildDirective':
        """Build a directive from a ``(user, database, payload)`` entry.

        Raises:
            DirectiveError: If the entry is not three non-empty strings
        """
        if isinstance(entry, BuildDirective):
            return entry
        if isinstance(entry, (str, bytes)) or not isinstance(entry, Sequence) or len(entry) != 3:
            raise DirectiveError(f"Directive must be a (user, database, payload) triple, got: {entry!r}")
        if not all(isinstance(item, (str, Path)) and str(item) for item in entry):
            raise DirectiveError(f"Directive items must be non-empty strings, got: {entry!r}")
        user, database, payload = (str(item) for item in entry)
        return cls(target_user=user, target_database=database, payload=payload)

    @property
    def is_file_reference(self) -> bool:
        return FILE_PAYLOAD_RE.search(self.payload.strip()) is not None

    @property
    def is_compressed(self) -> bool:
        return COMPRESSED_PAYLOAD_RE.search(self.payload.strip()) is not None

    @property
    def path(self) -> Path:
        return Path(self.payload.strip())

    @property
    def statement(self) -> str:
        """Literal payload terminated with ';'."""
        return terminate_statement(self.payload)

    def describe(self) -> str:
        payload = self.payload.strip() if self.is_file_reference else ' '.join(self.payload.split())
        if len(payload) > 120:
            payload = payload[:117] + '...'
        return f"[{self.target_user}@{self.target_database}] {payload}"


def _directives_from_file(path: Path, db_name: str, db_user: str) -> Iterable[Sequence[str]]:
    namespace = runpy.run_path(str(path), init_globals={'db_name': db_name, 'db_user': db_user})
    if callable(namespace.get('build_directives')):
        return namespace['build_directives'](db_name, db_user)
    if 'DIRECTIVES' in namespace:
        return namespace['DIRECTIVES']
    raise DirectiveError(f"Build file '{path}' defines neither build_directives() nor DIRECTIVES")


def load_directives(source: DirectiveSource, db_name: str, db_user: str) -> List[BuildDirective]:
    """Resolve a directive source into an ordered list of BuildDirective.

    Args:
        source: Sequence of triples, callable or path of a Python build file
        db_name: Database name injected into callables and build files
        db_user: Username injected into callables and build files

    Returns:
        Directives in source order

    Raises:
        DirectiveError: If the source or one of its entries is malformed
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.is_file():
            raise DirectiveError(f"Build file not found: '{path}'")
        entries = _directives_from_file(path, db_name, db_user)
    elif callable(source):
        entries = source(db_name, db_user)
    else:
        entries = source

    if entries is None or isinstance(entries, (str, bytes)):
        raise DirectiveError(f"Directive source must produce a sequence of triples, got: {entries!r}")
    return [BuildDirective.from_entry(entry) for entry in entries]


class BuildDirectiveInterpreter:
    """Apply build directives in order, in-process or through ``psql``.

    Attributes:
        parameters: Base connection parameters (driver, host, port, password)
        connections: Registry providing one connection per (user, database)
        bulk_load_threshold: Size in bytes from which SQL files go to ``psql``
        psql_binary: Command-line client used for bulk loads
        temp_prefix: Prefix of temporary decompressed files
    """

    def __init__(
        self,
        parameters: ConnectionParameters,
        connections: ConnectionRegistry,
        bulk_load_threshold: int = BULK_LOAD_THRESHOLD,
        psql_binary: str = 'psql',
        temp_prefix: str = 'db-builder_',
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run
    ):
        self.parameters = parameters
        self.connections = connections
        self.bulk_load_threshold = bulk_load_threshold
        self.psql_binary = psql_binary
        self.temp_prefix = temp_prefix
        self._runner = runner

    def run(self, directives: Iterable[BuildDirective]) -> int:
        """Apply every directive in order; the first failure aborts the run.

        Returns:
            Number of directives applied
        """
        applied = 0
        for directive in directives:
            self.apply(BuildDirective.from_entry(directive))
            applied += 1
        return applied

    def apply(self, directive: BuildDirective) -> None:
        """Apply a single directive."""
        logger.debug(f"Applying directive {directive.describe()}")
        if not directive.is_file_reference:
            self._execute_sql(directive, directive.statement)
        elif directive.is_compressed:
            self._load_compressed_file(directive, directive.path)
        else:
            self._load_sql_file(directive, directive.path)

    def _connection_for(self, directive: BuildDirective) -> ManagedConnection:
        parameters = self.parameters.with_target(directive.target_user, directive.target_database)
        return self.connections.get(parameters)

    def _execute_sql(self, directive: BuildDirective, sql: str) -> None:
        self._connection_for(directive).execute_script(sql)

    def _load_sql_file(self, directive: BuildDirective, path: Path) -> None:
        try:
            size = path.stat().st_size
        except OSError as e:
            raise DirectiveError(f"Cannot read SQL file '{path}': {e}") from e

        if size >= self.bulk_load_threshold:
            self._bulk_load(directive, path)
            return

        try:
            sql = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise DirectiveError(f"Cannot read SQL file '{path}': {e}") from e

        if not sql.strip():
            logger.debug(f"Skipping empty SQL file '{path}'")
            return
        self._execute_sql(directive, sql)

    def _load_compressed_file(self, directive: BuildDirective, path: Path) -> None:
        handle, temp_name = tempfile.mkstemp(prefix=self.temp_prefix, suffix='.sql')
        temp_path = Path(temp_name)
        try:
            try:
                with os.fdopen(handle, 'wb') as target, gzip.open(path, 'rb') as source:
                    shutil.copyfileobj(source, target)
            except (OSError, EOFError, zlib.error) as e:
                raise DirectiveError(f"Cannot decompress '{path}': {e}") from e
            logger.debug(f"Decompressed '{path}' to '{temp_path}'")
            self._load_sql_file(directive, temp_path)
        finally:
            temp_path.unlink(missing_ok=True)

    def build_bulk_load_command(self, directive: BuildDirective, path: Path) -> List[str]:
        """Command line loading ``path`` with the native client."""
        return [
            self.psql_binary,
            '-v', 'ON_ERROR_STOP=1',
            '-h', self.parameters.hostname,
            '-p', str(self.parameters.port),
            '-U', directive.target_user,
            directive.target_database,
            '--file', str(path),
        ]

    def _bulk_load(self, directive: BuildDirective, path: Path) -> None:
        if self.parameters.driver not in BULK_LOAD_DRIVERS:
            raise UnsupportedDriverError(self.parameters.driver, 'loading SQL files')

        command = self.build_bulk_load_command(directive, path)
        env = dict(os.environ)
        if self.parameters.password:
            env['PGPASSWORD'] = self.parameters.password

        logger.debug(f"shell# {' '.join(command)}")
        start = time.perf_counter()
        try:
            completed = self._runner(command, env=env, capture_output=True, text=True, check=False)
        except OSError as e:
            raise ExternalCommandError(command, 127, str(e)) from e

        if completed.returncode != 0:
            raise ExternalCommandError(command, completed.returncode, completed.stderr or '')
        logger.debug(f"Loaded '{path}' in {time.perf_counter() - start:.2f}s")
