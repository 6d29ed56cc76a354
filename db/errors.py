"""
=====================================
Exception taxonomy for test databases.
=====================================

Every failure surfaced by the toolkit is a TestDatabaseError subclass.
Low-level driver exceptions are wrapped (and chained with ``from``) at the
ManagedConnection boundary; they never leak to callers.

Classes:
    TestDatabaseError: Base class
    ConfigurationError: Invalid environment configuration
    ConnectError: Underlying connection could not be established
    QueryExecutionError: A query failed (carries query text and bound values)
    UnsupportedDriverError: Driver kind not handled by a code path
    DirectiveError: Malformed build directive or unreadable directive file
    ExternalCommandError: Bulk-load client exited with a non-zero status
    DatabaseBuildError: Building a test database failed
    UnmatchedQueryError: Mocked query not found in fixture data
    MalformedFixtureError: Fixture value neither callable nor a readable file
"""

from typing import Any, Optional, Sequence


class TestDatabaseError(Exception):
    """Base exception for the test database toolkit."""

    # Keep pytest from collecting this as a test class
    __test__ = False


class ConfigurationError(TestDatabaseError):
    """Raised when environment configuration cannot be parsed."""
    pass


class ConnectError(TestDatabaseError):
    """Raised when the underlying connection cannot be established."""
    pass


class QueryExecutionError(TestDatabaseError):
    """Raised when a query fails.

    Attributes:
        query: Offending query text
        values: Bound values for prepared statements, None otherwise
    """

    def __init__(self, message: str, query: str, values: Optional[Any] = None):
        details = f"{message} Query was: {query}."
        if values is not None:
            details += f" Values were: {values!r}."
        super().__init__(details)
        self.query = query
        self.values = values


class UnsupportedDriverError(TestDatabaseError):
    """Raised when a driver kind has no support in the requested code path.

    Attributes:
        driver: Driver kind that was requested
    """

    def __init__(self, driver: str, operation: str):
        super().__init__(f"Driver type '{driver}' not handled for {operation}!")
        self.driver = driver
        self.operation = operation


class DirectiveError(TestDatabaseError):
    """Raised for malformed directives or unreadable directive files."""
    pass


class ExternalCommandError(TestDatabaseError):
    """Raised when the external bulk-load client fails.

    Attributes:
        command: Command line that was run (never contains a password)
        returncode: Exit status of the process
        stderr: Captured error output
    """

    def __init__(self, command: Sequence[str], returncode: int, stderr: str = ''):
        command_line = ' '.join(command)
        message = f"Command exited with status {returncode}: {command_line}"
        if stderr:
            message += f"\n{stderr.strip()}"
        super().__init__(message)
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr


class DatabaseBuildError(TestDatabaseError):
    """Raised when a test database could not be built."""
    pass


class UnmatchedQueryError(TestDatabaseError):
    """Raised when a mocked query matches no fixture key.

    Attributes:
        query: Normalized query that was looked up
    """

    def __init__(self, query: str):
        super().__init__(f"Query not handled: '{query}'!")
        self.query = query


class MalformedFixtureError(TestDatabaseError):
    """Raised when fixture data is neither callable nor an existing file."""
    pass
