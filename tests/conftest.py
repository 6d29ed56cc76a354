"""
Shared pytest configuration and fixtures for all tests.

Key fixtures:
- environment: isolated TestEnvironment, closed after the test
- sqlite_parameters: ConnectionParameters for a throw-away SQLite file
- fake_environment: TestEnvironment whose registry hands out FakeManagedConnection
- fake_environment_factory: builds further independent fake environments
"""

import sys
from pathlib import Path

import pytest

# Add project root to sys.path to enable importing project modules
# This allows tests to import from 'core', 'db', 'lifecycle', etc. without installation
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from db.parameters import ConnectionParameters  # noqa: E402
from db.registry import ConnectionRegistry, TestEnvironment  # noqa: E402


def pytest_configure(config):
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: Unit tests - isolated function-level tests")
    config.addinivalue_line("markers", "integration: Integration tests - component interactions")
    config.addinivalue_line("markers", "smoke: Smoke tests - basic functionality checks")
    config.addinivalue_line("markers", "edge_case: Edge case tests - boundary conditions")
    config.addinivalue_line("markers", "regression: Regression tests - previously fixed bugs")
    config.addinivalue_line("markers", "system: System tests - full system behavior tests")
    config.addinivalue_line("markers", "e2e: End-to-end tests - complete workflow tests")


class FakeManagedConnection:
    """
    In-memory stand-in for ManagedConnection.

    Records executed statements and fetch calls; ``rows`` maps a query
    substring to the rows fetch_all returns, ``failures`` maps a statement
    to the exception execute raises, ``fetch_error`` is raised by fetch_all.
    """

    def __init__(self, parameters, query_log_path=None):
        self.parameters = parameters
        self.query_log_path = query_log_path
        self.executed = []
        self.fetched = []
        self.rows = {}
        self.fetch_error = None
        self.failures = {}
        self.disposed = False

    @property
    def driver(self):
        return self.parameters.driver

    def set_query_log_path(self, query_log_path):
        self.query_log_path = query_log_path

    def execute(self, query):
        if query in self.failures:
            raise self.failures[query]
        self.executed.append(query)
        return 0

    execute_script = execute

    def fetch_all(self, query, params=None):
        self.fetched.append((query, params))
        if self.fetch_error is not None:
            raise self.fetch_error
        for fragment, rows in self.rows.items():
            if fragment in query:
                return [dict(row) for row in rows]
        return []

    def get_stats(self):
        return 0.0, len(self.executed)

    def dispose(self):
        self.disposed = True


@pytest.fixture
def environment():
    """Isolated TestEnvironment with real ManagedConnections."""
    env = TestEnvironment()
    yield env
    env.close()


@pytest.fixture
def fake_environment_factory():
    """Factory of TestEnvironments whose registries create FakeManagedConnection instances."""
    def _make():
        return TestEnvironment(connections=ConnectionRegistry(connection_factory=FakeManagedConnection))
    return _make


@pytest.fixture
def fake_environment(fake_environment_factory):
    """TestEnvironment whose registry creates FakeManagedConnection instances."""
    return fake_environment_factory()


@pytest.fixture
def sqlite_parameters(tmp_path):
    """Parameters of a SQLite database file inside the test's tmp_path."""
    return ConnectionParameters(
        driver='sqlite',
        hostname='',
        port=0,
        database_name=str(tmp_path / 'test_db.sqlite'),
        username='tester',
        password='secret'
    )


@pytest.fixture
def pg_parameters():
    """Parameters of a PostgreSQL test database generation (never connected)."""
    return ConnectionParameters(
        driver='postgresql',
        hostname='db.local',
        port=5433,
        database_name='app_7',
        username='app',
        password='s3cret',
        driver_options={'application_name': 'Test Database'}
    )
