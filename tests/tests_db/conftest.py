"""
Fixtures for the database access layer tests.

Key fixtures:
- fake_engine_factory: engine factory returning FakeEngine, which hands out
  FakeConnection objects recording every statement they receive.
"""

from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql


class FakeConnection:
    """
    Stand-in for sqlalchemy.engine.Connection.

    ``failures`` maps a statement to the exception exec_driver_sql raises,
    ``scalars`` maps a statement to the value its result's scalar() returns.
    """

    def __init__(self):
        self.statements = []
        self.failures = {}
        self.scalars = {"SHOW server_version_num;": '150000'}
        self.closed = False
        self.dialect = postgresql.dialect()

    def exec_driver_sql(self, statement):
        self.statements.append(statement)
        if statement in self.failures:
            raise self.failures[statement]
        value = self.scalars.get(statement)
        return SimpleNamespace(
            rowcount=1,
            scalar=lambda: value,
            fetchone=lambda: (value,),
        )

    def close(self):
        self.closed = True


class FakeEngine:
    """Stand-in for sqlalchemy.engine.Engine counting connect() calls."""

    def __init__(self, connect_error=None):
        self.connections = []
        self.connect_error = connect_error
        self.disposed = False

    def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        connection = FakeConnection()
        self.connections.append(connection)
        return connection

    def dispose(self):
        self.disposed = True


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def fake_engine_factory(fake_engine):
    """Engine factory recording the URL and options it was called with."""
    calls = []

    def factory(url, **kwargs):
        calls.append((url, kwargs))
        return fake_engine

    factory.calls = calls
    return factory
