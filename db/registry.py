"""
========================================================
Connection registry and per-run test environment state.
========================================================

A TestEnvironment owns the two pieces of state shared across test-case
instantiations within one test run:

    - connections: a ConnectionRegistry holding at most one
      ManagedConnection per ConnectionParameters key
    - built_databases: names of the databases already built during the run

Environments are explicit objects: isolated tests create their own, while
DbTestCase instances share the process default returned by
``get_default_environment()``.

Example:
    >>> from db.registry import TestEnvironment
    >>>
    >>> environment = TestEnvironment()
    >>> first = environment.connections.get(params)
    >>> assert environment.connections.get(params) is first
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Set, Tuple

from db.managed_connection import ManagedConnection
from db.parameters import ConnectionParameters

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Lookup-or-create cache of ManagedConnection instances."""

    def __init__(self, connection_factory: Callable[..., ManagedConnection] = ManagedConnection):
        self._connection_factory = connection_factory
        self._connections: Dict[str, ManagedConnection] = {}

    def __len__(self):
        return len(self._connections)

    def __contains__(self, parameters: ConnectionParameters) -> bool:
        return parameters.key in self._connections

    def get(self, parameters: ConnectionParameters, query_log_path: Optional[str] = None) -> ManagedConnection:
        """Return the cached connection for these parameters, creating it if absent.

        An existing entry is returned as is: it is never reconnected and its
        query log path is left untouched.
        """
        key = parameters.key
        if key not in self._connections:
            logger.debug(f"Registering connection for {parameters.describe()}")
            self._connections[key] = self._connection_factory(parameters, query_log_path=query_log_path)
        return self._connections[key]

    def get_all_stats(self) -> Dict[str, Tuple[float, int]]:
        """Return ``{parameters key: (elapsed seconds, query count)}`` for every entry."""
        return {key: connection.get_stats() for key, connection in self._connections.items()}

    def dispose_all(self) -> None:
        """Close every live connection and forget all entries."""
        for connection in self._connections.values():
            connection.dispose()
        self._connections.clear()


@dataclass
class TestEnvironment:
    """State shared by the test cases of one run.

    Attributes:
        connections: Registry of managed connections
        built_databases: Names of databases built during this run
    """

    __test__ = False

    connections: ConnectionRegistry = field(default_factory=ConnectionRegistry)
    built_databases: Set[str] = field(default_factory=set)

    def is_built(self, database_name: str) -> bool:
        return database_name in self.built_databases

    def mark_built(self, database_name: str) -> None:
        self.built_databases.add(database_name)

    def close(self) -> None:
        """Dispose every connection; built databases stay recorded."""
        self.connections.dispose_all()


_default_environment: Optional[TestEnvironment] = None


def get_default_environment() -> TestEnvironment:
    """Return the process-wide environment, creating it on first use."""
    global _default_environment
    if _default_environment is None:
        _default_environment = TestEnvironment()
    return _default_environment


def reset_default_environment() -> None:
    """Close and discard the process-wide environment."""
    global _default_environment
    if _default_environment is not None:
        _default_environment.close()
    _default_environment = None
