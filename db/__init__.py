"""
=======================================
Database access layer for test suites.
=======================================

Wraps SQLAlchemy connections with lazy connection, per-query timing, an
optional query log and uniform error wrapping.

Modules:
    errors: Exception taxonomy
    parameters: Immutable ConnectionParameters and URL mapping
    managed_connection: ManagedConnection instrumented handle
    registry: ConnectionRegistry and TestEnvironment shared state
"""

__version__ = "0.1.0"
__all__ = [
    'ConnectionParameters',
    'ManagedConnection',
    'ConnectionRegistry',
    'TestEnvironment',
    'get_default_environment',
    'reset_default_environment',
]

from .managed_connection import ManagedConnection
from .parameters import ConnectionParameters
from .registry import (
    ConnectionRegistry,
    TestEnvironment,
    get_default_environment,
    reset_default_environment,
)
