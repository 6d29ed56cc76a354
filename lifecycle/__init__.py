"""
==============================================
Test database lifecycle package.
==============================================

Builds disposable test databases from declarative directives, once per test
run, and retires old generations of them.

Modules:
    build_directives: Directive parsing and in-process / psql dispatch
    database_lifecycle: Build-once orchestration, pruning and assertions
    db_test_case: unittest base class wiring it all together

Architecture:
    - Configuration: Centralized in core/config.py (loads from .env)
    - SQL Generation: sql/ package
    - Connections: db/ package (ManagedConnection, TestEnvironment)

Example:
    >>> from lifecycle import DatabaseLifecycleManager
    >>>
    >>> manager = DatabaseLifecycleManager(params, 'tests/resources/build_db.py')
    >>> db = manager.ensure_built()
"""

__version__ = "0.1.0"
__all__ = [
    'BuildDirective',
    'BuildDirectiveInterpreter',
    'DatabaseLifecycleManager',
    'DbTestCase',
    'load_directives',
    'select_generations_to_drop',
]

from .build_directives import BuildDirective, BuildDirectiveInterpreter, load_directives
from .database_lifecycle import DatabaseLifecycleManager, select_generations_to_drop
from .db_test_case import DbTestCase
