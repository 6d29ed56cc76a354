"""
==========================================
Query result mocks for database-free tests.
==========================================

Modules:
    row_cursor: RowCursor replaying CSV fixtures or callbacks, and query lookup
"""

__version__ = "0.1.0"
__all__ = [
    'RowCursor',
    'RowCursorState',
    'CallbackRowCursor',
    'create_cursor',
    'lookup',
    'query_side_effect',
]

from .row_cursor import (
    CallbackRowCursor,
    RowCursor,
    RowCursorState,
    create_cursor,
    lookup,
    query_side_effect,
)
