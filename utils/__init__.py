"""
==========================
Utility Functions Package.
==========================

Pure helpers shared by the connection layer, the assertions and the mocks.

Modules:
    csv_codec: Result set <-> CSV conversion with typed tokens
    query_normalizer: Comment and whitespace insensitive query keys
"""

__version__ = "1.0.0"
__all__ = [
    'NULL_TOKEN',
    'encode',
    'decode',
    'decode_records',
    'decode_rows',
    'decode_value',
    'export_to_csv',
    'normalize_query',
]

from .csv_codec import NULL_TOKEN, decode, decode_records, decode_rows, decode_value, encode, export_to_csv
from .query_normalizer import normalize_query
