"""
=======================================
CSV encoding of query result sets.
=======================================

Converts uniform rows (dicts sharing the same keys) to CSV text and back.
Used to compare query results against expected CSV files and to replay CSV
fixtures through mocked cursors.

Token conventions:
    - NULL is written as a sentinel token (default '∅')
    - booleans are written as 't' / 'f' (PostgreSQL style)
    - fields are enclosed only when needed; backslash is the escape character

Functions:
    encode: Rows -> CSV text (header line from the first row's keys)
    decode: One CSV line -> list of raw fields
    decode_records: CSV text -> records, enclosed fields may span lines
    decode_value: Raw field -> Python value (table-driven)
    decode_rows: CSV text -> rows, inverse of encode
    export_to_csv: Encode rows and optionally write them to a file

Example:
    >>> rows = [{'id': '1', 'active': True, 'note': None}]
    >>> encode(rows)
    'id,active,note\\n1,t,∅'
    >>> decode_rows(encode(rows)) == rows
    True
"""

import csv
import io
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

NULL_TOKEN = '∅'
ESCAPE_CHAR = '\\'

# Matched by identity: True == 1 must not encode as 't'
_ENCODED_CONSTANTS = (
    (True, 't'),
    (False, 'f'),
)


def encode_value(value: Any, null_token: str = NULL_TOKEN) -> Any:
    """Turn a Python value into its CSV token."""
    if value is None:
        return null_token
    for constant, token in _ENCODED_CONSTANTS:
        if value is constant:
            return token
    return value


def decode_value(token: str, null_token: str = NULL_TOKEN) -> Any:
    """Turn a raw CSV field into a Python value.

    The null token becomes None, 't' / 'f' become booleans, anything else
    is returned unchanged.
    """
    table = {null_token: None, 't': True, 'f': False}
    return table.get(token, token)


def _writer(buffer, delimiter: str, enclosure: str):
    return csv.writer(
        buffer,
        delimiter=delimiter,
        quotechar=enclosure,
        escapechar=ESCAPE_CHAR,
        lineterminator='\n'
    )


def encode(
    rows: Sequence[Mapping[str, Any]],
    delimiter: str = ',',
    enclosure: str = '"',
    null_token: str = NULL_TOKEN
) -> str:
    """Encode rows to CSV text.

    Args:
        rows: Uniform rows; the first row's keys give the header and column order
        delimiter: Field delimiter
        enclosure: Field enclosure
        null_token: Token written for None

    Returns:
        CSV text without trailing newline, or '' when there are no rows
    """
    if not rows:
        return ''

    buffer = io.StringIO()
    writer = _writer(buffer, delimiter, enclosure)
    headers = list(rows[0].keys())
    writer.writerow(headers)
    for row in rows:
        writer.writerow([encode_value(row[header], null_token) for header in headers])
    return buffer.getvalue().rstrip('\n')


def decode(line: str, delimiter: str = ',', enclosure: str = '"') -> List[str]:
    """Split one CSV line into its raw fields."""
    reader = csv.reader(
        [line.rstrip('\r\n')],
        delimiter=delimiter,
        quotechar=enclosure,
        escapechar=ESCAPE_CHAR
    )
    return next(reader, [])


def decode_records(text: str, delimiter: str = ',', enclosure: str = '"') -> List[List[str]]:
    """Split CSV text into records, skipping blank lines.

    Enclosed fields may span several lines.
    """
    reader = csv.reader(
        io.StringIO(text, newline=''),
        delimiter=delimiter,
        quotechar=enclosure,
        escapechar=ESCAPE_CHAR
    )
    return [record for record in reader if len(record) > 1 or (record and record[0].strip())]


def decode_record(headers: Sequence[str], fields: Sequence[str], null_token: str = NULL_TOKEN) -> Dict[str, Any]:
    """Key raw fields by headers, coercing tokens."""
    return {header: decode_value(field, null_token) for header, field in zip(headers, fields)}


def decode_row(
    headers: Sequence[str],
    line: str,
    delimiter: str = ',',
    enclosure: str = '"',
    null_token: str = NULL_TOKEN
) -> Dict[str, Any]:
    """Decode one data line into a row keyed by headers, coercing tokens."""
    return decode_record(headers, decode(line, delimiter, enclosure), null_token)


def decode_rows(
    text: str,
    delimiter: str = ',',
    enclosure: str = '"',
    null_token: str = NULL_TOKEN
) -> List[Dict[str, Any]]:
    """Decode CSV text produced by ``encode`` back into rows."""
    records = decode_records(text, delimiter, enclosure)
    if not records:
        return []
    headers = records[0]
    return [decode_record(headers, fields, null_token) for fields in records[1:]]


def export_to_csv(
    rows: Sequence[Mapping[str, Any]],
    csv_path: Optional[Union[str, Path]] = None,
    delimiter: str = ',',
    enclosure: str = '"',
    null_token: str = NULL_TOKEN
) -> str:
    """Encode rows and, when a path is given, write them to that file.

    The file gets a trailing newline; the returned text does not.
    """
    csv_text = encode(rows, delimiter, enclosure, null_token)
    if csv_path:
        content = csv_text + '\n' if csv_text else ''
        Path(csv_path).write_text(content, encoding='utf-8')
    return csv_text
