"""
=================================================
Mocked row cursors replaying CSV or callback data.
=================================================

Stands in for a live query result in unit tests: code under test calls
``fetch()`` / ``fetchone()`` until it gets None, exactly as it would on a
result from ``ManagedConnection.query``.

Fixture data maps queries to sources. Keys are normalized, so comments and
formatting differences do not matter. A source is either:
    - a callable returning the next row, or None / False at end of data
    - the path of a CSV file (first non-blank line = headers)

CSV values are coerced: the null token (default '∅') -> None,
't' -> True, 'f' -> False.

Example:
    >>> from unittest.mock import MagicMock
    >>>
    >>> db = MagicMock()
    >>> db.query.side_effect = query_side_effect({
    ...     "SELECT id, name FROM country": 'tests/fixtures/countries.csv',
    ... })
    >>> cursor = db.query("SELECT id, name\\n  FROM country  -- all")
    >>> cursor.fetch()
    {'id': '1', 'name': 'FR'}
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Union

from db.errors import MalformedFixtureError, UnmatchedQueryError
from utils.csv_codec import NULL_TOKEN, decode_rows
from utils.query_normalizer import normalize_query

Row = Dict[str, Any]
RowSource = Union[Callable[[], Any], str, Path]


@dataclass
class RowCursorState:
    """Inspectable state of a RowCursor.

    Attributes:
        rows: Rows to replay, in order
        position: Index of the next row to return
        exhausted: True once end of data was signalled; terminal
    """

    rows: List[Row] = field(default_factory=list)
    position: int = 0
    exhausted: bool = False


class RowCursor:
    """Stepped cursor over a fixed list of rows.

    Once end of data is reached the cursor stays exhausted; it cannot be
    restarted.
    """

    def __init__(self, state: Optional[RowCursorState] = None):
        self.state = state if state is not None else RowCursorState()

    def __iter__(self) -> Iterator[Row]:
        return iter(self.fetch, None)

    @classmethod
    def from_rows(cls, rows: List[Row]) -> 'RowCursor':
        return cls(RowCursorState(rows=list(rows)))

    @classmethod
    def from_csv(
        cls,
        csv_path: Union[str, Path],
        delimiter: str = ',',
        enclosure: str = '"',
        null_token: str = NULL_TOKEN
    ) -> 'RowCursor':
        """Load a CSV fixture; blank lines are ignored."""
        text = Path(csv_path).read_text(encoding='utf-8')
        return cls(RowCursorState(rows=decode_rows(text, delimiter, enclosure, null_token)))

    @property
    def exhausted(self) -> bool:
        return self.state.exhausted

    def fetch(self) -> Optional[Row]:
        """Return the next row, or None at end of data (and ever after)."""
        state = self.state
        if state.exhausted:
            return None
        if state.position >= len(state.rows):
            state.exhausted = True
            return None
        row = state.rows[state.position]
        state.position += 1
        return dict(row)

    fetchone = fetch

    def fetchall(self) -> List[Row]:
        """Return all remaining rows."""
        return list(self)


class CallbackRowCursor(RowCursor):
    """Cursor forwarding each fetch to a callback.

    The callback returns the next row, or None / False at end of data. After
    end of data it is not called again.
    """

    def __init__(self, callback: Callable[[], Any], state: Optional[RowCursorState] = None):
        super().__init__(state)
        self.callback = callback

    def fetch(self) -> Optional[Row]:
        if self.state.exhausted:
            return None
        row = self.callback()
        if row is None or row is False:
            self.state.exhausted = True
            return None
        self.state.position += 1
        return row

    fetchone = fetch


def create_cursor(source: RowSource, null_token: str = NULL_TOKEN) -> RowCursor:
    """Build a cursor from a callback or a CSV file path.

    Raises:
        MalformedFixtureError: If source is neither callable nor an existing file
    """
    if callable(source):
        return CallbackRowCursor(source)
    if isinstance(source, (str, Path)) and Path(source).is_file():
        return RowCursor.from_csv(source, null_token=null_token)
    raise MalformedFixtureError(f"Fixture source misformed: '{source}'.")


def lookup(query: str, data: Mapping[str, RowSource], null_token: str = NULL_TOKEN) -> RowCursor:
    """Resolve a query to a fresh cursor using normalized fixture keys.

    Args:
        query: Query text issued by the code under test
        data: Mapping of query -> callback or CSV path
        null_token: Token decoded as None in CSV fixtures

    Raises:
        UnmatchedQueryError: If no key matches the normalized query
        MalformedFixtureError: If the matched value is neither callable nor an existing file
    """
    normalized_data = {normalize_query(raw_query): source for raw_query, source in data.items()}
    normalized_query = normalize_query(query)

    if normalized_query not in normalized_data:
        raise UnmatchedQueryError(normalized_query)

    source = normalized_data[normalized_query]
    try:
        return create_cursor(source, null_token)
    except MalformedFixtureError as e:
        raise MalformedFixtureError(
            f"Value of key '{normalized_query}' of data misformed: '{source}'."
        ) from e


def query_side_effect(data: Mapping[str, RowSource], null_token: str = NULL_TOKEN) -> Callable[..., RowCursor]:
    """Return a ``side_effect`` for a mocked ``query`` method.

    Every call builds a new cursor, so the same query can be replayed.
    """
    def _query(query: str, *args, **kwargs) -> RowCursor:
        return lookup(query, data, null_token)

    return _query
