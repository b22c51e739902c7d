"""
Fluent statement builder.

A `Sql` draft collects SQL fragments and positional parameters, then runs
exactly once through one of its terminal methods:

    db.gen_sql() \\
        .append('SELECT id, title FROM article') \\
        .append('WHERE created_date > ?', since) \\
        .append_in('AND id IN (?)', [1, 2, 3]) \\
        .select_rows()

Placeholders may be written as ``?`` or ``%s``; they are converted to the
driver's style at execution.
"""
import datetime
import logging
from typing import TYPE_CHECKING, Any, Self, TypeVar

from simpledb import query
from simpledb.exceptions import ValidationError
from simpledb.sql import Statement, expand_placeholder, expand_values_tail
from simpledb.sql import flatten_values, has_placeholders, is_values_tail

if TYPE_CHECKING:
    import pandas as pd
    from simpledb.session import Session

__all__ = ['Sql']

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Sql:
    """Statement draft: ordered SQL fragments plus ordered parameters.
    """

    def __init__(self, session: 'Session') -> None:
        self.session = session
        self._fragments: list[str] = []
        self._params: list[Any] = []
        self._consumed = False

    def __repr__(self) -> str:
        return f'Sql({self.text!r}, params={self.params!r})'

    @property
    def text(self) -> str:
        return ' '.join(self._fragments)

    @property
    def params(self) -> tuple:
        return tuple(self._params)

    def _check_open(self) -> None:
        if self._consumed:
            raise ValidationError('Statement already executed; start a new one with gen_sql()')

    def append(self, fragment: str, *params: Any) -> Self:
        """Append a fragment and its parameters.

        Fragments are joined with a single space. The SQL is not validated
        here; a placeholder/parameter mismatch surfaces at execution.
        """
        self._check_open()
        self._fragments.append(fragment)
        self._params.extend(params)
        return self

    def append_in(self, fragment: str, *values: Any) -> Self:
        """Append a fragment whose first placeholder takes a list of values.

        A single array-like argument is flattened first. ``id IN (?)`` with
        three values becomes ``id IN (?, ?, ?)``; a trailing ``VALUES (?)``
        grows into one row of markers. With no values an IN list becomes
        ``IN (NULL)``, which matches nothing.

        Raises
            ValidationError: The fragment has no placeholder, or a VALUES
                clause was given no values
        """
        self._check_open()
        values = flatten_values(values)

        if not has_placeholders(fragment):
            raise ValidationError(f'append_in fragment has no placeholder: {fragment}')

        if is_values_tail(fragment):
            if not values:
                raise ValidationError(f'VALUES clause needs at least one value: {fragment}')
            expanded = expand_values_tail(fragment, len(values))
        else:
            expanded = expand_placeholder(fragment, len(values))

        return self.append(expanded, *values)

    def build(self) -> Statement:
        """Finalize the draft into an immutable statement."""
        return Statement(self.text, self.params)

    def _take(self) -> Statement:
        """Finalize for execution; a draft runs only once."""
        self._check_open()
        self._consumed = True
        return self.build()

    def insert(self) -> int | None:
        """Execute an INSERT and return the generated key, or None."""
        return query.insert(self.session, self._take())

    def update(self) -> int:
        """Execute an UPDATE and return the affected row count."""
        return query.update(self.session, self._take())

    def delete(self) -> int:
        """Execute a DELETE and return the affected row count."""
        return query.delete(self.session, self._take())

    def run(self) -> int:
        """Execute any statement, DDL included, and return the driver row count."""
        return query.run(self.session, self._take())

    def select_rows(self, cls: type[T] | None = None,
                    strict: bool | None = None) -> list[dict[str, Any]] | list[T]:
        """Return all rows as dicts, or as `cls` instances when given."""
        if cls is None:
            return query.select_rows(self.session, self._take())
        return query.select_records(self.session, self._take(), cls, strict=strict)

    def select_row(self, cls: type[T] | None = None,
                   strict: bool | None = None) -> dict[str, Any] | T | None:
        """Return the first row, or None when there is none."""
        if cls is None:
            return query.select_row(self.session, self._take())
        return query.select_record(self.session, self._take(), cls, strict=strict)

    def select_long(self) -> int | None:
        return query.select_long(self.session, self._take())

    def select_longs(self) -> list[int]:
        """Return the first column of every row as integers."""
        return query.select_longs(self.session, self._take())

    def select_string(self) -> str | None:
        return query.select_string(self.session, self._take())

    def select_boolean(self) -> bool | None:
        return query.select_boolean(self.session, self._take())

    def select_datetime(self) -> datetime.datetime | None:
        return query.select_datetime(self.session, self._take())

    def select_frame(self, **kwargs: Any) -> 'pd.DataFrame':
        """Return the result through the configured data loader (a DataFrame by default)."""
        return query.select_frame(self.session, self._take(), **kwargs)
