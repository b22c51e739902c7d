"""
Statement execution against a session's connection.

Every operation takes a `Session` and a finalized `Statement`, runs it on the
session's handle and applies the session's release policy afterwards. All
selects share one path: execute, read the column metadata, walk the cursor
and coerce each value.

Driver errors are wrapped exactly once into `ExecutionError`.
"""
import datetime
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, TypeVar

from simpledb.connection import ConnectionHandle
from simpledb.exceptions import DriverError, ExecutionError
from simpledb.row import RecordShape, make_row
from simpledb.sql import Statement, render_sql
from simpledb.types import Column, TypeConverter, coerce_bool, coerce_datetime
from simpledb.types import coerce_long, coerce_string
from simpledb.types import columns_from_cursor_description

if TYPE_CHECKING:
    import pandas as pd
    from simpledb.session import Session

__all__ = [
    'insert',
    'update',
    'delete',
    'run',
    'fetch',
    'select_rows',
    'select_row',
    'select_records',
    'select_record',
    'select_scalar',
    'select_long',
    'select_longs',
    'select_string',
    'select_boolean',
    'select_datetime',
    'select_frame',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')


def check_parameter_count(statement: Statement) -> None:
    """Compare placeholder markers with bound parameters before hitting the driver.

    Raises
        ExecutionError: The counts differ
    """
    expected = statement.placeholder_count
    if expected != len(statement.params):
        raise ExecutionError(
            f'Statement has {expected} placeholder(s) but {len(statement.params)} '
            f'parameter(s) were bound', sql=statement.text)


@contextmanager
def executing(session: 'Session', statement: Statement,
              generated_keys: bool = False) -> Iterator[tuple[ConnectionHandle, Any]]:
    """Execute `statement` on the session's handle and yield ``(handle, cursor)``.

    With `generated_keys` the dialect may rewrite the statement so that its
    generated keys can be read from the cursor.

    The cursor is closed and the release policy applied when the block exits,
    whether or not it raised.
    """
    check_parameter_count(statement)
    handle = session.acquire()
    sql = handle.strategy.standardize_sql(statement.text)
    if generated_keys:
        sql = handle.strategy.prepare_insert(sql)
    params = TypeConverter.convert_params(tuple(statement.params))

    if session.dev_mode:
        logger.info(f'SQL: {render_sql(statement.text, params)}')
    logger.debug(f'SQL:\n{sql}\nargs: {params}')

    start = time.time()
    cursor = None
    try:
        cursor = handle.cursor()
        try:
            cursor.execute(sql, params)
        except DriverError as err:
            logger.error(f'Error with query:\nSQL:\n{sql}\nargs: {params}')
            raise ExecutionError(f'Statement failed: {err}', original=err, sql=sql) from err
        yield handle, cursor
    except DriverError as err:
        # raised while reading results, after the statement itself was accepted
        logger.error(f'Error reading results:\nSQL:\n{sql}\nargs: {params}')
        raise ExecutionError(f'Reading results failed: {err}', original=err, sql=sql) from err
    finally:
        elapsed = time.time() - start
        if cursor is not None:
            _close_cursor(cursor)
        handle.addcall(elapsed)
        logger.debug(f'Query time: {elapsed:.4f}s')
        session.release()


def _close_cursor(cursor: Any) -> None:
    try:
        cursor.close()
    except DriverError as err:
        logger.debug(f'Ignoring error closing cursor: {err}')


def insert(session: 'Session', statement: Statement) -> int | None:
    """Execute an INSERT and return the first generated key.

    Returns
        The generated key, or None when the statement produced no identity
    """
    with executing(session, statement, generated_keys=True) as (handle, cursor):
        key = handle.strategy.get_generated_key(cursor)
    logger.debug(f'Insert generated key {key}')
    return key


def _rowcount(session: 'Session', statement: Statement) -> int:
    with executing(session, statement) as (_, cursor):
        count = cursor.rowcount
    return count


def update(session: 'Session', statement: Statement) -> int:
    """Execute an UPDATE and return the number of affected rows."""
    return _rowcount(session, statement)


def delete(session: 'Session', statement: Statement) -> int:
    """Execute a DELETE and return the number of affected rows."""
    return _rowcount(session, statement)


def run(session: 'Session', statement: Statement) -> int:
    """Execute any statement, DDL included.

    Returns
        The driver row count; -1 where the driver reports none
    """
    return _rowcount(session, statement)


def fetch(session: 'Session', statement: Statement,
          limit: int | None = None) -> tuple[list[Column], list[dict[str, Any]]]:
    """Run a query and materialize its rows as coerced dicts.

    Parameters
        session: Session whose connection runs the query
        statement: Finalized statement
        limit: Read at most this many rows; the rest are discarded

    Returns
        Column metadata and the rows in cursor order
    """
    with executing(session, statement) as (handle, cursor):
        columns = columns_from_cursor_description(cursor, handle.dialect)
        if not columns:
            return columns, []
        raw = cursor.fetchall() if limit is None else cursor.fetchmany(limit)
        rows = [make_row(columns, values) for values in raw]
    logger.debug(f'Select query returned {len(rows)} rows')
    return columns, rows


def select_rows(session: 'Session', statement: Statement) -> list[dict[str, Any]]:
    """Return every row as a dict keyed by column label."""
    return fetch(session, statement)[1]


def select_row(session: 'Session', statement: Statement) -> dict[str, Any] | None:
    """Return the first row, or None when the query returns nothing."""
    rows = fetch(session, statement, limit=1)[1]
    return rows[0] if rows else None


def _is_strict(session: 'Session', strict: bool | None) -> bool:
    return session.options.strict_mapping if strict is None else strict


def select_records(session: 'Session', statement: Statement, cls: type[T],
                   strict: bool | None = None) -> list[T]:
    """Return every row as an instance of `cls`.

    Raises
        MappingError: In strict mode, a column has no field or cannot be coerced
    """
    shape = RecordShape.for_class(cls)
    rows = fetch(session, statement)[1]
    strict = _is_strict(session, strict)
    return [shape.build(row, strict=strict) for row in rows]


def select_record(session: 'Session', statement: Statement, cls: type[T],
                  strict: bool | None = None) -> T | None:
    """Return the first row as an instance of `cls`, or None."""
    shape = RecordShape.for_class(cls)
    row = select_row(session, statement)
    if row is None:
        return None
    return shape.build(row, strict=_is_strict(session, strict))


def select_scalar(session: 'Session', statement: Statement) -> Any:
    """Return the first column of the first row, or None."""
    row = select_row(session, statement)
    if not row:
        return None
    return next(iter(row.values()))


def select_long(session: 'Session', statement: Statement) -> int | None:
    return coerce_long(select_scalar(session, statement))


def select_string(session: 'Session', statement: Statement) -> str | None:
    return coerce_string(select_scalar(session, statement))


def select_boolean(session: 'Session', statement: Statement) -> bool | None:
    return coerce_bool(select_scalar(session, statement))


def select_datetime(session: 'Session', statement: Statement) -> datetime.datetime | None:
    return coerce_datetime(select_scalar(session, statement))


def select_longs(session: 'Session', statement: Statement) -> list[int]:
    """Return the first column of every row as integers.

    NULL values are kept as None.
    """
    rows = fetch(session, statement)[1]
    return [coerce_long(next(iter(row.values()))) for row in rows]


def select_frame(session: 'Session', statement: Statement, **kwargs: Any) -> 'pd.DataFrame':
    """Return the result built by the configured data loader.

    With the default loader this is a DataFrame whose ``attrs['column_types']``
    describes each column, with the columns kept when there are no rows.
    """
    columns, rows = fetch(session, statement)
    return session.options.data_loader(rows, columns, **kwargs)
