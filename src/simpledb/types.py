"""
Consolidated type handling for database operations.

This module provides:
- TypeConverter: Convert Python values to database-compatible parameters
- coerce_* functions: Convert driver result values to portable Python values
- Column: Column metadata from cursor descriptions
- resolve_type: Resolve database type codes to Python types
- SQLite adapters and converters
"""
import datetime
import decimal
import json
import logging
import math
import sqlite3
from typing import Any, Self

import dateutil.parser
import numpy as np
import pandas as pd
from psycopg.postgres import types as pg_types
from simpledb.exceptions import TypeConversionError

logger = logging.getLogger(__name__)

TRUE_STRINGS: set[str] = {'1', 'true'}
NUMPY_FLOAT_TYPES = (np.floating,)
NUMPY_INT_TYPES = (np.integer, np.unsignedinteger)


# Type Converter - Handles Python -> Database value conversion

def _convert_numpy_value(val: Any) -> float | int | datetime.datetime | None:
    """Convert NumPy value to Python type."""
    if isinstance(val, np.floating) and np.isnan(val):
        return None

    if isinstance(val, np.datetime64):
        if np.isnat(val):
            return None
        return pd.Timestamp(val).to_pydatetime()

    if isinstance(val, (*NUMPY_FLOAT_TYPES, *NUMPY_INT_TYPES, np.bool_)):
        return val.item()

    return val


class TypeConverter:
    """Universal type conversion for database parameters.

    Handles NumPy and Pandas scalar types so they bind as plain Python values.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a database-compatible format."""
        if value is None:
            return None

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if value is pd.NaT:
            return None

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        if isinstance(value, (*NUMPY_FLOAT_TYPES, *NUMPY_INT_TYPES, np.bool_, np.datetime64)):
            return _convert_numpy_value(value)

        if pd.api.types.is_scalar(value) and pd.isna(value):
            return None

        return value

    @staticmethod
    def convert_params(params: Any) -> Any:
        """Convert a collection of parameters for database operations."""
        if params is None:
            return None

        if isinstance(params, list | tuple):
            return type(params)(TypeConverter.convert_value(v) for v in params)

        return TypeConverter.convert_value(params)


# Value Coercion - Database -> Python value conversion

def _is_single_byte(value: Any) -> bool:
    return isinstance(value, bytes | bytearray | memoryview) and len(value) == 1


def coerce_bool(value: Any) -> bool | None:
    """Coerce a driver value to a boolean.

    Single-byte bit blobs are true when the byte is non-zero. Text values
    are true only for ``'1'`` and ``'true'`` (case-insensitive), which covers
    drivers that report BIT columns as strings.

    >>> coerce_bool(b'\\x00'), coerce_bool(b'\\x07'), coerce_bool('TRUE')
    (False, True, True)
    """
    if value is None:
        return None
    if isinstance(value, bool | np.bool_):
        return bool(value)
    if _is_single_byte(value):
        return bytes(value)[0] != 0
    if isinstance(value, bytes | bytearray | memoryview):
        value = bytes(value).decode()
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    if isinstance(value, int | float | decimal.Decimal | np.number):
        return value != 0
    raise TypeConversionError(f'Cannot convert {type(value).__name__} to bool')


def coerce_long(value: Any) -> int | None:
    """Coerce a driver value to an integer."""
    if value is None:
        return None
    if isinstance(value, bool | int):
        return int(value)
    if _is_single_byte(value):
        return bytes(value)[0]
    if isinstance(value, float | decimal.Decimal | np.number):
        return int(value)
    if isinstance(value, bytes | bytearray | memoryview):
        value = bytes(value).decode()
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as err:
            raise TypeConversionError(f'Cannot convert {value!r} to int') from err
    raise TypeConversionError(f'Cannot convert {type(value).__name__} to int')


def coerce_float(value: Any) -> float | None:
    """Coerce a driver value to a float."""
    if value is None:
        return None
    if isinstance(value, int | float | decimal.Decimal | np.number):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError as err:
            raise TypeConversionError(f'Cannot convert {value!r} to float') from err
    raise TypeConversionError(f'Cannot convert {type(value).__name__} to float')


def coerce_string(value: Any) -> str | None:
    """Coerce a driver value to text."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value).decode()
    if isinstance(value, datetime.datetime):
        return value.isoformat(sep=' ')
    return str(value)


def coerce_datetime(value: Any) -> datetime.datetime | None:
    """Coerce a driver value to a calendar datetime without timezone conversion.
    """
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time.min)
    if isinstance(value, np.datetime64):
        return _convert_numpy_value(value)
    if isinstance(value, bytes | bytearray | memoryview):
        value = bytes(value).decode()
    if isinstance(value, str):
        try:
            return dateutil.parser.isoparse(value.strip())
        except ValueError as err:
            raise TypeConversionError(f'Cannot convert {value!r} to datetime') from err
    raise TypeConversionError(f'Cannot convert {type(value).__name__} to datetime')


def coerce_date(value: Any) -> datetime.date | None:
    """Coerce a driver value to a date."""
    if value is None:
        return None
    if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
        return value
    return coerce_datetime(value).date()


_COERCERS = {
    bool: coerce_bool,
    int: coerce_long,
    float: coerce_float,
    str: coerce_string,
    datetime.datetime: coerce_datetime,
    datetime.date: coerce_date,
}


def get_coercer(python_type: Any):
    """Return the coercion function for a Python type, or None."""
    return _COERCERS.get(python_type)


def coerce_value(value: Any, python_type: type | None = None) -> Any:
    """Convert a driver-native result value into a portable Python value.

    Parameters
        value: Value as returned by the DBAPI cursor
        python_type: Declared column type from resolve_type, if known

    Returns
        The coerced value; None stays None
    """
    if value is None:
        return None

    if isinstance(value, bool):
        return value

    if python_type is bool or _is_single_byte(value):
        return coerce_bool(value)

    if isinstance(value, pd.Timestamp | np.datetime64):
        return coerce_datetime(value)

    if isinstance(value, datetime.datetime):
        return value

    if python_type is datetime.datetime and isinstance(value, str):
        return coerce_datetime(value)

    if isinstance(value, decimal.Decimal):
        if python_type is int:
            return int(value)
        return float(value)

    if isinstance(value, (*NUMPY_FLOAT_TYPES, *NUMPY_INT_TYPES, np.bool_)):
        return value.item()

    return value


# Type Resolution - Database type codes -> Python types

_oid = lambda x: pg_types.get(x).oid

postgres_types: dict[int, type] = {}

for v in [_oid('"char"'), _oid('bpchar'), _oid('character varying'), _oid('character'),
          _oid('json'), _oid('name'), _oid('text'), _oid('uuid'), _oid('varchar')]:
    postgres_types[v] = str

for v in [_oid('bigint'), _oid('int2'), _oid('int4'), _oid('int8'), _oid('integer')]:
    postgres_types[v] = int

for v in [_oid('float4'), _oid('float8'), _oid('double precision'), _oid('numeric')]:
    postgres_types[v] = float

postgres_types[_oid('date')] = datetime.date

for v in [_oid('timestamp with time zone'), _oid('timestamp without time zone'),
          _oid('timestamptz'), _oid('timestamp')]:
    postgres_types[v] = datetime.datetime

for v in [_oid('bool'), _oid('boolean'), _oid('bit')]:
    postgres_types[v] = bool

postgres_types[_oid('bytea')] = bytes


sqlite_types: dict[str, type] = {
    'INTEGER': int,
    'REAL': float,
    'TEXT': str,
    'BLOB': bytes,
    'NUMERIC': float,
    'BIT': bool,
    'BOOLEAN': bool,
    'DATE': datetime.date,
    'DATETIME': datetime.datetime,
    'TIMESTAMP': datetime.datetime,
}


def resolve_type(db_type: str, type_code: Any) -> type | None:
    """Resolve database type code to Python type.

    Parameters
        db_type: Database type ('postgresql', 'sqlite')
        type_code: Database-specific type code from the cursor description

    Returns
        Python type, or None when the driver reports nothing useful
    """
    if isinstance(type_code, type):
        return type_code

    if db_type == 'postgresql':
        return postgres_types.get(type_code)

    if db_type == 'sqlite' and isinstance(type_code, str):
        base_type = type_code.split('(')[0].strip().upper()
        return sqlite_types.get(base_type)

    return None


# Column - Metadata from cursor descriptions

class Column:
    """Database column metadata."""

    def __init__(self, name: str, type_code: Any, python_type: type | None = None):
        self.name = name
        self.type_code = type_code
        self.python_type = python_type

    @classmethod
    def from_cursor_description(cls, description_item: Any, connection_type: str) -> Self:
        """Create a Column from cursor description item."""
        name = description_item[0]
        type_code = description_item[1] if len(description_item) > 1 else None
        return cls(name, type_code, resolve_type(connection_type, type_code))

    def __repr__(self) -> str:
        return (f'Column(name={self.name!r}, type_code={self.type_code!r}, '
                f'python_type={self.python_type.__name__ if self.python_type else None})')

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'type_code': self.type_code,
            'python_type': self.python_type.__name__ if self.python_type else None,
        }

    @staticmethod
    def get_names(columns: list[Self]) -> list[str]:
        return [col.name for col in columns]

    @staticmethod
    def get_column_types_dict(columns: list[Self]) -> dict[str, dict]:
        return {col.name: col.to_dict() for col in columns}


def columns_from_cursor_description(cursor: Any, connection_type: str) -> list[Column]:
    """Create Column objects from cursor description."""
    if cursor.description is None:
        return []
    return [Column.from_cursor_description(desc, connection_type)
            for desc in cursor.description]


# SQLite Adapters - Database value converters

def adapt_datetime(val: datetime.datetime) -> str:
    """Store datetimes as ISO 8601 text with a space separator."""
    return val.isoformat(sep=' ')


def adapt_date(val: datetime.date) -> str:
    return val.isoformat()


def convert_date(val: bytes) -> datetime.date:
    """Convert ISO 8601 date string to date object."""
    return dateutil.parser.isoparse(val.decode()).date()


def convert_datetime(val: bytes) -> datetime.datetime:
    """Convert ISO 8601 datetime string to datetime object."""
    return dateutil.parser.isoparse(val.decode())


def convert_bit(val: bytes) -> bool:
    """Convert a stored BIT/BOOLEAN value to bool.

    SQLite hands converters the textual form of integers, so ``b'0'`` is
    false and any other number is true; a raw one-byte blob is true when
    its byte is non-zero.
    """
    text = val.decode(errors='replace').strip()
    if text.lstrip('-').isdigit():
        return int(text) != 0
    if len(val) == 1:
        return val[0] != 0
    return text.lower() in TRUE_STRINGS


def register_sqlite_adapters() -> None:
    """Register SQLite adapters and converters.

    Registration is process-wide in the sqlite3 module.
    """
    sqlite3.register_adapter(datetime.datetime, adapt_datetime)
    sqlite3.register_adapter(datetime.date, adapt_date)
    sqlite3.register_adapter(dict, json.dumps)
    sqlite3.register_adapter(list, json.dumps)

    sqlite3.register_converter('date', convert_date)
    sqlite3.register_converter('datetime', convert_datetime)
    sqlite3.register_converter('timestamp', convert_datetime)
    sqlite3.register_converter('bit', convert_bit)
    sqlite3.register_converter('boolean', convert_bit)
