"""
Minimal data access for PostgreSQL and SQLite.

One connection per worker, a fluent builder for positional SQL, and rows
returned as dicts or as instances of your own record classes:

    db = simpledb.connect(drivername='sqlite', database='blog.db')
    rows = db.gen_sql().append_in('SELECT * FROM article WHERE id IN (?)', [1, 2]).select_rows()
"""
__version__ = '0.1.0'

from simpledb.client import SimpleDb, connect
from simpledb.connection import ConnectionHandle, dispose_all_engines
from simpledb.exceptions import AffinityError, ConnectionError, DatabaseError
from simpledb.exceptions import DbConnectionError, ExecutionError
from simpledb.exceptions import IntegrityError, MappingError, ProgrammingError
from simpledb.exceptions import TypeConversionError, ValidationError
from simpledb.options import DatabaseOptions, iterdict_data_loader
from simpledb.options import pandas_numpy_data_loader
from simpledb.session import Session, SessionRegistry
from simpledb.sql import Statement, render_sql
from simpledb.statement import Sql
from simpledb.types import Column, coerce_value

__all__ = [
    'SimpleDb',
    'connect',
    'Session',
    'SessionRegistry',
    'ConnectionHandle',
    'dispose_all_engines',
    'Sql',
    'Statement',
    'render_sql',
    'DatabaseOptions',
    'iterdict_data_loader',
    'pandas_numpy_data_loader',
    'Column',
    'coerce_value',
    'DatabaseError',
    'ConnectionError',
    'ExecutionError',
    'MappingError',
    'ValidationError',
    'AffinityError',
    'TypeConversionError',
    'DbConnectionError',
    'IntegrityError',
    'ProgrammingError',
]
