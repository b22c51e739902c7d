"""
Database-specific exception classes.
"""
import sqlite3

import psycopg
import sqlalchemy as sa


class DatabaseError(Exception):
    """Base class for all simpledb errors.
    """


class ConnectionError(DatabaseError):
    """Error establishing or re-establishing a database connection.
    """


class ExecutionError(DatabaseError):
    """The driver rejected a statement or the connection dropped mid-statement.

    The driver error is kept as ``original`` and chained as ``__cause__``.
    """

    def __init__(self, message: str, original: BaseException | None = None,
                 sql: str | None = None) -> None:
        super().__init__(message)
        self.original = original
        self.sql = sql


class MappingError(DatabaseError):
    """A column value could not populate a field of the target record.
    """


class ValidationError(DatabaseError):
    """Error in caller input detected before reaching the driver.
    """


class AffinityError(DatabaseError):
    """A connection handle was used by a worker that does not own it.
    """


class TypeConversionError(DatabaseError):
    """Error converting a value between Python and the database.
    """


DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlite3.OperationalError,
    sqlite3.InterfaceError,
    sa.exc.DBAPIError,
    )

IntegrityError = (
    psycopg.IntegrityError,
    sqlite3.IntegrityError,
    )

ProgrammingError = (
    psycopg.ProgrammingError,
    psycopg.DatabaseError,
    sqlite3.ProgrammingError,
    sqlite3.DatabaseError,
    )

DriverError = (
    psycopg.Error,
    sqlite3.Error,
    sa.exc.DBAPIError,
    )
