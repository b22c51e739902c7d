"""
SQLite-specific strategy implementation.

Handles SQLite's connection quirks:
- Auto-commit expressed through the sqlite3 `isolation_level` attribute
- `?` placeholders
- Declared-type converters for date, datetime and bit columns
- Generated keys read from `cursor.lastrowid`
"""
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from simpledb.sql import standardize_placeholders
from simpledb.strategy.base import DatabaseStrategy, register_strategy
from simpledb.types import register_sqlite_adapters

if TYPE_CHECKING:
    from simpledb.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions') -> str:
        """Build the SQLAlchemy connection URL for SQLite."""
        return f'sqlite:///{options.database}'

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite."""
        return {
            'connect_args': {
                'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
                # ConnectionHandle enforces ownership; this lets an exited
                # worker's connection be closed from another thread
                'check_same_thread': False,
            }
        }

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def configure_connection(self, raw_conn: Any) -> None:
        """Configure connection settings for SQLite.
        """
        register_sqlite_adapters()
        raw_conn.execute('PRAGMA foreign_keys = ON')
        self.enable_autocommit(raw_conn)

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode for SQLite.
        """
        raw_conn.isolation_level = None

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode for SQLite.
        """
        raw_conn.isolation_level = 'DEFERRED'

    def standardize_sql(self, sql: str) -> str:
        """Convert PostgreSQL-style placeholders (%s) to SQLite-style (?).
        """
        return standardize_placeholders(sql, dialect='sqlite')

    def get_generated_key(self, cursor: Any) -> int | None:
        """Return the rowid of the inserted row.

        SQLite only reports the rowid of the last row inserted, so a
        multi-row INSERT returns the key of its last row, not its first.
        Rowids of one statement are not guaranteed to be consecutive, so the
        first key is not derived from the row count.

        `lastrowid` keeps its previous value when nothing was inserted, so a
        zero rowcount means no key.
        """
        if cursor.rowcount == 0:
            return None
        return cursor.lastrowid or None
