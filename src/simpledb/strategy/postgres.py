"""
PostgreSQL-specific strategy implementation.

Handles PostgreSQL's connection quirks through psycopg:
- Auto-commit through the psycopg `autocommit` attribute
- `%s` placeholders, with literal percent signs escaped
- Generated keys read from a `RETURNING` clause, appended to INSERTs without one
"""
import logging
from typing import TYPE_CHECKING, Any

import psycopg
import sqlalchemy as sa
from simpledb.sql import escape_percent_signs_in_literals, has_returning_clause
from simpledb.sql import standardize_placeholders
from simpledb.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from simpledb.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for PostgreSQL.

        Credentials are escaped by SQLAlchemy, so passwords may hold any character.
        """
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        if options.appname:
            query['application_name'] = options.appname

        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port,
            database=options.database,
            query=query
        )

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for PostgreSQL."""
        return {}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'username', 'password', 'database', 'port']

    def configure_connection(self, raw_conn: Any) -> None:
        """Configure connection settings for PostgreSQL.

        psycopg refuses to switch auto-commit inside a transaction, so any
        transaction left open by dialect initialization is rolled back first.
        """
        if raw_conn.info.transaction_status != psycopg.pq.TransactionStatus.IDLE:
            raw_conn.rollback()
        self.enable_autocommit(raw_conn)

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode for PostgreSQL.
        """
        raw_conn.autocommit = True

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode for PostgreSQL.
        """
        raw_conn.autocommit = False

    def standardize_sql(self, sql: str) -> str:
        """Convert ? placeholders to %s and escape percent signs in literals.
        """
        return standardize_placeholders(escape_percent_signs_in_literals(sql), dialect='postgresql')

    def prepare_insert(self, sql: str) -> str:
        """Append ``RETURNING *`` unless the INSERT already has a RETURNING clause.

        PostgreSQL has no connection-level last insert id; the key is read
        back from the first column of the returned rows.
        """
        if has_returning_clause(sql):
            return sql
        return f'{sql.rstrip().rstrip(";").rstrip()} RETURNING *'

    def get_generated_key(self, cursor: Any) -> int | None:
        """Return the first column of the first returned row.

        A non-integer first column, e.g. a text primary key, yields None.
        """
        if cursor.description is None:
            return None
        row = cursor.fetchone()
        if not row or row[0] is None:
            return None
        key = row[0]
        if isinstance(key, bool) or not isinstance(key, int):
            logger.debug(f'First returned column is {type(key).__name__}, not a generated key')
            return None
        return key
