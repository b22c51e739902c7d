"""
Database facade.

`SimpleDb` owns the options and the session registry for one database. Every
call resolves the calling worker's session, so a single `SimpleDb` may be
shared freely between threads:

    db = SimpleDb('localhost', 'app', 'secret', 'blog')
    key = db.gen_sql() \\
        .append('INSERT INTO article (title, body) VALUES (?, ?)', 'hello', 'world') \\
        .insert()
    title = db.gen_sql().append('SELECT title FROM article WHERE id = ?', key).select_string()

Explicit worker tokens give work that hops between threads a stable session:

    with db.session('job-17').transaction() as session:
        session.gen_sql().append('DELETE FROM article WHERE id = ?', key).delete()
"""
import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, Self

from simpledb.connection import ConnectionHandle, open_handle
from simpledb.options import DatabaseOptions
from simpledb.session import Session, SessionRegistry
from simpledb.statement import Sql

__all__ = ['SimpleDb', 'connect']

logger = logging.getLogger(__name__)


class SimpleDb:
    """Per-worker connections, transactions and statement drafts for one database.

    Parameters
        host: Database server host name
        username: Login user
        password: Login password
        database: Database name, or the file path for SQLite
        **options: Any other `DatabaseOptions` field, e.g. ``drivername='sqlite'``
    """

    def __init__(self, host: str | None = None, username: str | None = None,
                 password: str | None = None, database: str | None = None,
                 **options: Any) -> None:
        opener = options.pop('opener', open_handle)
        given = {'hostname': host, 'username': username,
                 'password': password, 'database': database}
        options.update({k: v for k, v in given.items() if v is not None})
        self._init(DatabaseOptions.load(options), opener)

    def _init(self, options: DatabaseOptions,
              opener: Callable[..., ConnectionHandle]) -> None:
        self.options = options
        self.registry = SessionRegistry(options, opener)
        logger.debug(f'SimpleDb ready for {options}')

    @classmethod
    def from_options(cls, options: DatabaseOptions,
                     opener: Callable[..., ConnectionHandle] = open_handle) -> Self:
        """Build a facade around already validated options."""
        db = cls.__new__(cls)
        db._init(options, opener)
        return db

    def __repr__(self) -> str:
        return f'<SimpleDb {self.options} sessions={len(self.registry)}>'

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def dev_mode(self) -> bool:
        return self.options.dev_mode

    def set_dev_mode(self, enabled: bool) -> None:
        """Log every statement with its parameters substituted, at INFO level.
        """
        self.options.dev_mode = bool(enabled)
        logger.debug(f'Dev mode {"enabled" if enabled else "disabled"}')

    def session(self, worker: Any = None) -> Session:
        """Return the session of `worker`, the calling thread by default."""
        return self.registry.get(worker)

    def gen_sql(self) -> Sql:
        """Start a statement draft on the calling worker's session."""
        return self.session().gen_sql()

    def start_transaction(self) -> None:
        self.session().start_transaction()

    def commit(self) -> None:
        self.session().commit()

    def rollback(self) -> None:
        self.session().rollback()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Run a block in a transaction on the calling worker's session.
        """
        with self.session().transaction() as session:
            yield session

    def run(self, sql: str, *params: Any) -> int:
        """Execute one statement, DDL included, and return the driver row count.

        Examples
            db.run('CREATE TABLE article (id INTEGER PRIMARY KEY, title TEXT)')
        """
        return self.gen_sql().append(sql, *params).run()

    def close(self) -> None:
        """Close the calling worker's connection and forget its session."""
        self.registry.discard()

    def close_all(self) -> None:
        """Close every session this thread is allowed to close."""
        self.registry.close_all()


def connect(options: DatabaseOptions | Mapping[str, Any] | None = None,
            **kw: Any) -> SimpleDb:
    """Create a `SimpleDb` from options, a dict of options, keyword arguments, or a mix.

    Examples
        db = connect(drivername='sqlite', database='/tmp/blog.db')
        db = connect({'hostname': 'localhost', 'username': 'app',
                      'password': 'secret', 'database': 'blog'}, appname='report')
    """
    opener = kw.pop('opener', open_handle)
    return SimpleDb.from_options(DatabaseOptions.load(options, **kw), opener)
