"""
Database connection handling with SQLAlchemy.

This module provides:
1. Engine creation and management through a thread-safe registry
2. The `ConnectionHandle` class, one physical connection owned by one worker
3. The `open_handle()` function used by sessions to connect lazily

Engines use NullPool: every handle is a dedicated physical connection, and
closing a handle closes the connection. Reuse across statements is the
session's job, not the pool's.
"""
import atexit
import logging
import threading
import time
from collections.abc import Callable
from typing import Any, Self

import sqlalchemy as sa
from simpledb.exceptions import AffinityError, ConnectionError
from simpledb.exceptions import DbConnectionError
from simpledb.options import DatabaseOptions
from simpledb.strategy import get_strategy
from simpledb.utils import get_dialect_name, get_raw_connection
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

__all__ = [
    'ConnectionHandle',
    'open_handle',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[tuple, Engine] = {}
_engine_registry_lock = threading.RLock()


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.
    """
    key = options.engine_key

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        strategy = get_strategy(options.drivername)
        url = strategy.build_connection_url(options)

        engine_kwargs: dict[str, Any] = {'echo': False, 'poolclass': NullPool}
        engine_kwargs.update(strategy.get_engine_kwargs(options))
        engine_kwargs.update(kwargs)

        engine = engine_factory(url, **engine_kwargs)

        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in list(_engine_registry.values()):
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


class ConnectionHandle:
    """Wraps one SQLAlchemy connection bound to the worker that opened it.

    This class provides a thin wrapper around SQLAlchemy connection objects that:
    1. Tracks query execution counts and timing
    2. Tracks auto-commit and transaction mode
    3. Refuses use from any thread other than the one that opened it
    4. Provides access to the underlying DBAPI connection via driver_connection
    """

    def __init__(self, sa_connection: sa.engine.Connection,
                 options: DatabaseOptions | None = None, worker: Any = None) -> None:
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine
        self.options = options
        self.dbapi_connection = sa_connection.connection
        self.driver_connection = get_raw_connection(self.dbapi_connection)
        self._dialect = get_dialect_name(sa_connection)
        self.strategy = get_strategy(self._dialect)
        self.worker = worker
        self.owner = threading.current_thread()
        self.owner_thread = threading.get_ident()
        self.autocommit_enabled = True
        self.in_transaction = False
        self.calls = 0
        self.time = 0

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __repr__(self) -> str:
        state = 'closed' if self.closed else 'open'
        return f'<ConnectionHandle {self.dialect} worker={self.worker!r} {state}>'

    @property
    def dialect(self) -> str:
        """Return the dialect name ('postgresql' or 'sqlite')."""
        return self._dialect

    @property
    def closed(self) -> bool:
        """True once SQLAlchemy or the driver itself reports the connection gone.

        Statements run on the DBAPI connection directly, so a dropped server
        connection is only visible on the driver object.
        """
        return (self.sa_connection.closed or self.sa_connection.invalidated
                or bool(getattr(self.driver_connection, 'closed', False)))

    @property
    def orphaned(self) -> bool:
        """True when the thread that opened the handle has exited."""
        return not self.owner.is_alive()

    def check_owner(self) -> None:
        """Raise AffinityError unless called from the thread that opened the handle.
        """
        if threading.get_ident() != self.owner_thread:
            raise AffinityError(
                f'Connection for worker {self.worker!r} was opened by thread '
                f'{self.owner_thread} and cannot be used from thread {threading.get_ident()}')

    def cursor(self) -> Any:
        """Return a new DBAPI cursor on this connection.
        """
        self.check_owner()
        if self.closed:
            raise ConnectionError(f'Connection for worker {self.worker!r} is closed')
        return self.dbapi_connection.cursor()

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def enable_autocommit(self) -> None:
        self.strategy.enable_autocommit(self.driver_connection)
        self.autocommit_enabled = True

    def disable_autocommit(self) -> None:
        self.strategy.disable_autocommit(self.driver_connection)
        self.autocommit_enabled = False

    def commit(self) -> None:
        self.check_owner()
        self.dbapi_connection.commit()

    def rollback(self) -> None:
        self.check_owner()
        self.dbapi_connection.rollback()

    def close(self, force: bool = False) -> None:
        """Close the physical connection.

        Uncommitted work is rolled back by the pool's reset-on-return. With
        `force` the owner check is skipped; only use it for orphaned handles.
        """
        if not force:
            self.check_owner()
        if not self.sa_connection.closed:
            self.sa_connection.close()
            logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                         f'(avg: {self.time/max(1,self.calls):.3f}s per query)')


def open_handle(options: DatabaseOptions, worker: Any = None,
                engine_factory: Callable[..., Engine] = sa.create_engine) -> ConnectionHandle:
    """Open a physical connection for `worker`.

    Raises
        ConnectionError: The transport could not be established; not retried
    """
    engine = get_engine_for_options(options, engine_factory=engine_factory)
    start = time.time()
    try:
        sa_connection = engine.connect()
    except DbConnectionError as err:
        logger.error(f'Could not connect to {options}: {err}')
        raise ConnectionError(f'Could not connect to {options}: {err}') from err

    handle = ConnectionHandle(sa_connection, options, worker)
    handle.strategy.configure_connection(handle.driver_connection)
    logger.debug(f'Opened {handle.dialect} connection for worker {worker!r} '
                 f'in {time.time() - start:.3f}s')
    return handle
