"""
Per-worker connection and transaction state.

A `Session` owns at most one live `ConnectionHandle` and the transaction flag
that goes with it. Sessions are keyed by an explicit worker token in a
`SessionRegistry`; when no token is given the current thread identity is
used. A session is never shared between workers, so no locking happens
inside it. Only the registry, which is touched from arbitrary workers, is
lock-protected.

Examples
    session = db.session('request-42')
    with session.transaction():
        session.gen_sql().append('UPDATE article SET title = ?', 'x').update()
"""
import atexit
import logging
import threading
import weakref
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from simpledb.connection import ConnectionHandle, open_handle
from simpledb.exceptions import AffinityError, DriverError, ExecutionError
from simpledb.options import DatabaseOptions
from simpledb.statement import Sql

__all__ = ['Session', 'SessionRegistry', 'current_worker']

logger = logging.getLogger(__name__)

_registries: 'weakref.WeakSet[SessionRegistry]' = weakref.WeakSet()


def current_worker() -> int:
    """Default worker token: the identity of the calling thread."""
    return threading.get_ident()


class Session:
    """Connection and transaction state of one worker.

    The handle is opened lazily by `acquire()`. With the default
    `keep_connection=True` it then stays open across statements until
    `close()`; otherwise `release()` closes it after every statement that
    runs outside a transaction.

    Nested transactions are not supported: a second `start_transaction()`
    keeps the transaction already running and logs a warning. No savepoints
    are emulated.
    """

    def __init__(self, options: DatabaseOptions, worker: Any = None,
                 opener: Callable[..., ConnectionHandle] = open_handle,
                 thread: threading.Thread | None = None) -> None:
        self.options = options
        self.worker = worker
        self.thread = thread
        self.handle: ConnectionHandle | None = None
        self.transaction_active = False
        self._opener = opener

    def __repr__(self) -> str:
        return (f'<Session worker={self.worker!r} handle={self.handle!r} '
                f'transaction={self.transaction_active}>')

    @property
    def dev_mode(self) -> bool:
        return self.options.dev_mode

    @property
    def is_open(self) -> bool:
        return self.handle is not None and not self.handle.closed

    def acquire(self) -> ConnectionHandle:
        """Return the open handle, opening a new connection if needed.

        Raises
            ConnectionError: The connection could not be established
            AffinityError: The open handle belongs to another thread
        """
        if self.is_open:
            self.handle.check_owner()
            return self.handle

        if self.handle is not None and self.transaction_active:
            logger.warning(f'Connection for worker {self.worker!r} was lost inside a '
                           'transaction; reopening, uncommitted work is gone')

        self.handle = self._opener(self.options, self.worker)
        if self.transaction_active:
            self.handle.disable_autocommit()
            self.handle.in_transaction = True
        return self.handle

    def release(self) -> None:
        """Apply the release policy after a statement has run.
        """
        if self.options.keep_connection or self.transaction_active:
            return
        self.close()

    def start_transaction(self) -> None:
        """Disable auto-commit and mark the transaction active.
        """
        handle = self.acquire()
        if self.transaction_active:
            logger.warning(f'Transaction already active for worker {self.worker!r}; '
                           'nested transactions are not supported')
        if handle.autocommit_enabled:
            handle.disable_autocommit()
        handle.in_transaction = True
        self.transaction_active = True
        logger.debug(f'Started transaction for worker {self.worker!r}')

    def commit(self) -> None:
        """Commit the active transaction; a no-op when none is active.

        Raises
            ExecutionError: The driver rejected the commit
        """
        self._end_transaction('commit')

    def rollback(self) -> None:
        """Roll back the active transaction; a no-op when none is active.

        Raises
            ExecutionError: The driver rejected the rollback
        """
        self._end_transaction('rollback')

    def _end_transaction(self, action: str) -> None:
        if self.handle is None or not self.transaction_active:
            logger.debug(f'{action} without an active transaction ignored')
            return

        handle = self.handle
        handle.check_owner()
        try:
            getattr(handle, action)()
            logger.debug(f'{action.capitalize()} for worker {self.worker!r}')
        except DriverError as err:
            logger.error(f'{action.capitalize()} failed for worker {self.worker!r}: {err}')
            raise ExecutionError(f'{action} failed: {err}', original=err) from err
        finally:
            self.transaction_active = False
            self._restore_autocommit(handle)

    def _restore_autocommit(self, handle: ConnectionHandle) -> None:
        """Return the handle to auto-commit mode, discarding it if that fails.
        """
        handle.in_transaction = False
        if handle.closed:
            return
        try:
            handle.enable_autocommit()
        except DriverError as err:
            logger.warning(f'Could not restore auto-commit for worker {self.worker!r}, '
                           f'discarding connection: {err}')
            self.close()

    @contextmanager
    def transaction(self) -> Iterator['Session']:
        """Run a block in a transaction: commit on success, roll back on error.

        Examples
            with session.transaction():
                session.gen_sql().append('DELETE FROM article').delete()
        """
        self.start_transaction()
        try:
            yield self
        except BaseException:
            logger.warning('Rolling back the current transaction')
            self.rollback()
            raise
        self.commit()

    def close(self, force: bool = False) -> None:
        """Close the handle and clear the transaction state.

        Close failures are logged, never raised. Closing from a thread other
        than the owner raises AffinityError and leaves the session untouched,
        unless `force` is set for a handle whose owner has exited.
        """
        handle = self.handle
        if handle is not None:
            if not force:
                handle.check_owner()
            try:
                handle.close(force=force)
            except Exception as err:
                logger.warning(f'Error closing connection for worker {self.worker!r}: {err}')
        self.handle = None
        self.transaction_active = False

    def gen_sql(self) -> Sql:
        """Start a new statement draft bound to this session."""
        return Sql(self)


class SessionRegistry:
    """Process-wide registry of sessions keyed by worker token.

    Sessions keyed by thread identity remember their thread. Once that
    thread has exited its session is closed and forgotten the next time a
    session is registered, so a reused thread identity never inherits a
    stale connection or transaction.
    """

    def __init__(self, options: DatabaseOptions,
                 opener: Callable[..., ConnectionHandle] = open_handle) -> None:
        self.options = options
        self._opener = opener
        self._sessions: dict[Any, Session] = {}
        self._lock = threading.RLock()
        _registries.add(self)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get(self, worker: Any = None) -> Session:
        """Return the session for `worker`, creating it on first use.
        """
        thread = None
        if worker is None:
            worker = current_worker()
            thread = threading.current_thread()
        with self._lock:
            session = self._sessions.get(worker)
            if session is not None and (thread is None or session.thread in {None, thread}):
                return session

        self.reap()
        with self._lock:
            session = self._sessions.get(worker)
            if session is None:
                session = Session(self.options, worker, self._opener, thread)
                self._sessions[worker] = session
                logger.debug(f'Registered session for worker {worker!r}')
            return session

    def reap(self) -> int:
        """Close and forget the sessions of threads that have exited.

        Returns
            Number of sessions dropped
        """
        with self._lock:
            dead = [(worker, session) for worker, session in self._sessions.items()
                    if session.thread is not None and not session.thread.is_alive()]
            for worker, _ in dead:
                del self._sessions[worker]
        for worker, session in dead:
            if session.is_open or session.transaction_active:
                logger.warning(f'Worker {worker!r} exited without closing its session; '
                               'closing it, uncommitted work is rolled back')
            session.close(force=True)
        return len(dead)

    def discard(self, worker: Any = None) -> None:
        """Close the session for `worker` and forget it.
        """
        if worker is None:
            worker = current_worker()
        with self._lock:
            session = self._sessions.get(worker)
        if session is None:
            return
        session.close()
        with self._lock:
            self._sessions.pop(worker, None)

    def live_handles(self) -> list[ConnectionHandle]:
        """Open handles across all workers, for diagnostics."""
        with self._lock:
            return [s.handle for s in self._sessions.values() if s.is_open]

    def close_all(self) -> None:
        """Close every session the calling thread is allowed to close.

        Handles whose owning thread has exited are closed from here. Sessions
        whose connection belongs to another live thread are skipped with a
        warning.
        """
        with self._lock:
            sessions = list(self._sessions.items())
        for worker, session in sessions:
            handle = session.handle
            orphaned = handle is not None and handle.orphaned
            if orphaned and handle.owner_thread != threading.get_ident():
                logger.warning(f'Closing connection of worker {worker!r}: '
                               'its thread exited without closing it')
            try:
                session.close(force=orphaned)
            except AffinityError as err:
                logger.warning(f'Skipping close of worker {worker!r}: {err}')
                continue
            with self._lock:
                self._sessions.pop(worker, None)


def _close_all_registries() -> None:
    for registry in list(_registries):
        registry.close_all()


atexit.register(_close_all_registries)
