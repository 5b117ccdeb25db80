# Overview: Service-layer operations for concurrency; per-key locks and DB retry.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Hashable, Iterator

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The in-process KeyedLocks below cover the single-writer SQLite case;
    work shared across processes is claimed with a conditional UPDATE.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


class KeyedLocks:
    """
    Per-key mutual exclusion with an exclusive "all keys" mode.

    - hold(key): serializes work on one entity id; different keys proceed
      independently. Re-entrant for the owning thread. A key's lock lives
      only while someone holds or waits for it.
    - hold_all(): waits for every key holder to finish and blocks new ones
      (used for whole-collection swaps).
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        # key -> [lock, holders and waiters]
        self._locks: dict[Hashable, list] = {}
        self._active = 0
        self._exclusive_owner: int | None = None

    def __len__(self) -> int:
        with self._cond:
            return len(self._locks)

    def _blocked_by_exclusive(self) -> bool:
        return self._exclusive_owner is not None and self._exclusive_owner != threading.get_ident()

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._cond:
            while self._blocked_by_exclusive():
                self._cond.wait()
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1
            self._active += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._cond:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]
                self._active -= 1
                self._cond.notify_all()

    @contextmanager
    def hold_all(self) -> Iterator[None]:
        me = threading.get_ident()
        with self._cond:
            if self._exclusive_owner == me:
                reentered = True
            else:
                reentered = False
                while self._exclusive_owner is not None or self._active:
                    self._cond.wait()
                self._exclusive_owner = me
        try:
            yield
        finally:
            if not reentered:
                with self._cond:
                    self._exclusive_owner = None
                    self._cond.notify_all()
