"""Named exclusive locks for reconciliation and payment units of work."""

import hashlib
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager
from datetime import date
from threading import Lock
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from carrier_ledger.core.config import settings
from carrier_ledger.core.errors import ConcurrencyTimeoutError


def reconciliation_key(store_id: Any, carrier_id: Any, day: date) -> str:
    """Stable key for one (store, carrier, date) reconciliation group."""
    raw = f"{store_id}:{carrier_id}:{day.isoformat()}"
    return "reconcile:" + hashlib.sha256(raw.encode()).hexdigest()[:32]


def settlement_key(settlement_id: Any) -> str:
    return f"settlement:{settlement_id}"


def order_key(order_id: Any) -> str:
    """Guards an order's session membership and reconciliation state."""
    return f"order:{order_id}"


def advisory_lock_id(key: str) -> int:
    """Map a lock key onto the signed 64-bit space used by pg_advisory locks."""
    digest = hashlib.sha256(key.encode()).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def _advisory_xact_lock(db: Session, key: str, timeout: float) -> None:
    db.execute(text(f"SET LOCAL lock_timeout = '{int(timeout * 1000)}ms'"))
    try:
        db.execute(text("SELECT pg_advisory_xact_lock(:k)"), {"k": advisory_lock_id(key)})
    except OperationalError:
        db.rollback()
        raise ConcurrencyTimeoutError(
            f"Timed out after {timeout}s waiting for advisory lock",
            details={"lock_key": key},
        ) from None


class LockCoordinator:
    """In-process mutex map keyed by an arbitrary string.

    Distinct keys never contend. On PostgreSQL ``hold`` additionally takes a
    transaction scoped advisory lock so several API instances serialize on
    the same key; that lock is released by the caller's commit or rollback.

    A key's mutex is dropped once no caller holds or waits for it.
    """

    def __init__(self, timeout_seconds: float | None = None):
        self.timeout_seconds = timeout_seconds
        self._locks: dict[str, Lock] = {}
        self._users: dict[str, int] = {}
        self._guard = Lock()

    def _checkout(self, key: str) -> Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = Lock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            remaining = self._users.get(key, 1) - 1
            if remaining > 0:
                self._users[key] = remaining
            else:
                self._users.pop(key, None)
                self._locks.pop(key, None)

    @contextmanager
    def hold(
        self,
        key: str,
        db: Session | None = None,
        timeout: float | None = None,
    ) -> Iterator[None]:
        """Hold the named lock for the duration of the ``with`` block.

        Raises ConcurrencyTimeoutError when the lock is not acquired within
        ``timeout`` seconds (default ``LOCK_TIMEOUT_SECONDS``).
        """
        if timeout is None:
            timeout = self.timeout_seconds
        if timeout is None:
            timeout = settings.LOCK_TIMEOUT_SECONDS

        lock = self._checkout(key)
        try:
            if not lock.acquire(timeout=timeout):
                raise ConcurrencyTimeoutError(
                    f"Timed out after {timeout}s waiting for lock",
                    details={"lock_key": key},
                )
            try:
                if db is not None and db.get_bind().dialect.name == "postgresql":
                    _advisory_xact_lock(db, key, timeout)
                yield
            finally:
                lock.release()
        finally:
            self._checkin(key)

    @contextmanager
    def hold_many(
        self,
        keys: Iterable[str],
        db: Session | None = None,
        timeout: float | None = None,
    ) -> Iterator[None]:
        """Hold several named locks at once.

        Keys are taken in sorted order, so two callers with overlapping key
        sets cannot deadlock each other.
        """
        with ExitStack() as stack:
            for key in sorted(set(keys)):
                stack.enter_context(self.hold(key, db=db, timeout=timeout))
            yield

    def is_locked(self, key: str) -> bool:
        with self._guard:
            lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def reset(self) -> None:
        """Drop all tracked locks (useful for testing)."""
        with self._guard:
            self._locks.clear()
            self._users.clear()


lock_coordinator = LockCoordinator()
