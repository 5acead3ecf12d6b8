"""
Per-account serialization.

Ingestion and auto-matching for one account must not interleave; work on
different accounts may run in parallel.
"""

from contextlib import contextmanager
from threading import Lock, RLock
from typing import Iterator


class AccountLockRegistry:
    """Hands out one re-entrant lock per bank account."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[str, RLock] = {}

    def lock_for(self, account_id: str) -> RLock:
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = self._locks[account_id] = RLock()
            return lock

    @contextmanager
    def hold(self, account_id: str) -> Iterator[None]:
        """Hold the account's lock for the duration of the block."""
        lock = self.lock_for(account_id)
        with lock:
            yield


account_locks = AccountLockRegistry()
