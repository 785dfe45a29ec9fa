import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class AccountLocks:
    """
    Per-address mutual exclusion for the current process.

    Every operation that mutates an account's sessions or claim transactions
    runs inside `hold(address)`. Across processes the database constraints
    (partial unique index, status-guarded updates) keep the same invariants.

    Entries are reference counted: a lock exists only while some thread holds
    or waits for it, so the registry does not grow with every address seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, address: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(address)
            if lock is None:
                lock = threading.Lock()
                self._locks[address] = lock
            self._users[address] = self._users.get(address, 0) + 1
            return lock

    def _checkin(self, address: str) -> None:
        with self._guard:
            remaining = self._users[address] - 1
            if remaining:
                self._users[address] = remaining
            else:
                del self._users[address]
                del self._locks[address]

    @contextmanager
    def hold(self, address: str) -> Iterator[None]:
        lock = self._checkout(address)
        try:
            with lock:
                yield
        finally:
            self._checkin(address)


account_locks = AccountLocks()
