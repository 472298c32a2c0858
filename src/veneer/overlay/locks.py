"""Per-key lock table for overlay check-then-act sequences.

Both backing stores are independent, so an existence check followed by a copy,
write or delete is only safe while no other caller works on the same key.
Thread-safe for concurrent access within a single process.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class _LockEntry:
    """A lock plus the number of callers holding or waiting for it."""

    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.refs = 0


class KeyLockTable:
    """Hands out one reentrant mutex per key.

    Entries are created on first use and dropped once the last caller
    releases them, so the table only holds keys that are in flight.
    Callers on unrelated keys never wait on each other. A thread holding a
    key may enter it again, so composed operations can nest.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, _LockEntry] = {}
        self._lock = threading.Lock()

    def _acquire_entry(self, key: Hashable) -> _LockEntry:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _LockEntry()
                self._entries[key] = entry
            entry.refs += 1
            return entry

    def _release_entry(self, key: Hashable, entry: _LockEntry) -> None:
        with self._lock:
            entry.refs -= 1
            if entry.refs == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        entry = self._acquire_entry(key)
        try:
            with entry.lock:
                yield
        finally:
            self._release_entry(key, entry)

    def __len__(self) -> int:
        """Return the number of keys currently held or awaited."""
        with self._lock:
            return len(self._entries)
