"""Per-user mutual exclusion for read-modify-write sequences.

The key-value store has no transactions, so credential refresh, watch channel
replacement and sync passes for one user are serialized in-process. Locks are
re-entrant: a watch setup holds the watch lock while the service factory takes
the credential lock for the same user.
"""
import threading
from collections import defaultdict
from contextlib import contextmanager


class UserLocks:
    """Registry of re-entrant locks keyed by (purpose, user id)."""

    def __init__(self):
        self._guard = threading.Lock()
        # Entries are never evicted: one small lock per (purpose, user) seen.
        self._locks: dict[tuple[str, str], threading.RLock] = defaultdict(threading.RLock)

    def get(self, purpose: str, user_id: str) -> threading.RLock:
        with self._guard:
            return self._locks[(purpose, user_id)]

    @contextmanager
    def hold(self, purpose: str, user_id: str):
        lock = self.get(purpose, user_id)
        with lock:
            yield
