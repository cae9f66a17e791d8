"""Per-client serialization of read-modify-write cycles."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class ClientLocks:
    """
    One lock per client id.

    Every mutation of a client's loyalty state runs inside hold(client_id),
    so an evaluation never interleaves with an override, unit update or
    reset of the same client. Different clients never contend.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, client_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(client_id)
            if lock is None:
                lock = self._locks[client_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, client_id: str) -> Iterator[None]:
        lock = self._lock_for(client_id)
        with lock:
            yield

    def is_held(self, client_id: str) -> bool:
        return self._lock_for(client_id).locked()
