"""Memory of already processed messages."""

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10_000
DEFAULT_EXPIRATION_SECONDS = 24 * 60 * 60


class ExpiringStore(Protocol):
    """Key/value store with an eviction policy of its own."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def evict(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...


class MemoryStore:
    """Bounded in-memory store with sliding expiration.

    Every read pushes an entry's expiry forward. When full, expired entries
    go first, then the least recently touched ones.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        expiration: float = DEFAULT_EXPIRATION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.expiration = expiration
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[str, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[str]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= now:
                del self._entries[key]
                return None
            self._entries[key] = (value, now + self.expiration)
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: str) -> None:
        now = self._clock()
        with self._lock:
            self._entries[key] = (value, now + self.expiration)
            self._entries.move_to_end(key)
            if len(self._entries) > self.capacity:
                self._compact(now)

    def evict(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _compact(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)


class DedupCache:
    """Answers "have we already looked at this message?"."""

    SEEN = "seen"

    def __init__(self, store: Optional[ExpiringStore] = None):
        self.store = store if store is not None else MemoryStore()

    def seen(self, message_id: str) -> bool:
        """False the first time an id is offered (and remembers it), True afterwards."""
        if self.store.get(message_id) is not None:
            return True
        self.store.set(message_id, self.SEEN)
        return False

    def forget(self, message_id: str) -> None:
        """Drop one id so the message is looked at again."""
        self.store.evict(message_id)

    def reset(self) -> None:
        """Forget all processed messages."""
        self.store.clear()
        logger.info("Forgot all already processed emails")
