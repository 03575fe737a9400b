"""
In-memory session storage with inactivity expiry.

Both the onboarding conversations and the guided quote drafts live here,
keyed by channel-scoped identity. Each store is an explicit object owned by
whoever constructs it (the session router / vendor response flow), not a
process-wide map.

Expiry is lazy: an entry older than the TTL is invisible to `get` and is
physically removed by `sweep_expired`, which a background loop calls.
"""
import logging
import time
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionStore(Generic[T]):
    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "sessions",
    ):
        """
        Args:
            ttl_seconds: Inactivity window. None disables expiry.
            clock: Monotonic time source (injectable for tests)
            name: Label used in log lines
        """
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[T, float]] = {}

    def _is_expired(self, touched_at: float, now: float) -> bool:
        return self.ttl_seconds is not None and now - touched_at > self.ttl_seconds

    def get(self, key: Hashable) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, touched_at = entry
        if self._is_expired(touched_at, self._clock()):
            return None
        return value

    def set(self, key: Hashable, value: T) -> None:
        """Store value and reset its inactivity timer."""
        self._entries[key] = (value, self._clock())

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def sweep_expired(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, (_, touched_at) in self._entries.items() if self._is_expired(touched_at, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info(f"[SessionStore:{self.name}] Swept {len(expired)} expired entries")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None
