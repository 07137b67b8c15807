"""Anti-forgery state for the OAuth authorization code flow.

/authenticate issues a random state and remembers the return URL chosen for
it; /oauth/code consumes the state exactly once. Unknown, reused and expired
states are all treated the same way by callers.
"""

import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, Optional, Tuple

import redis

logger = logging.getLogger(__name__)


def generate_state() -> str:
    return secrets.token_urlsafe(32)


class OAuthStateStore(ABC):
    """Single-use, expiring mapping of state -> return URL."""

    @abstractmethod
    def issue(self, return_url: Optional[str]) -> str:
        """Create and remember a new state. Returns the state string."""
        pass

    @abstractmethod
    def consume(self, state: str) -> Tuple[bool, Optional[str]]:
        """Remove a state.

        Returns:
            (found, return_url). found is False for unknown, used or expired
            states; return_url is None when no return URL was chosen.
        """
        pass


class InMemoryOAuthStateStore(OAuthStateStore):
    """Bounded in-process store (single API process).

    Expired entries are purged whenever the store is touched; when full, the
    oldest entry is evicted.
    """

    def __init__(
        self,
        ttl_seconds: int = 600,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._entries: "OrderedDict[str, Tuple[Optional[str], float]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self, now: float) -> None:
        # Entries are kept in issue order, so expiry order matches.
        while self._entries:
            state, (_, expires_at) = next(iter(self._entries.items()))
            if expires_at > now:
                break
            del self._entries[state]

    def issue(self, return_url: Optional[str]) -> str:
        state = generate_state()
        now = self.clock()
        with self._lock:
            self._purge_expired(now)
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
                logger.warning("OAuth state store full, evicting oldest state")
            self._entries[state] = (return_url, now + self.ttl_seconds)
        return state

    def consume(self, state: str) -> Tuple[bool, Optional[str]]:
        if not state:
            return False, None
        now = self.clock()
        with self._lock:
            entry = self._entries.pop(state, None)
            self._purge_expired(now)
        if entry is None:
            return False, None
        return_url, expires_at = entry
        if expires_at <= now:
            return False, None
        return True, return_url


class RedisOAuthStateStore(OAuthStateStore):
    """Redis-backed store shared by every API process.

    Entries are written with SETEX; consumption is an atomic GET + DEL
    pipeline so a state can never be used twice.
    """

    KEY_PREFIX = "oauth_state:"

    def __init__(self, client: redis.Redis, ttl_seconds: int = 600):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 600) -> "RedisOAuthStateStore":
        return cls(redis.from_url(url, decode_responses=True), ttl_seconds=ttl_seconds)

    def issue(self, return_url: Optional[str]) -> str:
        state = generate_state()
        self.client.setex(f"{self.KEY_PREFIX}{state}", self.ttl_seconds, return_url or "")
        return state

    def consume(self, state: str) -> Tuple[bool, Optional[str]]:
        if not state:
            return False, None
        pipe = self.client.pipeline()
        pipe.get(f"{self.KEY_PREFIX}{state}")
        pipe.delete(f"{self.KEY_PREFIX}{state}")
        value, _ = pipe.execute()
        if value is None:
            return False, None
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return True, value or None
