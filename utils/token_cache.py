"""
Short-lived cache of token verification results.

Verifying a token means decoding it and loading the user behind it. Clients
call the verify endpoint on every navigation, so the result is kept for a few
seconds per token. The clock is injected to keep expiry testable.
"""

import time
import logging
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class TokenVerificationCache:
    """Verification results keyed by credential token, expiring after ``ttl_seconds``"""

    def __init__(self, ttl_seconds: float = 10.0, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = Lock()
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get(self, token: str) -> Optional[Any]:
        """Return the cached result for ``token``, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            stored_at, result = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[token]
                return None
            return result

    def put(self, token: str, result: Any) -> None:
        with self._lock:
            self._entries[token] = (self._clock(), result)
            self._purge_expired()

    def invalidate(self, token: str) -> None:
        with self._lock:
            self._entries.pop(token, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def _purge_expired(self):
        now = self._clock()
        expired = [token for token, (stored_at, _) in self._entries.items()
                   if now - stored_at >= self.ttl_seconds]
        for token in expired:
            del self._entries[token]
        if expired:
            logger.debug(f"Dropped {len(expired)} expired token verification(s)")
