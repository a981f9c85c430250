"""
CSRF state registry for the HubSpot OAuth redirect.

Each state is a single-use, time-limited opaque token: issued by
``/auth/start`` and consumed by ``/auth/callback``. Entries live in process
memory, so a callback must reach the instance that issued its state.
"""

import logging
import secrets
import string
import threading
import time
from typing import Callable, Dict

logger = logging.getLogger(__name__)

STATE_ALPHABET = string.ascii_letters + string.digits
STATE_LENGTH = 43
DEFAULT_STATE_TTL_SECONDS = 600


class OAuthStateRegistry:
    """Single-use CSRF states keyed by token, valued by creation time."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._states: Dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def _expired(self, created_at: float, now: float) -> bool:
        return now - created_at >= self.ttl_seconds

    def issue(self) -> str:
        """Sweep expired states, then register and return a new one."""
        self.sweep()
        token = "".join(secrets.choice(STATE_ALPHABET) for _ in range(STATE_LENGTH))
        with self._lock:
            self._states[token] = self._clock()
        return token

    def consume(self, token: str | None) -> bool:
        """
        Remove ``token`` and report whether it was valid.

        The entry is removed whether or not it is still within the TTL, so a
        second call with the same token always returns False.
        """
        if not token:
            return False
        with self._lock:
            created_at = self._states.pop(token, None)
        if created_at is None:
            logger.warning("OAuth state not found (unknown or already used)")
            return False
        if self._expired(created_at, self._clock()):
            logger.warning("OAuth state expired")
            return False
        return True

    def sweep(self) -> int:
        """Drop every expired state. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [t for t, created_at in self._states.items() if self._expired(created_at, now)]
            for token in expired:
                del self._states[token]
        if expired:
            logger.debug(f"Swept {len(expired)} expired OAuth state(s)")
        return len(expired)
