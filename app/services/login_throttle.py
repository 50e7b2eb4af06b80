"""In-memory sliding-window throttle for login attempts."""

import logging
import math
import threading
import time
from collections import deque
from collections.abc import Callable
from functools import lru_cache

from app.core.config import get_settings

logger = logging.getLogger(__name__)


def throttle_key(username: str, client_ip: str | None) -> str:
    """Bucket key for a (username, client ip) pair; username is case-insensitive."""
    return f"{username.strip().lower()}|{client_ip or 'unknown'}"


class LoginThrottle:
    """
    Counts login attempts per key within a sliding window; successful logins are cleared.

    Per-process and thread-safe; it holds no identity state, only timestamps.
    """

    def __init__(
        self,
        max_attempts: int,
        window_sec: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.window_sec = window_sec
        self._clock = clock
        self._attempts: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def _prune(self, attempts: deque[float], now: float) -> None:
        cutoff = now - self.window_sec
        while attempts and attempts[0] <= cutoff:
            attempts.popleft()

    def acquire(self, key: str) -> int | None:
        """
        Reserve one login attempt for key. Returns None if the attempt may
        proceed (and counts it), otherwise the seconds until key may try again.
        A successful login clears the reservations with reset.
        """
        with self._lock:
            now = self._clock()
            attempts = self._attempts.setdefault(key, deque())
            self._prune(attempts, now)
            if len(attempts) >= self.max_attempts:
                return max(1, math.ceil(attempts[0] + self.window_sec - now))
            attempts.append(now)
            return None

    def reset(self, key: str) -> None:
        with self._lock:
            self._attempts.pop(key, None)

    def reset_all(self) -> None:
        with self._lock:
            self._attempts.clear()

    def cleanup(self) -> int:
        """Drop keys with no attempts left in the window; returns how many were removed."""
        with self._lock:
            now = self._clock()
            stale = []
            for key, attempts in self._attempts.items():
                self._prune(attempts, now)
                if not attempts:
                    stale.append(key)
            for key in stale:
                del self._attempts[key]
        if stale:
            logger.debug("Login throttle cleanup: removed %s idle keys", len(stale))
        return len(stale)


@lru_cache
def get_login_throttle() -> LoginThrottle:
    """Process-wide throttle built from settings (FastAPI dependency)."""
    settings = get_settings()
    return LoginThrottle(settings.LOGIN_MAX_ATTEMPTS, settings.LOGIN_WINDOW_SEC)
