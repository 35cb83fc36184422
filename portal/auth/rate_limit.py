from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Callable, Dict, List, Tuple


class LoginRateLimiter:
    """
    In-memory limiter for password sign-in attempts, keyed by lower-cased email.

    Holds only attempt timestamps; no credentials or tokens.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: int = 300,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._attempts: Dict[str, List[float]] = defaultdict(list)
        self._max_attempts = max_attempts
        self._window = float(window_seconds)
        self._clock = clock
        self._lock = threading.Lock()

    def check_and_increment(self, identifier: str) -> Tuple[bool, int]:
        """
        Record an attempt for `identifier` unless it is already limited.

        Returns (is_allowed, attempts_remaining).
        """
        key = identifier.strip().lower()
        now = self._clock()
        with self._lock:
            recent = [t for t in self._attempts[key] if now - t < self._window]
            if len(recent) >= self._max_attempts:
                self._attempts[key] = recent
                return False, 0
            recent.append(now)
            self._attempts[key] = recent
            return True, self._max_attempts - len(recent)

    def reset(self, identifier: str) -> None:
        """Forget attempts for `identifier` (after a successful sign-in)."""
        with self._lock:
            self._attempts.pop(identifier.strip().lower(), None)


_global_rate_limiter: LoginRateLimiter | None = None


def get_rate_limiter() -> LoginRateLimiter:
    global _global_rate_limiter
    if _global_rate_limiter is None:
        _global_rate_limiter = LoginRateLimiter(max_attempts=5, window_seconds=300)
    return _global_rate_limiter
