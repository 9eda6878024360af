"""In-memory attempt limiter for the public PIN verification route."""

import logging
import time
from dataclasses import dataclass

from homepair.errors import RateLimitError

logger = logging.getLogger(__name__)


@dataclass
class AttemptWindow:
    count: int = 0
    started_at: float = 0.0


class PinAttemptLimiter:
    """Allow ``max_attempts`` per source address per ``window_seconds``."""

    def __init__(self, max_attempts: int, window_seconds: int):
        self._max_attempts = max_attempts
        self._window_seconds = window_seconds
        self._windows: dict[str, AttemptWindow] = {}

    def check(self, source: str) -> None:
        """Count one attempt for ``source``; raise RateLimitError once over the limit."""
        now = time.monotonic()
        self._prune(now)

        window = self._windows.get(source)
        if window is None or now - window.started_at >= self._window_seconds:
            window = AttemptWindow(count=0, started_at=now)
            self._windows[source] = window

        if window.count >= self._max_attempts:
            remaining = int(self._window_seconds - (now - window.started_at))
            logger.warning("PIN attempt limit reached for %s", source)
            raise RateLimitError(f"Too many attempts. Try again in {remaining}s")
        window.count += 1

    def reset(self, source: str) -> None:
        self._windows.pop(source, None)

    def _prune(self, now: float) -> None:
        stale = [k for k, w in self._windows.items() if now - w.started_at >= self._window_seconds]
        for key in stale:
            del self._windows[key]
