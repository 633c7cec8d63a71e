"""
sportml-chat: Per-client sliding-window rate limiter.

Each client keeps the timestamps of its admitted requests. On every check,
timestamps older than the window are pruned inline; a request is admitted
only while the pruned count is below the ceiling. There is no background
task: at most once per window length, an admission also sweeps the whole
table and drops clients whose newest request is outside the window.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Any, Callable

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Sliding-window admission control keyed by client identity.

    Thread-safe: the window table is protected by a lock, so the limiter can
    be shared across threads as well as across asyncio tasks.

    Example::

        limiter = SlidingWindowRateLimiter(max_requests=25, window_seconds=60)

        if not limiter.admit(client_id):
            # Reject with 429
            ...
    """

    def __init__(
        self,
        max_requests: int = 25,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            max_requests: Requests admitted per client within one window.
            window_seconds: Length of the trailing window in seconds.
            clock: Time source, injectable for tests.
        """
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._total_admitted = 0
        self._total_rejected = 0
        self._last_sweep = clock()

    def admit(self, client_id: str) -> bool:
        """Admit or reject one request from client_id.

        Returns True and records the request if the client is under the
        ceiling. Returns False otherwise, leaving the window unchanged apart
        from pruning.
        """
        with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)
            window = self._prune(client_id, now)

            if len(window) >= self.max_requests:
                self._total_rejected += 1
                logger.debug(
                    f"Client {client_id} at limit "
                    f"({len(window)}/{self.max_requests} in {self.window_seconds:.0f}s)"
                )
                return False

            window.append(now)
            self._windows[client_id] = window
            self._total_admitted += 1
            return True

    def remaining(self, client_id: str) -> int:
        """Requests the client could still make right now."""
        with self._lock:
            window = self._prune(client_id, self._clock())
            return max(self.max_requests - len(window), 0)

    def reset(self) -> None:
        """Forget every client's window."""
        with self._lock:
            self._windows.clear()

    def get_stats(self) -> dict[str, Any]:
        """Limiter statistics."""
        with self._lock:
            return {
                "tracked_clients": len(self._windows),
                "max_requests": self.max_requests,
                "window_seconds": self.window_seconds,
                "total_admitted": self._total_admitted,
                "total_rejected": self._total_rejected,
            }

    def _prune(self, client_id: str, now: float) -> deque[float]:
        """Drop expired timestamps (caller must hold lock)."""
        window = self._windows.get(client_id)
        if window is None:
            return deque()

        cutoff = now - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()

        if not window:
            del self._windows[client_id]
        return window

    def _sweep(self, now: float) -> None:
        """Drop every client with no request inside the window (caller must hold lock)."""
        cutoff = now - self.window_seconds
        idle = [cid for cid, window in self._windows.items() if not window or window[-1] <= cutoff]
        for cid in idle:
            del self._windows[cid]
        self._last_sweep = now
        if idle:
            logger.debug(f"Dropped {len(idle)} idle client window(s)")
