"""Per-client sliding-window limit for the download endpoints.

Each router builds one limiter and attaches it with ``Depends``:

    _download_rate_limit = RateLimiter(max_calls=20, window_seconds=900, key="download")

    @router.post("/download")
    async def download(..., _rl: None = Depends(_download_rate_limit)):
        ...

Limiters sharing a ``key`` share one budget per client. Counts live in process
memory, so each worker enforces its own window.
"""

import logging
import time
from collections import defaultdict, deque
from threading import Lock

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)


class _CallLog:
    def __init__(self) -> None:
        self._calls: dict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()
        self._last_sweep = time.monotonic()
        self._longest_window = 0

    def __len__(self) -> int:
        return len(self._calls)

    def record(self, bucket: str, max_calls: int, window_seconds: int) -> bool:
        """Record a call unless ``bucket`` already used up its window."""
        now = time.monotonic()
        with self._lock:
            self._longest_window = max(self._longest_window, window_seconds)
            if now - self._last_sweep >= self._longest_window:
                self._sweep(now - self._longest_window)
                self._last_sweep = now
            calls = self._calls[bucket]
            while calls and calls[0] <= now - window_seconds:
                calls.popleft()
            if len(calls) >= max_calls:
                return False
            calls.append(now)
            return True

    def _sweep(self, cutoff: float) -> None:
        stale = [bucket for bucket, calls in self._calls.items() if not calls or calls[-1] <= cutoff]
        for bucket in stale:
            del self._calls[bucket]

    def clear(self) -> None:
        with self._lock:
            self._calls.clear()


_call_log = _CallLog()


def reset_rate_limits() -> None:
    _call_log.clear()


class RateLimiter:
    """FastAPI dependency raising 429 once a client exceeds ``max_calls`` per window."""

    def __init__(self, max_calls: int, window_seconds: int = 60, key: str = "default") -> None:
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self.key = key

    async def __call__(self, request: Request) -> None:
        client = client_address(request)
        if _call_log.record(f"{self.key}:{client}", self.max_calls, self.window_seconds):
            return
        logger.warning("Rate limit %s hit by %s", self.key, client)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many download requests from this IP, please try again later.",
        )


def client_address(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # The proxy appends the address it saw; earlier entries are client-controlled.
        return forwarded.split(",")[-1].strip()
    return request.client.host if request.client else "unknown"
