import ipaddress
import threading
import time
from typing import Callable, Dict, List, Optional

from fastapi import HTTPException, Request

_V4_MAPPED_PREFIX = "::ffff:"


def normalize_ip(raw: Optional[str]) -> str:
    """
    First hop of a forwarded-for chain, with any IPv4-mapped IPv6 prefix removed.
    """
    if not raw:
        return "unknown"
    ip = raw.split(",")[0].strip()
    if ip.lower().startswith(_V4_MAPPED_PREFIX):
        candidate = ip[len(_V4_MAPPED_PREFIX):]
        try:
            ipaddress.IPv4Address(candidate)
            ip = candidate
        except ValueError:
            pass
    return ip or "unknown"


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return normalize_ip(forwarded)
    return normalize_ip(request.client.host if request.client else None)


class RateLimiter:
    """Sliding-window limiter keyed by an arbitrary string."""

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def hit(self, key: str) -> None:
        """Record one request for key, raising 429 once the window quota is used."""
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now - self._last_sweep > self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            bucket = [t for t in self._buckets.get(key, []) if t > cutoff]
            if len(bucket) >= self.limit:
                retry_after = max(1, int(bucket[0] + self.window_seconds - now) + 1)
                self._buckets[key] = bucket
                raise HTTPException(
                    status_code=429,
                    detail="Too many like requests, please try again later",
                    headers={"Retry-After": str(retry_after)},
                )
            bucket.append(now)
            self._buckets[key] = bucket

    def _sweep(self, cutoff: float) -> None:
        # drop keys whose newest hit is outside the window
        self._buckets = {k: b for k, b in self._buckets.items() if b and b[-1] > cutoff}

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._buckets)
