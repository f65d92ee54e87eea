import ipaddress
import time
from collections import deque
from threading import Lock
from typing import Optional

from fastapi import Request

_MAX_BUCKETS = 10_000


class SlidingWindowRateLimiter:
    """Per-key request counter over a sliding time window (in-process only)."""

    def __init__(self, *, max_buckets: int = _MAX_BUCKETS) -> None:
        self._buckets: dict[str, deque[float]] = {}
        self._lock = Lock()
        self._max_buckets = max_buckets

    def allow(self, key: str, limit: int, window_seconds: int = 60) -> bool:
        if limit <= 0 or window_seconds <= 0:
            return True
        now = time.monotonic()
        cutoff = now - window_seconds
        with self._lock:
            if len(self._buckets) >= self._max_buckets:
                self._drop_idle(cutoff)

            bucket = self._buckets.setdefault(key, deque())
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()
            if len(bucket) >= limit:
                return False
            bucket.append(now)
            return True

    def _drop_idle(self, cutoff: float) -> None:
        """Forget keys with no hits inside the window (called under lock)."""
        idle = [key for key, bucket in self._buckets.items() if not bucket or bucket[-1] <= cutoff]
        for key in idle:
            del self._buckets[key]

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


analyze_rate_limiter = SlidingWindowRateLimiter()


def _ip_in_networks(ip: str, networks: list[str]) -> bool:
    try:
        ip_obj = ipaddress.ip_address(ip)
    except ValueError:
        return ip in networks
    for entry in networks:
        try:
            if ip_obj in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            if entry == ip:
                return True
    return False


def get_client_ip(request: Request, trusted_proxy_cidrs: list[str]) -> Optional[str]:
    """Extract the client IP.

    ``X-Forwarded-For`` is honoured only when the direct peer is a trusted
    proxy; otherwise the peer address is used as-is.
    """
    peer_ip = request.client.host if request.client else None
    if peer_ip and trusted_proxy_cidrs and _ip_in_networks(peer_ip, trusted_proxy_cidrs):
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # Rightmost entry was appended by our own proxy.
            parts = [p.strip() for p in forwarded.split(",") if p.strip()]
            if parts:
                return parts[-1]
    return peer_ip
