"""
Test doubles shared by Proxy service tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import httpx

from shared.errors import StoreError
from service_proxy.app.caching.models import utcnow
from service_proxy.app.caching.store import InMemoryCacheStore


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class MonotonicClock:
    """Settable stand-in for time.monotonic."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FlakyStore(InMemoryCacheStore):
    """In-memory store whose next ``fail_reads`` reads raise StoreError."""

    def __init__(self, now: Callable[[], datetime] = utcnow, fail_reads: int = 0):
        super().__init__(now=now)
        self.fail_reads = fail_reads

    async def get(self, fingerprint):
        if self.fail_reads > 0:
            self.fail_reads -= 1
            raise StoreError("Cache read failed")
        return await super().get(fingerprint)


class CapturingOrigin:
    """httpx.MockTransport handler that records every outbound request."""

    def __init__(self, handler: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        self.requests: List[httpx.Request] = []
        self.handler = handler or self.default_handler

    @staticmethod
    def default_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True, "path": request.url.path})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def redirect_loop(request: httpx.Request) -> httpx.Response:
    """Origin that always redirects back to itself."""
    return httpx.Response(302, headers={"Location": str(request.url)})
