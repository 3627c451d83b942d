"""
Cache-aside request pipeline for the proxy endpoint.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Tuple, TYPE_CHECKING
from urllib.parse import urlsplit

from shared.errors import ClientError, ForwardingFailed, StoreError
from shared.logging import get_logger
from ..adapters.origin_client import ResilientForwarder
from ..caching.fingerprint import BODY_METHODS, CacheKeyBuilder, forwardable_headers, serialize_payload
from ..caching.models import CacheEntry, utcnow
from ..caching.store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from datetime import datetime
    from shared.metrics import MetricsCollector


MISSING_URL_MESSAGE = "Missing 'url' query parameter."
INVALID_URL_MESSAGE = "Invalid URL format. Only HTTP and HTTPS URLs are supported."


class CacheStatus(str, Enum):
    """How a response was produced."""
    HIT = "HIT"
    MISS = "MISS"
    STALE = "STALE"


@dataclass(frozen=True)
class ProxyResult:
    """Response to hand back to the caller."""

    body: bytes
    content_type: str
    cache_status: CacheStatus
    fingerprint: str
    target_url: str
    status_code: int = 200

    @classmethod
    def from_entry(cls, entry: CacheEntry, cache_status: CacheStatus) -> "ProxyResult":
        return cls(
            body=entry.body,
            content_type=entry.content_type,
            cache_status=cache_status,
            fingerprint=entry.fingerprint,
            target_url=entry.target_url,
        )


def validate_target_url(url: Optional[str]) -> str:
    """Return ``url`` if it is an absolute http(s) URL, else raise ClientError."""
    if url is None or not url.strip():
        raise ClientError(MISSING_URL_MESSAGE)

    try:
        parts = urlsplit(url)
    except ValueError:
        raise ClientError(INVALID_URL_MESSAGE, details={"url": url}) from None

    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        raise ClientError(INVALID_URL_MESSAGE, details={"url": url})

    return url


class ProxyOrchestrator:
    """Fingerprint, look up, forward on miss, store, and fall back on failure.

    Only a live cache hit avoids the network. When forwarding fails the store
    is consulted once more; an entry that is still live (for instance written
    by a concurrent request) is served instead of a gateway timeout.
    """

    def __init__(
        self,
        store: CacheStore,
        forwarder: ResilientForwarder,
        key_builder: Optional[CacheKeyBuilder] = None,
        cache_ttl_seconds: int = 60,
        metrics: Optional["MetricsCollector"] = None,
        now: Callable[[], "datetime"] = utcnow,
    ):
        self.store = store
        self.forwarder = forwarder
        self.key_builder = key_builder or CacheKeyBuilder()
        self.cache_ttl_seconds = cache_ttl_seconds
        self.metrics = metrics
        self._now = now
        self.logger = get_logger("proxy.orchestrator")

    async def handle(
        self,
        method: str,
        url: Optional[str],
        query_items: Iterable[Tuple[str, str]],
        headers: Iterable[Tuple[str, str]],
        payload: Any = None,
    ) -> ProxyResult:
        """Serve one proxied request."""
        method = method.upper()
        self.logger.info("Received proxy request", method=method, url=url)

        target = validate_target_url(url)
        full_url = self.key_builder.reconstruct_url(target, query_items)
        self.logger.info("Reconstructed full URL", full_url=full_url)

        headers = list(headers)
        body = serialize_payload(payload).encode("utf-8") if method in BODY_METHODS else None
        fingerprint = self.key_builder.fingerprint(method, full_url, headers, payload)

        cached = await self._lookup(fingerprint)
        if cached is not None:
            self.logger.info("Cache hit", url=full_url)
            self._record_lookup("hit")
            return ProxyResult.from_entry(cached, CacheStatus.HIT)

        self.logger.info("Cache miss", url=full_url)
        self._record_lookup("miss")

        start = time.perf_counter()
        try:
            origin = await self.forwarder.forward(method, full_url, forwardable_headers(headers), body)
        except ForwardingFailed as exc:
            elapsed = time.perf_counter() - start
            self.logger.error(
                "Error fetching the URL",
                url=full_url,
                elapsed_ms=round(elapsed * 1000),
                code=exc.code,
                details=exc.details
            )
            if self.metrics is not None:
                self.metrics.record_forward_failure(exc.details.get("reason", exc.code.lower()))
            return await self._fallback(fingerprint, full_url, exc)

        elapsed = time.perf_counter() - start
        if self.metrics is not None:
            self.metrics.record_forward(method, elapsed)

        entry = CacheEntry.build(
            fingerprint=fingerprint,
            target_url=full_url,
            body=origin.body,
            content_type=origin.content_type,
            ttl_seconds=self.cache_ttl_seconds,
            status_code=origin.status_code,
            now=self._now(),
        )
        await self._write(entry)

        self.logger.info(
            "Fetched and cached response",
            url=full_url,
            status_code=origin.status_code,
            elapsed_ms=round(elapsed * 1000)
        )
        return ProxyResult.from_entry(entry, CacheStatus.MISS)

    async def _fallback(self, fingerprint: str, full_url: str, cause: ForwardingFailed) -> ProxyResult:
        fallback = await self._lookup(fingerprint)
        if fallback is not None:
            self.logger.info("Returning cached response", url=full_url)
            self._record_lookup("stale")
            return ProxyResult.from_entry(fallback, CacheStatus.STALE)

        # Fixed caller-facing message; the cause stays in the logs.
        raise ForwardingFailed(details={"url": full_url}) from cause

    async def _lookup(self, fingerprint: str) -> Optional[CacheEntry]:
        """Read from the store, degrading a store failure to a miss."""
        try:
            return await self.store.get(fingerprint)
        except StoreError as exc:
            self.logger.warning("Cache store unavailable, treating as miss", error=exc.message)
            self._record_lookup("error")
            return None

    async def _write(self, entry: CacheEntry) -> None:
        try:
            await self.store.set(entry)
        except StoreError as exc:
            self.logger.warning("Cache write failed, serving uncached response", error=exc.message)

    def _record_lookup(self, result: str) -> None:
        if self.metrics is not None:
            self.metrics.record_cache_lookup(result)
