"""
Outbound origin client for the proxy.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple, TYPE_CHECKING

import httpx

from shared.circuit_breaker import CircuitBreaker, get_circuit_breaker
from shared.errors import CircuitOpenError, ForwardingFailed, TransientOriginError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, call_with_retry

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


CIRCUIT_NAME = "proxy_client"

# Connection-scoped headers that describe the inbound hop, not the request.
HOP_BY_HOP_HEADERS = frozenset({
    "keep-alive",
    "proxy-connection",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})


@dataclass(frozen=True)
class OriginResponse:
    """What the origin answered."""

    status_code: int
    body: bytes
    content_type: Optional[str]


class ResilientForwarder:
    """Forward requests to arbitrary origins with timeout, retry and circuit breaking.

    Every attempt passes through one process-wide breaker. Any httpx failure
    (network, timeout, redirect loop, bad encoding) and any 5xx answer is
    retried with exponential backoff; when the budget runs out the call fails
    with ForwardingFailed. An open breaker fails fast with CircuitOpenError
    and is never retried.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        client: Optional[httpx.AsyncClient] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.timeout = timeout
        self.logger = get_logger("proxy.origin_client")
        self.metrics = metrics

        self.circuit_breaker = circuit_breaker or get_circuit_breaker(
            CIRCUIT_NAME,
            failure_threshold=3,
            recovery_timeout=30.0
        )

        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.5,
            max_delay=5.0,
            exponential_base=2.0,
            jitter=True
        )

        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    async def forward(
        self,
        method: str,
        url: str,
        headers: List[Tuple[str, str]],
        body: Optional[bytes] = None,
    ) -> OriginResponse:
        """Send the request to the origin, retrying transient failures."""
        try:
            return await call_with_retry(
                self._attempt,
                method,
                url,
                headers,
                body,
                exceptions=(TransientOriginError,),
                config=self.retry_config,
                name="forward",
            )
        except RetryError as exc:
            last = exc.last_exception
            details = {"attempts": exc.attempts}
            if isinstance(last, TransientOriginError):
                details.update(last.details)
            raise ForwardingFailed(details=details) from last

    async def _attempt(
        self,
        method: str,
        url: str,
        headers: List[Tuple[str, str]],
        body: Optional[bytes],
    ) -> OriginResponse:
        if not self.circuit_breaker.allow_request():
            self._report_breaker()
            raise CircuitOpenError(self.circuit_breaker.name)

        try:
            response = await self._get_client().request(
                method,
                url,
                headers=self._outbound_headers(headers, body),
                content=body,
            )
        except httpx.TimeoutException as exc:
            self._fail()
            raise TransientOriginError("Origin timed out", details={"reason": "timeout"}) from exc
        except httpx.TransportError as exc:
            self._fail()
            raise TransientOriginError(
                "Origin unreachable", details={"reason": "network", "error": type(exc).__name__}
            ) from exc
        except httpx.HTTPError as exc:
            # Redirect loops, undecodable bodies and other protocol failures
            self._fail()
            raise TransientOriginError(
                "Origin request failed", details={"reason": "protocol", "error": type(exc).__name__}
            ) from exc
        except BaseException:
            # Cancellation or an unexpected error: no outcome to record
            self.circuit_breaker.release_probe()
            raise

        if response.status_code >= 500:
            self._fail()
            raise TransientOriginError(
                "Origin server error",
                details={"reason": "upstream_5xx", "status_code": response.status_code},
            )

        self.circuit_breaker.record_success()
        self._report_breaker()

        if not (200 <= response.status_code < 300):
            self.logger.warning("Error response from origin", url=url, status_code=response.status_code)

        return OriginResponse(
            status_code=response.status_code,
            body=response.content,
            content_type=response.headers.get("content-type"),
        )

    def _outbound_headers(
        self, headers: List[Tuple[str, str]], body: Optional[bytes]
    ) -> List[Tuple[str, str]]:
        outbound = [(name, value) for name, value in headers if name.lower() not in HOP_BY_HOP_HEADERS]
        for name, value in outbound:
            self.logger.debug("Forwarding header", header=name, value=value)
        if body is not None and not any(name.lower() == "content-type" for name, _ in outbound):
            outbound.append(("Content-Type", "application/json"))
        return outbound

    def _fail(self) -> None:
        self.circuit_breaker.record_failure()
        self._report_breaker()

    def _report_breaker(self) -> None:
        if self.metrics is not None:
            self.metrics.set_circuit_open(self.circuit_breaker.name, self.circuit_breaker.is_open())

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
