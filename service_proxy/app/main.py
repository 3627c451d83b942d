"""
Caching proxy service.
"""

import json
from typing import Any, Dict, Optional

from fastapi import Request, Response

from shared.base_service import BaseService
from shared.circuit_breaker import get_circuit_breaker
from shared.config import ServiceConfig
from shared.errors import ClientError, RateLimitError
from shared.logging import set_client_context
from shared.retry import RetryConfig
from .adapters.origin_client import CIRCUIT_NAME, ResilientForwarder
from .caching.store import CacheStore, create_cache_store
from .domain.orchestrator import ProxyOrchestrator, ProxyResult, validate_target_url
from .ratelimit.fixed_window import AdmissionControl, FixedWindowRateLimiter, InMemoryRateLimiter


class ProxyService(BaseService):
    """Proxy service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        cache_store: Optional[CacheStore] = None,
        forwarder: Optional[ResilientForwarder] = None,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
    ):
        super().__init__("proxy", 8000, config)
        cfg = self.config

        if cache_store is None:
            cache_store = create_cache_store(cfg.cache_backend, cfg.redis_url, cfg.cache_key_prefix)
        self.cache_store = cache_store
        self.forwarder = forwarder or ResilientForwarder(
            timeout=cfg.outbound_timeout_seconds,
            retry_config=RetryConfig(
                max_attempts=cfg.retry_max_attempts,
                base_delay=cfg.retry_base_delay_seconds,
                max_delay=cfg.retry_max_delay_seconds,
            ),
            circuit_breaker=get_circuit_breaker(
                CIRCUIT_NAME,
                failure_threshold=cfg.circuit_failure_threshold,
                recovery_timeout=cfg.circuit_recovery_timeout_seconds,
                failure_window=cfg.circuit_failure_window_seconds,
            ),
            metrics=self.metrics,
        )
        self.orchestrator = ProxyOrchestrator(
            self.cache_store,
            self.forwarder,
            cache_ttl_seconds=cfg.cache_ttl_seconds,
            metrics=self.metrics,
        )

        self.admission_control: Optional[AdmissionControl] = None
        if cfg.rate_limit_enabled:
            if rate_limiter is None:
                rate_limiter = self._create_rate_limiter()
            self.admission_control = AdmissionControl(
                rate_limiter, trust_forwarded_headers=cfg.trust_forwarded_headers
            )

        self._setup_proxy_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.proxy_service = self

    def _create_rate_limiter(self) -> FixedWindowRateLimiter:
        cfg = self.config
        if cfg.cache_backend == "memory":
            return InMemoryRateLimiter(cfg.rate_limit_permits, cfg.rate_limit_window_seconds)
        return FixedWindowRateLimiter(
            cfg.redis_url,
            permits=cfg.rate_limit_permits,
            window_seconds=cfg.rate_limit_window_seconds,
        )

    def _setup_proxy_routes(self):
        """Set up proxy routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "proxy",
                "message": "Caching Proxy",
                "version": "1.0.0"
            }

        @self.app.get("/api/proxy")
        async def proxy_get(request: Request):
            """Forward a GET to the target URL, serving from cache when possible."""
            rate_result = await self._admit(request)
            result = await self.orchestrator.handle(
                "GET",
                self._target_param(request),
                request.query_params.multi_items(),
                request.headers.items(),
            )
            return self._build_response(result, rate_result)

        @self.app.post("/api/proxy")
        async def proxy_post(request: Request):
            """Forward a JSON POST to the target URL, caching by URL, headers and body."""
            rate_result = await self._admit(request)
            url = self._target_param(request)
            validate_target_url(url)
            payload = await self._read_json(request)
            result = await self.orchestrator.handle(
                "POST",
                url,
                request.query_params.multi_items(),
                request.headers.items(),
                payload,
            )
            return self._build_response(result, rate_result)

    async def _admit(self, request: Request) -> Dict[str, Any]:
        """Run admission control; raise RateLimitError when over budget."""
        if self.admission_control is None:
            return {}

        client_id = self.admission_control.get_client_id(request)
        set_client_context(client_id)
        result = await self.admission_control.check_request(request)

        if not result.get("allowed", False):
            self.metrics.record_rate_limited()
            raise RateLimitError(
                details={
                    "limit": result.get("limit"),
                    "current_count": result.get("current_count"),
                    "reset_in_seconds": result.get("reset_in_seconds"),
                }
            )
        return result

    def _target_param(self, request: Request) -> Optional[str]:
        for name, value in request.query_params.multi_items():
            if name.lower() == "url":
                return value
        return None

    async def _read_json(self, request: Request) -> Any:
        raw = await request.body()
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except ValueError:
            raise ClientError("Request body must be valid JSON.") from None

    def _build_response(self, result: ProxyResult, rate_result: Dict[str, Any]) -> Response:
        response = Response(
            content=result.body,
            status_code=result.status_code,
            headers={"Content-Type": result.content_type, "X-Cache": result.cache_status.value},
        )
        self._set_rate_limit_headers(response, rate_result)
        return response

    def _set_rate_limit_headers(self, response: Response, rate_result: Dict[str, Any]) -> None:
        """Propagate rate limiting metadata via standard headers."""
        limit = rate_result.get("limit")
        remaining = rate_result.get("remaining")
        reset = rate_result.get("reset_in_seconds")

        if limit is not None:
            response.headers["X-RateLimit-Limit"] = str(limit)
        if remaining is not None:
            response.headers["X-RateLimit-Remaining"] = str(remaining)
        if reset is not None:
            response.headers["X-RateLimit-Reset"] = str(reset)

    async def _check_dependencies(self) -> Dict[str, str]:
        breaker_state = self.forwarder.circuit_breaker.get_state()["state"]
        return {
            "cache_store": "ok" if await self.cache_store.ping() else "unavailable",
            "circuit_breaker": "ok" if breaker_state == "closed" else breaker_state,
        }

    async def _shutdown(self) -> None:
        await self.forwarder.close()
        await self.cache_store.close()
        if self.admission_control is not None:
            await self.admission_control.rate_limiter.close()


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = ProxyService(config)
    return service.app


if __name__ == "__main__":
    service = ProxyService()
    service.run()
