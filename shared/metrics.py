"""
Shared metrics configuration for the caching proxy.
"""

from typing import Dict, Any, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info


class MetricsCollector:
    """Centralized metrics collector for a service.

    Each collector owns its registry so several service instances (as in
    tests) never collide on metric names.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_proxy_metrics()

    def _setup_proxy_metrics(self):
        """Set up cache and forwarding metrics."""
        self._metrics["proxy_cache_lookups_total"] = Counter(
            "proxy_cache_lookups_total",
            "Cache lookups by outcome",
            ["result"],
            registry=self.registry
        )

        self._metrics["proxy_forward_duration_seconds"] = Histogram(
            "proxy_forward_duration_seconds",
            "Origin forwarding duration in seconds",
            ["method"],
            registry=self.registry
        )

        self._metrics["proxy_forward_failures_total"] = Counter(
            "proxy_forward_failures_total",
            "Forwarding failures after retries",
            ["reason"],
            registry=self.registry
        )

        self._metrics["proxy_rate_limited_total"] = Counter(
            "proxy_rate_limited_total",
            "Requests rejected by admission control",
            registry=self.registry
        )

        self._metrics["proxy_circuit_breaker_open"] = Gauge(
            "proxy_circuit_breaker_open",
            "1 while the outbound circuit breaker is open",
            ["name"],
            registry=self.registry
        )

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str):
        """Record error."""
        self._metrics["errors_total"].labels(
            error_type=error_type,
            service=self.service_name
        ).inc()

    def record_cache_lookup(self, result: str):
        """Record a cache lookup outcome (hit, miss, stale, error)."""
        self._metrics["proxy_cache_lookups_total"].labels(result=result).inc()

    def record_forward(self, method: str, duration: float):
        self._metrics["proxy_forward_duration_seconds"].labels(method=method).observe(duration)

    def record_forward_failure(self, reason: str):
        self._metrics["proxy_forward_failures_total"].labels(reason=reason).inc()

    def record_rate_limited(self):
        self._metrics["proxy_rate_limited_total"].inc()

    def set_circuit_open(self, name: str, is_open: bool):
        self._metrics["proxy_circuit_breaker_open"].labels(name=name).set(1 if is_open else 0)

