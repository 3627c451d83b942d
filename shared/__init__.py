"""
Shared utilities for the caching proxy.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request and trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry policy with exponential backoff
- circuit_breaker: Resilient external call protection

Do not import from service_* packages into shared/.
"""
