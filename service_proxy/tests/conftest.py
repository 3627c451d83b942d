"""
Shared fixtures for Proxy service tests.
"""

from typing import Optional

import httpx
import pytest

from shared.circuit_breaker import CircuitBreaker, circuit_breaker_manager
from shared.retry import RetryConfig
from service_proxy.app.adapters.origin_client import ResilientForwarder
from service_proxy.tests.helpers import CapturingOrigin, FakeClock


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Keep the process-wide breaker registry isolated per test."""
    circuit_breaker_manager.reset()
    yield
    circuit_breaker_manager.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def origin():
    return CapturingOrigin()


@pytest.fixture
def fast_retry():
    """Retry config without backoff delay."""
    return RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=False)


@pytest.fixture
def make_forwarder(fast_retry):
    """Build a forwarder wired to a fake origin."""

    def _make(origin: CapturingOrigin, breaker: Optional[CircuitBreaker] = None,
              retry_config: Optional[RetryConfig] = None) -> ResilientForwarder:
        return ResilientForwarder(
            timeout=1.0,
            retry_config=retry_config or fast_retry,
            circuit_breaker=breaker or CircuitBreaker(name="test_origin", failure_threshold=100),
            client=httpx.AsyncClient(transport=httpx.MockTransport(origin), follow_redirects=True),
        )

    return _make
