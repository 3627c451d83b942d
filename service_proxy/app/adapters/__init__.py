"""
Adapters package for the Proxy Service.

Contains the outbound HTTP client used to reach origins. It encapsulates:

- Per-attempt timeouts and the pooled httpx client
- Retry policy and the shared circuit breaker
- Mapping of transport failures to shared errors
"""

from .origin_client import OriginResponse, ResilientForwarder

__all__ = [
    "OriginResponse",
    "ResilientForwarder",
]
