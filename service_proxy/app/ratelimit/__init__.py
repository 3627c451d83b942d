"""
Rate limiting package for the Proxy.

Holds the fixed-window limiters and the admission control that enforces
per-client request budgets in front of the proxy endpoint.
"""

from .fixed_window import AdmissionControl, FixedWindowRateLimiter, InMemoryRateLimiter

__all__ = [
    "AdmissionControl",
    "FixedWindowRateLimiter",
    "InMemoryRateLimiter",
]
