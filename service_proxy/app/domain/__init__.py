"""
Domain logic for the Proxy Service.

Holds the request pipeline that ties fingerprinting, the cache store and
the origin forwarder together. Transport concerns stay in app.main.
"""

from .orchestrator import CacheStatus, ProxyOrchestrator, ProxyResult, validate_target_url

__all__ = [
    "CacheStatus",
    "ProxyOrchestrator",
    "ProxyResult",
    "validate_target_url",
]
