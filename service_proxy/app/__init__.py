"""
Caching Proxy Service package.

The proxy forwards client requests to the origin named in the ``url``
query parameter, enforcing:
- Admission control: per-client fixed-window rate limit
- Cache-aside: responses stored by request fingerprint with a fixed TTL
- Circuit-breaking and retries for resilient origin calls
- Stale-tolerant fallback to a still-live entry when the origin fails

Structure:
- app.main: FastAPI app, routes, and service wiring.
- app.adapters: Outbound origin client.
- app.caching: Fingerprinting, cache entries, and stores.
- app.ratelimit: Fixed-window limiter and admission control.
- app.domain: The proxy request pipeline.
"""
