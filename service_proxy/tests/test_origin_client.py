"""
Unit tests for the resilient origin forwarder.
"""

import httpx
import pytest

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerState
from shared.errors import CircuitOpenError, ForwardingFailed
from service_proxy.tests.helpers import CapturingOrigin, MonotonicClock, redirect_loop


URL = "http://origin.test/items?page=2"


class TestResilientForwarder:
    """Test cases for ResilientForwarder."""

    @pytest.mark.asyncio
    async def test_forward_success(self, origin, make_forwarder):
        forwarder = make_forwarder(origin)

        result = await forwarder.forward("GET", URL, [("accept", "application/json"), ("x-custom", "abc")])

        assert result.status_code == 200
        assert result.content_type == "application/json"
        assert b'"ok"' in result.body
        assert len(origin.requests) == 1
        sent = origin.last
        assert sent.method == "GET"
        assert sent.url.params["page"] == "2"
        assert sent.headers["x-custom"] == "abc"

    @pytest.mark.asyncio
    async def test_forward_post_body(self, origin, make_forwarder):
        forwarder = make_forwarder(origin)

        await forwarder.forward("POST", URL, [], b'{"name":"x"}')

        sent = origin.last
        assert sent.method == "POST"
        assert sent.content == b'{"name":"x"}'
        assert sent.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_forward_keeps_inbound_content_type(self, origin, make_forwarder):
        forwarder = make_forwarder(origin)

        await forwarder.forward("POST", URL, [("Content-Type", "application/vnd.api+json")], b"{}")

        assert origin.last.headers.get_list("content-type") == ["application/vnd.api+json"]

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, make_forwarder):
        origin = CapturingOrigin(lambda request: httpx.Response(404, text="missing"))
        forwarder = make_forwarder(origin)

        result = await forwarder.forward("GET", URL, [])

        assert result.status_code == 404
        assert result.body == b"missing"
        assert len(origin.requests) == 1

    @pytest.mark.asyncio
    async def test_server_error_retried_then_succeeds(self, make_forwarder):
        responses = iter([httpx.Response(503), httpx.Response(200, text="recovered")])
        origin = CapturingOrigin(lambda request: next(responses))
        forwarder = make_forwarder(origin)

        result = await forwarder.forward("GET", URL, [])

        assert result.body == b"recovered"
        assert len(origin.requests) == 2

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self, make_forwarder):
        origin = CapturingOrigin(lambda request: httpx.Response(500, text="broken"))
        forwarder = make_forwarder(origin)

        with pytest.raises(ForwardingFailed) as exc_info:
            await forwarder.forward("GET", URL, [])

        assert len(origin.requests) == 3
        assert exc_info.value.details["reason"] == "upstream_5xx"
        assert exc_info.value.details["status_code"] == 500
        assert exc_info.value.details["attempts"] == 3

    @pytest.mark.asyncio
    async def test_timeout_exhausts_retries(self, make_forwarder):
        def timeout(request):
            raise httpx.ReadTimeout("slow origin", request=request)

        origin = CapturingOrigin(timeout)
        forwarder = make_forwarder(origin)

        with pytest.raises(ForwardingFailed) as exc_info:
            await forwarder.forward("GET", URL, [])

        assert not isinstance(exc_info.value, CircuitOpenError)
        assert exc_info.value.details["reason"] == "timeout"
        assert len(origin.requests) == 3

    @pytest.mark.asyncio
    async def test_network_error_exhausts_retries(self, make_forwarder):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        origin = CapturingOrigin(refuse)
        forwarder = make_forwarder(origin)

        with pytest.raises(ForwardingFailed) as exc_info:
            await forwarder.forward("GET", URL, [])

        assert exc_info.value.details["reason"] == "network"

    @pytest.mark.asyncio
    async def test_open_breaker_fails_fast(self, origin, make_forwarder):
        breaker = CircuitBreaker(name="test_origin", failure_threshold=1, recovery_timeout=60.0)
        breaker.record_failure()
        forwarder = make_forwarder(origin, breaker=breaker)

        with pytest.raises(CircuitOpenError):
            await forwarder.forward("GET", URL, [])

        assert origin.requests == []

    @pytest.mark.asyncio
    async def test_breaker_opening_mid_retry_stops_attempts(self, make_forwarder):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        origin = CapturingOrigin(refuse)
        breaker = CircuitBreaker(name="test_origin", failure_threshold=2, recovery_timeout=60.0)
        forwarder = make_forwarder(origin, breaker=breaker)

        with pytest.raises(CircuitOpenError):
            await forwarder.forward("GET", URL, [])

        assert len(origin.requests) == 2
        assert breaker.is_open() is True

    @pytest.mark.asyncio
    async def test_breaker_is_shared_across_calls(self, make_forwarder):
        failing = CapturingOrigin(lambda request: httpx.Response(502))
        breaker = CircuitBreaker(name="test_origin", failure_threshold=3, recovery_timeout=60.0)
        healthy = CapturingOrigin()

        with pytest.raises(ForwardingFailed):
            await make_forwarder(failing, breaker=breaker).forward("GET", URL, [])

        with pytest.raises(CircuitOpenError):
            await make_forwarder(healthy, breaker=breaker).forward("GET", "http://other.test/", [])

        assert healthy.requests == []

    @pytest.mark.asyncio
    async def test_close_releases_client(self, origin, make_forwarder):
        forwarder = make_forwarder(origin)
        await forwarder.close()
        assert forwarder._client is None

    @pytest.mark.asyncio
    async def test_forward_drops_hop_by_hop_headers(self, origin, make_forwarder):
        forwarder = make_forwarder(origin)

        await forwarder.forward(
            "POST",
            URL,
            [("Transfer-Encoding", "chunked"), ("Keep-Alive", "timeout=5"), ("x-custom", "abc")],
            b'{"name":"x"}',
        )

        sent = origin.last
        assert "transfer-encoding" not in sent.headers
        assert "keep-alive" not in sent.headers
        assert sent.headers["content-length"] == "12"
        assert sent.headers["x-custom"] == "abc"

    @pytest.mark.asyncio
    async def test_redirect_loop_exhausts_retries(self, make_forwarder):
        origin = CapturingOrigin(redirect_loop)
        breaker = CircuitBreaker(name="test_origin", failure_threshold=100)
        forwarder = make_forwarder(origin, breaker=breaker)

        with pytest.raises(ForwardingFailed) as exc_info:
            await forwarder.forward("GET", "http://loop.test/a", [])

        assert exc_info.value.details["reason"] == "protocol"
        assert exc_info.value.details["error"] == "TooManyRedirects"
        assert exc_info.value.details["attempts"] == 3
        assert breaker.get_state()["failure_count"] == 3

    @pytest.mark.asyncio
    async def test_decoding_error_is_retried(self, make_forwarder):
        def corrupt(request):
            raise httpx.DecodingError("corrupt gzip body", request=request)

        origin = CapturingOrigin(corrupt)
        forwarder = make_forwarder(origin)

        with pytest.raises(ForwardingFailed) as exc_info:
            await forwarder.forward("GET", URL, [])

        assert exc_info.value.details["reason"] == "protocol"
        assert len(origin.requests) == 3

    @pytest.mark.asyncio
    async def test_failed_half_open_probe_reopens_breaker(self, make_forwarder):
        mono = MonotonicClock()
        breaker = CircuitBreaker(name="test_origin", failure_threshold=1, recovery_timeout=30.0, clock=mono)
        breaker.record_failure()
        mono.now += 30
        forwarder = make_forwarder(CapturingOrigin(redirect_loop), breaker=breaker)

        with pytest.raises(ForwardingFailed):
            await forwarder.forward("GET", "http://loop.test/a", [])

        assert breaker.state == CircuitBreakerState.OPEN
        mono.now += 30
        assert breaker.allow_request() is True

    @pytest.mark.asyncio
    async def test_unexpected_error_releases_half_open_probe(self, make_forwarder):
        def explode(request):
            raise RuntimeError("transport bug")

        mono = MonotonicClock()
        breaker = CircuitBreaker(name="test_origin", failure_threshold=1, recovery_timeout=30.0, clock=mono)
        breaker.record_failure()
        mono.now += 30
        forwarder = make_forwarder(CapturingOrigin(explode), breaker=breaker)

        with pytest.raises(RuntimeError):
            await forwarder.forward("GET", URL, [])

        assert breaker.state == CircuitBreakerState.HALF_OPEN
        assert breaker.allow_request() is True
