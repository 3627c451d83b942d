"""
Shared error handling for the caching proxy.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class ProxyException(Exception):
    """Base exception for proxy services."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ClientError(ProxyException):
    """Malformed inbound request; never retried."""

    status_code = 400

    def __init__(self, message: str = "Bad request", details: Optional[Dict[str, Any]] = None):
        super().__init__("CLIENT_ERROR", message, details)


class TransientOriginError(ProxyException):
    """A single outbound attempt failed in a way worth retrying."""

    status_code = 502

    def __init__(self, message: str = "Transient origin failure", details: Optional[Dict[str, Any]] = None):
        super().__init__("TRANSIENT_ORIGIN_ERROR", message, details)


class ForwardingFailed(ProxyException):
    """Origin could not be reached within the retry budget."""

    status_code = 504

    def __init__(
        self,
        message: str = "The target endpoint is taking too long, and no cached response is available.",
        details: Optional[Dict[str, Any]] = None,
        code: str = "FORWARDING_FAILED",
    ):
        super().__init__(code, message, details)


class CircuitOpenError(ForwardingFailed):
    """Outbound call rejected without a network attempt."""

    def __init__(self, name: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Circuit breaker '{name}' is OPEN - blocking call",
            details=details,
            code="CIRCUIT_OPEN",
        )
        self.name = name


class StoreError(ProxyException):
    """Cache backend failure."""

    status_code = 503

    def __init__(self, message: str = "Cache store error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_ERROR", message, details)


class RateLimitError(ProxyException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)
