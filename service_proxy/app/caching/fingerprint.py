"""
Request fingerprinting for the proxy cache.

A fingerprint is base64(SHA-256) over the reconstructed target URL (or, for
body-bearing methods, the URL digest plus a payload digest) followed by every
significant header in arrival order. Query parameters are NOT sorted, so the
same parameters in a different order produce a different fingerprint.
"""

import base64
import hashlib
import json
from typing import Any, Iterable, List, Optional, Tuple
from urllib.parse import quote

# Headers never forwarded to the origin and never part of a fingerprint.
SKIP_HEADERS = frozenset({
    "host",
    "connection",
    "content-length",
    "origin",
    "accept-encoding",
})

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

TARGET_PARAM = "url"

HeaderItems = Iterable[Tuple[str, str]]


def compute_hash(content: str) -> str:
    """SHA-256 of ``content`` (UTF-8), base64-encoded."""
    digest = hashlib.sha256(content.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def should_skip_header(name: str) -> bool:
    return name.lower() in SKIP_HEADERS


def forwardable_headers(headers: HeaderItems) -> List[Tuple[str, str]]:
    """Headers to pass through, in arrival order, duplicates kept."""
    return [(name, value) for name, value in headers if not should_skip_header(name)]


def serialize_payload(payload: Any) -> str:
    """Compact JSON form of a request payload, preserving key order."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class CacheKeyBuilder:
    """Derive cache fingerprints from request identity."""

    def reconstruct_url(self, base_url: str, query_items: Iterable[Tuple[str, str]]) -> str:
        """Append every inbound query parameter except ``url`` to ``base_url``.

        Values are percent-encoded; names are copied as received.
        """
        params = [
            f"{name}={quote(value, safe='')}"
            for name, value in query_items
            if name.lower() != TARGET_PARAM
        ]
        if not params:
            return base_url

        separator = "&" if "?" in base_url else "?"
        return f"{base_url}{separator}{'&'.join(params)}"

    def fingerprint(
        self,
        method: str,
        full_url: str,
        headers: HeaderItems,
        payload: Optional[Any] = None,
    ) -> str:
        """Fingerprint for ``method`` on ``full_url`` with the given headers.

        For body-bearing methods the payload is folded in via its own digest.
        """
        if method.upper() in BODY_METHODS:
            base = f"{compute_hash(full_url)}|{compute_hash(serialize_payload(payload))}"
        else:
            base = full_url

        return compute_hash(self.canonical_string(base, headers))

    def canonical_string(self, base: str, headers: HeaderItems) -> str:
        parts = [base]
        for name, value in forwardable_headers(headers):
            parts.append(f"|{name}:{value}")
        return "".join(parts)
