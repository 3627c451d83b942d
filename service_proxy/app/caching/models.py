"""
Cached response record.
"""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional


DEFAULT_CONTENT_TYPE = "application/json"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    """One cached origin response, keyed by request fingerprint."""

    fingerprint: str
    target_url: str
    body: bytes
    content_type: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)
    status_code: int = 200

    @classmethod
    def build(
        cls,
        fingerprint: str,
        target_url: str,
        body: bytes,
        content_type: Optional[str],
        ttl_seconds: int,
        status_code: int = 200,
        now: Optional[datetime] = None,
    ) -> "CacheEntry":
        """Create an entry that stays live for ``ttl_seconds`` from ``now``."""
        now = now or utcnow()
        return cls(
            fingerprint=fingerprint,
            target_url=target_url,
            body=body,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            expires_at=now + timedelta(seconds=ttl_seconds),
            created_at=now,
            status_code=status_code,
        )

    def is_live(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) < self.expires_at

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe document."""
        return {
            "fingerprint": self.fingerprint,
            "url": self.target_url,
            "content": base64.b64encode(self.body).decode("ascii"),
            "contentType": self.content_type,
            "statusCode": self.status_code,
            "expirationTime": self.expires_at.isoformat(),
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "CacheEntry":
        return cls(
            fingerprint=document["fingerprint"],
            target_url=document["url"],
            body=base64.b64decode(document["content"]),
            content_type=document["contentType"],
            status_code=int(document.get("statusCode", 200)),
            expires_at=datetime.fromisoformat(document["expirationTime"]),
            created_at=datetime.fromisoformat(document["createdAt"]),
        )
