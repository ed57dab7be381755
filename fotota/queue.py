"""
Queue of match requests for the external face matcher.

The matcher consumes user ids from this queue and reads the selfie path from
the user's profile. Supports an in-memory fallback for tests/local runs and a
Redis-backed implementation for production.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


@dataclass
class MatchRequest:
    user_id: str
    selfie_path: str
    reason: str
    requested_at: float = field(default_factory=lambda: time.time())

    def to_json(self) -> str:
        return json.dumps(
            {
                "user_id": self.user_id,
                "selfie_path": self.selfie_path,
                "reason": self.reason,
                "requested_at": self.requested_at,
            }
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "MatchRequest":
        payload = json.loads(raw)
        return cls(
            user_id=payload["user_id"],
            selfie_path=payload["selfie_path"],
            reason=payload.get("reason", ""),
            requested_at=payload.get("requested_at", 0.0),
        )


class MatchRequestQueue(Protocol):
    """Minimal queue interface for handing match requests to the matcher."""

    def enqueue(self, request: MatchRequest) -> None:
        ...

    def dequeue(self) -> Optional[MatchRequest]:
        ...


@dataclass
class InMemoryMatchRequestQueue:
    """Simple FIFO queue for testing/dev."""

    items: list[MatchRequest] = field(default_factory=list)

    def enqueue(self, request: MatchRequest) -> None:
        self.items.append(request)

    def dequeue(self) -> Optional[MatchRequest]:
        if not self.items:
            return None
        return self.items.pop(0)


@dataclass
class RedisMatchRequestQueue:
    """Redis-backed queue using list push/pop operations."""

    url: str
    queue_key: str = "fotota:match-requests"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def enqueue(self, request: MatchRequest) -> None:
        self.client.rpush(self.queue_key, request.to_json())

    def dequeue(self) -> Optional[MatchRequest]:
        try:
            raw = self.client.lpop(self.queue_key)
        except redis_exceptions.ConnectionError:
            # Managed Redis drops idle connections; reconnect and report empty.
            logger.warning("Redis connection reset while reading %s", self.queue_key)
            self.client = redis.Redis.from_url(self.url)
            return None
        if raw is None:
            return None
        return MatchRequest.from_json(raw)
