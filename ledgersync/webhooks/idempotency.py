"""Webhook idempotency: Redis-based delivery deduplication.

Contract:
- Tracks delivery ids in Redis with a 24h TTL
- Duplicates are acknowledged with 200 (platforms retry on errors)
- Key pattern: webhook:seen:{provider}:{delivery_id}
- If Redis is down, deliveries are allowed through (fail-open)
- A claim is released when processing fails so the platform retry is not
  swallowed as a duplicate
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

_DEDUP_TTL_SECONDS = 86400  # 24 hours

# Key prefix for webhook dedup
_KEY_PREFIX = "webhook:seen"


def _key(provider: str, delivery_id: str) -> str:
    return f"{_KEY_PREFIX}:{provider}:{delivery_id}"


class DeliveryLog:
    """Seen-delivery registry backed by Redis."""

    def __init__(self, redis_url: str) -> None:
        self.redis_url = redis_url
        self._client = None

    def _get_redis(self):
        if self._client is None:
            import redis as redis_lib

            self._client = redis_lib.from_url(self.redis_url, decode_responses=True)
        return self._client

    def is_duplicate(self, provider: str, delivery_id: str) -> bool:
        """Atomically check-and-mark a delivery id.

        Returns:
            True if this delivery has already been seen
        """
        if not delivery_id:
            return False  # No ID = can't dedup, allow through

        try:
            # SET NX returns True if the key was set (new), None if it already existed
            was_set = self._get_redis().set(_key(provider, delivery_id), "1", nx=True, ex=_DEDUP_TTL_SECONDS)
        except Exception:
            logger.warning(
                "Redis unavailable for webhook dedup - allowing %s/%s",
                provider,
                delivery_id,
                exc_info=True,
            )
            return False
        if not was_set:
            logger.info("Duplicate webhook suppressed: %s/%s", provider, delivery_id)
            return True
        return False

    def release(self, provider: str, delivery_id: str) -> None:
        """Forget a claimed delivery id after a failed attempt."""
        if not delivery_id:
            return
        try:
            self._get_redis().delete(_key(provider, delivery_id))
        except Exception:
            logger.warning("Failed to release webhook claim: %s/%s", provider, delivery_id)


class NullDeliveryLog:
    """Registry used when no Redis is configured: every delivery is new."""

    def is_duplicate(self, provider: str, delivery_id: str) -> bool:
        return False

    def release(self, provider: str, delivery_id: str) -> None:
        return None
