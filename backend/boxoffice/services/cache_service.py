"""
Redis helpers for ticket-type availability and webhook dedupe.

CACHING STRATEGY
================

What we cache:
  - The "available ticket types" listing of an event (JSON-serialized)
  - Cache key pattern: "events:{event_id}:ticket_types"

Invalidation strategy:
  - On every reserve and release for the event: delete its key
  - On ticket type creation or update: delete its key
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

The cache is display-only. Reservations never read it; the inventory
ledger's guarded update against the database decides who gets a ticket,
so a stale listing can only cause a polite InsufficientStock, never an
oversell.

Webhook dedupe:
  - "webhooks:seen:{event_id}" set with NX when a callback is accepted
  - Pure fast path: the purchase state machine is idempotent on its own,
    so a Redis outage only costs a few redundant state reads
"""

import json
from typing import Optional

from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger
from boxoffice.infrastructure.redis_client import get_redis

logger = get_logger(__name__)

WEBHOOK_SEEN_TTL = 24 * 3600


def _make_ticket_types_key(event_id: int) -> str:
    return f"events:{event_id}:ticket_types"


def _make_webhook_key(event_id: str) -> str:
    return f"webhooks:seen:{event_id}"


async def get_cached_ticket_types(event_id: int) -> Optional[list]:
    client = await get_redis()
    if not client:
        return None

    key = _make_ticket_types_key(event_id)
    try:
        data = await client.get(key)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_ticket_types(event_id: int, data: list) -> None:
    client = await get_redis()
    if not client:
        return

    ttl = get_settings().REDIS_CACHE_TTL
    key = _make_ticket_types_key(event_id)
    try:
        await client.setex(key, ttl, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=ttl)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_ticket_types(event_id: int) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_ticket_types_key(event_id)
    try:
        await client.delete(key)
        logger.debug("cache_invalidated", key=key)
    except Exception as e:
        logger.error("cache_invalidation_error", key=key, error=str(e))


async def mark_webhook_seen(event_id: Optional[str]) -> bool:
    """
    Returns True if this callback id is new (or dedupe is unavailable),
    False if it was already accepted once.
    """
    if not event_id:
        return True
    client = await get_redis()
    if not client:
        return True

    try:
        ok = await client.set(_make_webhook_key(event_id), "1", nx=True, ex=WEBHOOK_SEEN_TTL)
        return bool(ok)
    except Exception as e:
        logger.error("webhook_dedupe_error", event_id=event_id, error=str(e))
        return True


async def forget_webhook(event_id: Optional[str]) -> None:
    """Drop the seen-marker so the processor's retry of a failed callback is processed."""
    if not event_id:
        return
    client = await get_redis()
    if not client:
        return

    try:
        await client.delete(_make_webhook_key(event_id))
    except Exception as e:
        logger.error("webhook_dedupe_error", event_id=event_id, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
