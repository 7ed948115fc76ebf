"""
Database Module - Supabase and Redis Clients

Provides singleton instances of:
- Async Supabase client for cart rows, product lookups and auth sessions
- Sync Upstash Redis client for device-scoped anonymous carts
"""

import os
from typing import Optional

from supabase._async.client import AsyncClient, create_client as acreate_client
from upstash_redis import Redis


SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
# Shopper-facing sessions use the anon key; backend jobs may only have the service role key
SUPABASE_KEY = os.environ.get("SUPABASE_ANON_KEY") or os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")

UPSTASH_REDIS_REST_URL = os.environ.get("UPSTASH_REDIS_REST_URL", "")
UPSTASH_REDIS_REST_TOKEN = os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")


_async_supabase_client: Optional[AsyncClient] = None
_sync_redis_client: Optional[Redis] = None


async def get_supabase() -> AsyncClient:
    """
    Get async Supabase client (singleton).
    Preferred for all async operations.
    """
    global _async_supabase_client

    if _async_supabase_client is None:
        if not SUPABASE_URL or not SUPABASE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY (or SUPABASE_SERVICE_ROLE_KEY) must be set")
        _async_supabase_client = await acreate_client(SUPABASE_URL, SUPABASE_KEY)

    return _async_supabase_client


def get_redis_sync() -> Redis:
    """
    Get sync Upstash Redis client (singleton).

    Anonymous cart writes are synchronous so a mutation never suspends
    between updating the in-memory cart and persisting it.
    """
    global _sync_redis_client

    if _sync_redis_client is None:
        if not UPSTASH_REDIS_REST_URL or not UPSTASH_REDIS_REST_TOKEN:
            raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
        _sync_redis_client = Redis(url=UPSTASH_REDIS_REST_URL, token=UPSTASH_REDIS_REST_TOKEN)

    return _sync_redis_client


class RedisKeys:
    """Redis key prefixes for different data types."""

    DEVICE = "device:"  # device:{device_id}:{key}

    @staticmethod
    def device_key(device_id: str, key: str) -> str:
        return f"{RedisKeys.DEVICE}{device_id}:{key}"


class TTL:
    """Time-to-live constants for Redis keys (seconds)."""

    ANONYMOUS_CART = 2592000  # 30 days
