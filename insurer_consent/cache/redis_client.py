from __future__ import annotations
from redis.asyncio import from_url, Redis

def build_redis(url: str) -> Redis:
    # Constructed once at app start and owned by the idempotency store
    return from_url(
        url,
        encoding="utf-8",
        decode_responses=True,  # store/read JSON strings
    )
