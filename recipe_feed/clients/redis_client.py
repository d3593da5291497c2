"""
Redis client wrapper.

Responsibilities:
  • Feed partitions — one per follower, two keys each:
        feed:{user_id}        ZSET   member = activity_id
                                     score  = activity created_at (Unix)
        feed_items:{user_id}  HASH   activity_id → FeedEntry JSON
    Both keys are always written and deleted together inside one
    MULTI/EXEC transaction, which is what a "batch" means for the feed.

The fan-out dispatcher writes partitions, the feed reader pages through
them and the retention sweeper deletes from them.
"""
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis

from recipe_feed.config import settings
from recipe_feed.schemas import FeedEntry

logger = logging.getLogger(__name__)

_redis: Optional[aioredis.Redis] = None


def create_redis() -> aioredis.Redis:
    return aioredis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        decode_responses=True,
    )


async def init_redis() -> None:
    global _redis
    _redis = create_redis()
    await _redis.ping()
    logger.info("Redis connected at %s:%s", settings.redis_host, settings.redis_port)


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    if _redis is None:
        raise RuntimeError("Redis not initialised — call init_redis() at startup")
    return _redis


# ─────────────────────── Feed Partitions ──────────────────────────────────

FEED_KEY = "feed:{user_id}"
FEED_ITEMS_KEY = "feed_items:{user_id}"


def feed_key(user_id: str) -> str:
    return FEED_KEY.format(user_id=user_id)


def feed_items_key(user_id: str) -> str:
    return FEED_ITEMS_KEY.format(user_id=user_id)


def feed_score(created_at: datetime) -> float:
    """Sort key of an entry. Naive datetimes are treated as UTC."""
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at.timestamp()


class FeedPartitions:
    """Read/write access to follower feed partitions on one Redis handle."""

    def __init__(self, redis: aioredis.Redis):
        self.redis = redis

    async def write_batch(self, follower_ids: list[str], entry: FeedEntry) -> None:
        """
        Set `entry` in every partition of `follower_ids` as one transaction.
        Re-writing an existing (follower, activity) key is harmless.
        """
        score = feed_score(entry.created_at)
        document = entry.model_dump_json()
        pipe = self.redis.pipeline(transaction=True)
        for follower_id in follower_ids:
            pipe.zadd(feed_key(follower_id), {entry.activity_id: score})
            pipe.hset(feed_items_key(follower_id), entry.activity_id, document)
        await pipe.execute()

    async def newest(
        self, user_id: str, limit: int
    ) -> list[tuple[str, float]]:
        return await self.redis.zrevrange(
            feed_key(user_id), 0, limit - 1, withscores=True
        )

    async def older_than(
        self, user_id: str, score: float, activity_id: str, limit: int
    ) -> list[tuple[str, float]]:
        """
        Up to `limit` (activity_id, score) pairs strictly after the position
        (score, activity_id) in descending (score, activity_id) order.
        """
        key = feed_key(user_id)
        # Members sharing the cursor score come back first; over-fetch by that many
        ties = await self.redis.zcount(key, score, score)
        rows = await self.redis.zrevrangebyscore(
            key, score, "-inf", start=0, num=limit + ties, withscores=True
        )
        after = [
            (member, member_score)
            for member, member_score in rows
            if member_score < score or member < activity_id
        ]
        return after[:limit]

    async def load(self, user_id: str, activity_ids: list[str]) -> list[FeedEntry]:
        """Hydrate entries in the given order, skipping ones deleted meanwhile."""
        if not activity_ids:
            return []
        documents = await self.redis.hmget(feed_items_key(user_id), activity_ids)
        return [
            FeedEntry.model_validate_json(document)
            for document in documents
            if document is not None
        ]

    async def size(self, user_id: str) -> int:
        return await self.redis.zcard(feed_key(user_id))

    async def highest_score(self, user_id: str) -> Optional[float]:
        top = await self.redis.zrevrange(feed_key(user_id), 0, 0, withscores=True)
        return top[0][1] if top else None

    async def delete_batch(self, user_id: str, max_score: float, limit: int) -> int:
        """Delete up to `limit` of the oldest entries scored <= `max_score`."""
        key = feed_key(user_id)
        activity_ids = await self.redis.zrangebyscore(
            key, "-inf", max_score, start=0, num=limit
        )
        if not activity_ids:
            return 0
        pipe = self.redis.pipeline(transaction=True)
        pipe.zrem(key, *activity_ids)
        pipe.hdel(feed_items_key(user_id), *activity_ids)
        removed, _ = await pipe.execute()
        return removed

    async def partitions(self) -> AsyncIterator[str]:
        """Yield the user id of every non-empty feed partition."""
        prefix = FEED_KEY.format(user_id="")
        async for key in self.redis.scan_iter(match=f"{prefix}*", count=500):
            yield key[len(prefix):]
