"""
FastAPI dependencies that assemble the feed engine per request.

Store handles are injected here (and overridden in tests), so no engine
component reaches for global state on its own.
"""
import secrets
from typing import Optional

import redis.asyncio as aioredis
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_feed.clients.redis_client import FeedPartitions, get_redis
from recipe_feed.config import settings
from recipe_feed.database import get_db
from recipe_feed.engine.activities import ActivityStore
from recipe_feed.engine.dispatcher import FanOutDispatcher
from recipe_feed.engine.graph import FollowGraph
from recipe_feed.engine.reader import FeedReader


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, description="Caller id set by the auth gateway"),
) -> str:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id


async def require_internal_caller(
    x_internal_token: Optional[str] = Header(None),
) -> None:
    """Only the action-producing services may publish activities."""
    expected = settings.internal_api_token
    if expected and not secrets.compare_digest(x_internal_token or "", expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Internal endpoint",
        )


def get_feed_partitions(redis: aioredis.Redis = Depends(get_redis)) -> FeedPartitions:
    return FeedPartitions(redis)


def get_follow_graph(db: AsyncSession = Depends(get_db)) -> FollowGraph:
    return FollowGraph(db)


def get_activity_store(db: AsyncSession = Depends(get_db)) -> ActivityStore:
    return ActivityStore(db)


def get_dispatcher(
    graph: FollowGraph = Depends(get_follow_graph),
    activities: ActivityStore = Depends(get_activity_store),
    feeds: FeedPartitions = Depends(get_feed_partitions),
) -> FanOutDispatcher:
    return FanOutDispatcher(
        graph,
        activities,
        feeds,
        max_batch=settings.fanout_max_batch,
        parallelism=settings.fanout_parallelism,
    )


def get_feed_reader(feeds: FeedPartitions = Depends(get_feed_partitions)) -> FeedReader:
    return FeedReader(feeds)
