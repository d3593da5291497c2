"""
Feed reader — serves a follower's own partition, newest first.

Pages are ordered by (created_at, activity_id) descending. The cursor is an
opaque URL-safe token of the last returned entry's position; anything that
does not decode to one is treated as "no cursor".
"""
import base64
import binascii
import logging
import math
import time
from typing import Optional

from opentelemetry import trace

from recipe_feed.clients.redis_client import FeedPartitions
from recipe_feed.schemas import FeedPage
from recipe_feed.telemetry import FEED_LATENCY

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_LIMIT = 50


def encode_cursor(score: float, activity_id: str) -> str:
    raw = f"{score!r}|{activity_id}".encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: Optional[str]) -> Optional[tuple[float, str]]:
    if not cursor:
        return None
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
        score, activity_id = raw.split("|", 1)
        position = (float(score), activity_id)
    except (binascii.Error, UnicodeError, ValueError):
        logger.debug("Ignoring malformed feed cursor %r", cursor)
        return None
    if not activity_id or not math.isfinite(position[0]):
        return None
    return position


class FeedReader:
    def __init__(self, feeds: FeedPartitions):
        self.feeds = feeds

    async def get_feed(
        self,
        user_id: str,
        limit: int = DEFAULT_LIMIT,
        cursor: Optional[str] = None,
    ) -> FeedPage:
        if limit < 1:
            raise ValueError("limit must be positive")

        start_time = time.perf_counter()
        with tracer.start_as_current_span("get_feed") as span:
            span.set_attribute("user.id", user_id)

            position = decode_cursor(cursor)
            if position is None:
                rows = await self.feeds.newest(user_id, limit)
            else:
                rows = await self.feeds.older_than(user_id, *position, limit)

            scores = dict(rows)
            entries = await self.feeds.load(user_id, [member for member, _ in rows])

            next_cursor = None
            if len(rows) == limit and entries:
                last = entries[-1]
                next_cursor = encode_cursor(scores[last.activity_id], last.activity_id)

            span.set_attribute("feed.entries_returned", len(entries))

        FEED_LATENCY.observe(time.perf_counter() - start_time)
        return FeedPage(
            user_id=user_id,
            entries=entries,
            next_cursor=next_cursor,
            empty=not entries,
        )
