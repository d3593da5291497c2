"""
Fan-out dispatcher.

For every published activity:
  1. Snapshot the author's followers from the follow graph.
  2. Write the canonical activity record.
  3. Copy the activity into every follower's feed partition, in batches of
     at most `max_batch` entries, each batch one Redis transaction.

Key design decisions:
  • Fan-out on WRITE — follower partitions are populated at publish time so
    GET /feed is a single ZSET range read.
  • The canonical write is the commit point. A batch that fails afterwards
    is logged with the follower ids it carried and returned to the caller;
    it is not retried here and never undoes the canonical record.
    `republish` is the repair path: writes are keyed by
    (follower, activity), so re-delivering is idempotent.
  • Batches are committed by a bounded pool of `parallelism` workers, so
    one large fan-out cannot open unbounded concurrent store connections.
  • Followers are read as a snapshot. A follow/unfollow racing with a
    publish from the followed author may or may not see that activity;
    this is accepted, not serialized.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence

from opentelemetry import trace
from redis.exceptions import RedisError

from recipe_feed.clients.redis_client import FeedPartitions
from recipe_feed.config import MAX_BATCH
from recipe_feed.engine.activities import ActivityStore
from recipe_feed.engine.graph import FollowGraph
from recipe_feed.models import Activity
from recipe_feed.schemas import ActivityPayload, FeedEntry
from recipe_feed.telemetry import FANOUT_BATCHES_TOTAL, FANOUT_ENTRIES_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def chunked(items: Sequence[str], size: int) -> Iterator[list[str]]:
    """Consecutive slices of at most `size`; the last one is never padded."""
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


@dataclass
class BatchOutcome:
    index: int
    follower_ids: list[str]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PublishResult:
    activity: Activity
    follower_count: int
    batches: list[BatchOutcome] = field(default_factory=list)

    @property
    def failed_batches(self) -> list[BatchOutcome]:
        return [b for b in self.batches if not b.ok]

    @property
    def delivered(self) -> int:
        return sum(len(b.follower_ids) for b in self.batches if b.ok)

    @property
    def complete(self) -> bool:
        return not self.failed_batches


@dataclass
class PendingFanOut:
    """A committed activity plus the follower snapshot it must reach."""
    activity: Activity
    followers: list[str]


class FanOutDispatcher:
    def __init__(
        self,
        graph: FollowGraph,
        activities: ActivityStore,
        feeds: FeedPartitions,
        *,
        max_batch: int = MAX_BATCH,
        parallelism: int = 1,
    ):
        if not 1 <= max_batch <= MAX_BATCH:
            raise ValueError(f"max_batch must be between 1 and {MAX_BATCH}")
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self.graph = graph
        self.activities = activities
        self.feeds = feeds
        self.max_batch = max_batch
        self.parallelism = parallelism

    async def publish(self, author_id: str, payload: ActivityPayload) -> PublishResult:
        """Create the canonical activity and deliver it to every follower."""
        pending = await self.prepare(author_id, payload)
        return await self.fan_out(pending.activity, pending.followers)

    async def prepare(self, author_id: str, payload: ActivityPayload) -> PendingFanOut:
        """
        Steps that must finish before the triggering request may succeed:
        the follower snapshot and the canonical write.
        """
        followers = await self.graph.get_followers(author_id)
        activity = await self.activities.create(author_id, payload)
        return PendingFanOut(activity=activity, followers=sorted(followers))

    async def republish(self, activity_id: str) -> PublishResult:
        """Re-deliver an existing activity to the author's current followers."""
        activity = await self.activities.get(activity_id)
        followers = await self.graph.get_followers(activity.author_id)
        logger.info(
            "Republishing activity %s to %d current followers",
            activity_id, len(followers),
        )
        return await self.fan_out(activity, sorted(followers))

    async def fan_out(self, activity: Activity, followers: Sequence[str]) -> PublishResult:
        result = PublishResult(activity=activity, follower_count=len(followers))

        with tracer.start_as_current_span("fanout") as span:
            span.set_attribute("activity.id", activity.activity_id)
            span.set_attribute("activity.author_id", activity.author_id)
            span.set_attribute("fanout.follower_count", len(followers))

            if not followers:
                logger.info(
                    "Activity %s — author %s has no followers, skipping fan-out",
                    activity.activity_id, activity.author_id,
                )
                return result

            t0 = time.perf_counter()
            entry = FeedEntry.model_validate(activity)
            workers = asyncio.Semaphore(self.parallelism)

            async def commit(index: int, chunk: list[str]) -> BatchOutcome:
                async with workers:
                    return await self._commit_batch(entry, index, chunk)

            result.batches = list(
                await asyncio.gather(
                    *[
                        commit(index, chunk)
                        for index, chunk in enumerate(chunked(followers, self.max_batch))
                    ]
                )
            )

            span.set_attribute("fanout.batches", len(result.batches))
            span.set_attribute("fanout.failed_batches", len(result.failed_batches))

        elapsed = (time.perf_counter() - t0) * 1000
        if result.complete:
            logger.info(
                "Fan-out complete: activity %s → %d followers in %d batches (%.1fms)",
                activity.activity_id, result.delivered, len(result.batches), elapsed,
            )
        else:
            logger.error(
                "Fan-out partial: activity %s by %s delivered to %d/%d followers, "
                "%d batches failed",
                activity.activity_id, activity.author_id, result.delivered,
                result.follower_count, len(result.failed_batches),
            )
        return result

    async def _commit_batch(
        self, entry: FeedEntry, index: int, follower_ids: list[str]
    ) -> BatchOutcome:
        with tracer.start_as_current_span("fanout.batch") as span:
            span.set_attribute("fanout.batch.index", index)
            span.set_attribute("fanout.batch.size", len(follower_ids))
            try:
                await self.feeds.write_batch(follower_ids, entry)
            except (RedisError, OSError) as exc:
                FANOUT_BATCHES_TOTAL.labels(outcome="failed").inc()
                span.record_exception(exc)
                logger.error(
                    "Fan-out batch %d failed for activity %s (author %s), followers %s: %s",
                    index, entry.activity_id, entry.author_id,
                    ", ".join(follower_ids), exc,
                )
                return BatchOutcome(index=index, follower_ids=follower_ids, error=str(exc))

        FANOUT_BATCHES_TOTAL.labels(outcome="ok").inc()
        FANOUT_ENTRIES_TOTAL.inc(len(follower_ids))
        logger.debug(
            "Fan-out batch %d committed: activity %s → %d followers",
            index, entry.activity_id, len(follower_ids),
        )
        return BatchOutcome(index=index, follower_ids=follower_ids)
