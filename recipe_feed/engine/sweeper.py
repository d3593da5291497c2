"""
Retention sweeper — bulk-deletes feed partitions in bounded batches.

Operator-triggered. Safe to interrupt and re-run, and safe to run while
fan-out is still writing to the same partition: entries that arrive during
a sweep may or may not be removed, but the sweep always terminates.
"""
import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from opentelemetry import trace

from recipe_feed.clients.redis_client import FeedPartitions
from recipe_feed.config import MAX_BATCH
from recipe_feed.telemetry import FEED_ENTRIES_SWEPT_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ProgressCallback = Callable[[str, int], None]


@dataclass
class SweepSummary:
    partitions: int = 0
    deleted: int = 0


class RetentionSweeper:
    def __init__(
        self,
        feeds: FeedPartitions,
        *,
        max_batch: int = MAX_BATCH,
        on_progress: Optional[ProgressCallback] = None,
    ):
        if not 1 <= max_batch <= MAX_BATCH:
            raise ValueError(f"max_batch must be between 1 and {MAX_BATCH}")
        self.feeds = feeds
        self.max_batch = max_batch
        self.on_progress = on_progress

    async def clear_feed(self, user_id: str) -> int:
        """Delete every entry of `user_id`'s partition; returns the count."""
        with tracer.start_as_current_span("sweep.clear_feed") as span:
            span.set_attribute("user.id", user_id)

            ceiling = await self.feeds.highest_score(user_id)
            if ceiling is None:
                logger.info("Feed for %s is already empty", user_id)
                return 0

            initial = await self.feeds.size(user_id)
            # Only entries present at the start are owed; one spare pass
            # absorbs writes that land below the ceiling mid-sweep
            passes = math.ceil(initial / self.max_batch) + 1
            deleted = 0
            for _ in range(passes):
                removed = await self.feeds.delete_batch(user_id, ceiling, self.max_batch)
                if removed == 0:
                    break
                deleted += removed
                FEED_ENTRIES_SWEPT_TOTAL.inc(removed)
                logger.info("Deleted %d feed entries for %s...", deleted, user_id)
                if self.on_progress is not None:
                    self.on_progress(user_id, deleted)

            span.set_attribute("sweep.deleted", deleted)

        logger.info("Cleared feed for %s: %d entries deleted", user_id, deleted)
        return deleted

    async def clear_all(self) -> SweepSummary:
        """Sweep every feed partition in the store."""
        summary = SweepSummary()
        # SCAN may yield a key more than once
        user_ids = {user_id async for user_id in self.feeds.partitions()}
        for user_id in sorted(user_ids):
            deleted = await self.clear_feed(user_id)
            summary.partitions += 1
            summary.deleted += deleted
        logger.info(
            "Cleared %d feed partitions, %d entries deleted",
            summary.partitions, summary.deleted,
        )
        return summary
