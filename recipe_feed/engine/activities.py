"""
Activity record store — the canonical, append-only log of trackable actions.
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from recipe_feed.errors import ActivityNotFoundError
from recipe_feed.models import Activity
from recipe_feed.schemas import ActivityPayload
from recipe_feed.telemetry import ACTIVITIES_PUBLISHED_TOTAL

logger = logging.getLogger(__name__)

_last_created_at: datetime | None = None


def next_created_at() -> datetime:
    """
    Naive-UTC creation timestamp, strictly increasing within this process
    so two activities never share a feed position.
    """
    global _last_created_at
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    if _last_created_at is not None and now <= _last_created_at:
        now = _last_created_at + timedelta(microseconds=1)
    _last_created_at = now
    return now


class ActivityStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, author_id: str, payload: ActivityPayload) -> Activity:
        """Write and commit the canonical record for one action."""
        activity = Activity(
            author_id=author_id,
            author_display_name=payload.author_display_name,
            kind=payload.kind.value,
            entity_id=payload.entity_id,
            entity_title=payload.entity_title,
            entity_slug=payload.entity_slug,
            preview=payload.preview,
            created_at=next_created_at(),
        )
        self.session.add(activity)
        await self.session.commit()

        ACTIVITIES_PUBLISHED_TOTAL.labels(kind=activity.kind).inc()
        logger.info(
            "Activity %s created: %s %s by %s",
            activity.activity_id, activity.kind, activity.entity_id, author_id,
        )
        return activity

    async def get(self, activity_id: str) -> Activity:
        activity = await self.session.get(Activity, activity_id)
        if activity is None:
            raise ActivityNotFoundError(activity_id)
        return activity
