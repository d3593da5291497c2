"""
Activity ingestion endpoints:
  POST /activities      — internal; called by recipe/collection/menu services
  GET  /activities/{id} — fetch a canonical activity (public)
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_feed.database import get_db
from recipe_feed.dependencies import get_activity_store, get_dispatcher, require_internal_caller
from recipe_feed.engine.activities import ActivityStore
from recipe_feed.engine.dispatcher import FanOutDispatcher
from recipe_feed.errors import UserNotFoundError
from recipe_feed.models import User
from recipe_feed.schemas import ActivityCreate, ActivityResponse, PublishAccepted

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.post(
    "",
    response_model=PublishAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_internal_caller)],
)
async def publish_activity(
    body: ActivityCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    dispatcher: FanOutDispatcher = Depends(get_dispatcher),
):
    """
    Write side of the feed:

    1. Validate the author exists; fill in the display name if omitted.
    2. Snapshot the author's followers and commit the canonical activity.
    3. Schedule fan-out to follower feeds after the response is sent.

    Only steps 1–2 are on the request path. Fan-out batch failures are
    logged for repair (`recipe-feed-admin republish`) and never turn a
    published activity into a failed request.
    """
    with tracer.start_as_current_span("publish_activity") as span:
        author = await db.get(User, body.author_id)
        if not author:
            raise UserNotFoundError(body.author_id)
        if body.author_display_name is None:
            body.author_display_name = author.display_name or author.username

        pending = await dispatcher.prepare(body.author_id, body)
        span.set_attribute("activity.id", pending.activity.activity_id)
        span.set_attribute("fanout.follower_count", len(pending.followers))

        background_tasks.add_task(dispatcher.fan_out, pending.activity, pending.followers)

        return PublishAccepted(
            activity=ActivityResponse.model_validate(pending.activity),
            follower_count=len(pending.followers),
        )


@router.get("/{activity_id}", response_model=ActivityResponse)
async def get_activity(activity_id: str, activities: ActivityStore = Depends(get_activity_store)):
    return await activities.get(activity_id)
