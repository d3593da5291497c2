"""
Feed retrieval endpoint — GET /feed?limit=&cursor=

Reads only the caller's own partition (fan-out already did the work at
write time), newest first. An empty feed is a normal page with
`empty: true`, not an error.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from recipe_feed.config import settings
from recipe_feed.dependencies import get_current_user_id, get_feed_reader
from recipe_feed.engine.reader import FeedReader
from recipe_feed.schemas import FeedPage

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=FeedPage)
async def get_feed(
    limit: int = Query(settings.feed_page_size, ge=1, le=settings.feed_max_page_size),
    cursor: Optional[str] = Query(None, description="next_cursor of the previous page"),
    user_id: str = Depends(get_current_user_id),
    reader: FeedReader = Depends(get_feed_reader),
):
    return await reader.get_feed(user_id, limit=limit, cursor=cursor)
