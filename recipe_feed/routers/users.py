"""
User management endpoints:
  POST /users                  — create a user profile
  GET  /users/{id}             — fetch a profile with follow counters
  GET  /users/{id}/followers   — list followers
  GET  /users/{id}/following   — list followed users
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_feed.database import get_db
from recipe_feed.dependencies import get_follow_graph
from recipe_feed.engine.graph import FollowGraph
from recipe_feed.models import User
from recipe_feed.schemas import UserCreate, UserIdList, UserResponse

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(body: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a new user with empty follow sets and zeroed counters."""
    with tracer.start_as_current_span("create_user"):
        existing = await db.execute(
            select(User).where(User.username == body.username)
        )
        if existing.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Username '{body.username}' already taken",
            )

        user = User(
            username=body.username,
            display_name=body.display_name,
            following_count=0,
            followers_count=0,
        )
        db.add(user)
        await db.flush()  # get user_id before commit
        await db.refresh(user)  # load server-generated fields (created_at)

        logger.info("Created user %s (id=%s)", user.username, user.user_id)
        return user


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, db: AsyncSession = Depends(get_db)):
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/{user_id}/followers", response_model=UserIdList)
async def list_followers(user_id: str, graph: FollowGraph = Depends(get_follow_graph)):
    followers = sorted(await graph.get_followers(user_id))
    return UserIdList(user_id=user_id, user_ids=followers, count=len(followers))


@router.get("/{user_id}/following", response_model=UserIdList)
async def list_following(user_id: str, graph: FollowGraph = Depends(get_follow_graph)):
    following = sorted(await graph.get_following(user_id))
    return UserIdList(user_id=user_id, user_ids=following, count=len(following))
