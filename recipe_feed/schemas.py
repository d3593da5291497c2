"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.
FeedEntry doubles as the JSON document stored in each feed partition.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from recipe_feed.text import extract_preview, slugify


# ──────────────────────────── Users ───────────────────────────────────────

class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    display_name: Optional[str] = None


class UserResponse(BaseModel):
    user_id: str
    username: str
    display_name: Optional[str]
    following_count: int
    followers_count: int
    created_at: datetime

    class Config:
        from_attributes = True


class FollowResponse(BaseModel):
    actor_id: str
    target_id: str
    following: bool
    # False when the call was an idempotent no-op
    changed: bool


class UserIdList(BaseModel):
    user_id: str
    user_ids: list[str]
    count: int


# ──────────────────────────── Activities ──────────────────────────────────

class ActivityKind(str, Enum):
    RECIPE_CREATED = "recipe_created"
    COLLECTION_CREATED = "collection_created"
    MENU_CREATED = "menu_created"


class ActivityPayload(BaseModel):
    """What an action-producing operation hands to the dispatcher."""
    kind: ActivityKind
    author_display_name: Optional[str] = Field(None, max_length=255)
    entity_id: str = Field(..., min_length=1, max_length=64)
    entity_title: str = Field(..., max_length=500)
    entity_slug: Optional[str] = Field(None, max_length=600)
    preview: Optional[str] = None
    # Markdown body; only used to derive `preview` when none is given
    content: Optional[str] = Field(None, exclude=True)

    @field_validator("entity_title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("entity_title must not be blank")
        # Editor placeholder titles never reach followers' feeds
        if "untitled" in value.lower():
            raise ValueError("entity_title is a placeholder and not suitable for fan-out")
        return value

    @model_validator(mode="after")
    def _derive_display_fields(self):
        if not self.entity_slug:
            self.entity_slug = slugify(self.entity_title, self.entity_id)
        if self.preview is None and self.content:
            self.preview = extract_preview(self.content)
        return self


class ActivityCreate(ActivityPayload):
    author_id: str


class ActivityResponse(BaseModel):
    activity_id: str
    author_id: str
    author_display_name: Optional[str]
    kind: ActivityKind
    entity_id: str
    entity_title: str
    entity_slug: str
    preview: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class PublishAccepted(BaseModel):
    activity: ActivityResponse
    # Size of the follower snapshot fan-out was scheduled against
    follower_count: int


# ──────────────────────────── Feed ────────────────────────────────────────

class FeedEntry(ActivityResponse):
    """A follower-local copy of an activity, never a reference to it."""


class FeedPage(BaseModel):
    user_id: str
    entries: list[FeedEntry]
    next_cursor: Optional[str] = None
    empty: bool
