from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, field_validator


class FeedOrdering(str, Enum):
    """Server-side ordering of a feed; also used to sort local rows."""

    LATEST = "latest"      # newest first
    TRENDING = "trending"  # most liked first


class UserAnnotation(BaseModel):
    """Display projection of a user record, embedded in feed items."""

    display_name: str
    avatar_url: str = ""
    role: str = "endUser"


class FeedItem(BaseModel):
    id: str
    owner_id: str
    body: str = ""
    created_at: datetime
    like_count: int = 0
    comment_count: int = 0
    filter_key: str
    media_urls: list[str] | None = None
    annotation: UserAnnotation | None = None

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class FeedPage(BaseModel):
    """One page from the remote source.

    ``raw_count`` counts every record the remote returned, including the ones
    skipped because they failed to decode.
    """

    items: list[FeedItem]
    next_cursor: str | None = None
    raw_count: int = 0


class FeedStatus(BaseModel):
    filter_key: str
    is_loading: bool
    is_loading_more: bool
    has_more_content: bool
    last_fetch_time: datetime | None = None
    last_error: str | None = None
