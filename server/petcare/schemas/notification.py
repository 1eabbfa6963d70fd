"""Notification, keyword subscription and content event schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.notification import NotificationType, TargetType
from .common import PageMeta


class Notification(BaseModel):
    """Notification response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: str
    receiver_id: str
    actor_id: str | None = None
    type: NotificationType
    target_type: TargetType | None = None
    target_id: str | None = None
    title: str
    message: str | None = None
    link_url: str | None = None
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime


class NotificationPage(BaseModel):
    """One page of a receiver's notifications, newest first."""

    items: list[Notification]
    meta: PageMeta


class MarkAllReadResponse(BaseModel):
    updated: int = Field(..., ge=0, description="Notifications flipped to read")


class SubscribeKeywordRequest(BaseModel):
    """Request schema for a keyword subscription."""

    keyword: str = Field(..., max_length=100, description="Text to watch for")
    scope: str | None = Field(None, max_length=30, description="Content category; omit for all")

    @field_validator("scope")
    @classmethod
    def blank_scope_is_global(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v


class KeywordSubscription(BaseModel):
    """Keyword subscription response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    keyword: str
    scope: str | None = None
    created_at: datetime | None = None


class PostPublishedEvent(BaseModel):
    """A post became visible."""

    post_id: str = Field(..., description="Post ID")
    author_id: str = Field(..., description="Member who wrote the post")
    category: str | None = Field(None, max_length=30, description="Board / content category")
    title: str = Field("", max_length=300)
    text: str = Field("", description="Body text")
    secret: bool = Field(False, description="Secret posts never reach keyword subscribers")


class CommentCreatedEvent(BaseModel):
    """A comment was written on a post."""

    comment_id: str
    post_id: str
    post_author_id: str
    commenter_id: str
    text: str = Field("", max_length=2000)


class LikeCreatedEvent(BaseModel):
    """A post or comment received a like."""

    target_type: TargetType = Field(..., description="POST or COMMENT")
    target_id: str = Field(..., description="Liked post or comment ID")
    post_id: str = Field(..., description="Post containing the liked content")
    content_author_id: str
    liker_id: str

    @field_validator("target_type")
    @classmethod
    def likeable_only(cls, v: TargetType) -> TargetType:
        if v not in (TargetType.POST, TargetType.COMMENT):
            raise ValueError("Only posts and comments can be liked")
        return v


class ContentEventResult(BaseModel):
    """Notifications produced by a content event."""

    notified: list[str] = Field(default_factory=list, description="Receivers notified")
