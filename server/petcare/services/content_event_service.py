"""Notifications produced by community content events."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, local_now
from ..models.notification import Notification, NotificationType, TargetType
from ..schemas.notification import CommentCreatedEvent, LikeCreatedEvent, PostPublishedEvent
from .keyword_service import KeywordMatcher, PublishedContent, post_link
from .live_channels import LiveChannelRegistry
from .notification_service import NotificationCommand, NotificationHub

logger = logging.getLogger(__name__)

_PREVIEW_LENGTH = 80


def _preview(text: str) -> str | None:
    text = (text or "").strip()
    if not text:
        return None
    return text if len(text) <= _PREVIEW_LENGTH else text[:_PREVIEW_LENGTH - 1] + "…"


class ContentEventService:
    """Turns post, comment and like events into notifications."""

    def __init__(
        self,
        db: AsyncSession,
        registry: LiveChannelRegistry | None = None,
        clock: Clock = local_now,
    ):
        self.db = db
        self.hub = NotificationHub(db, registry=registry, clock=clock)
        self.matcher = KeywordMatcher(db, registry=registry, clock=clock)

    async def on_post_published(self, event: PostPublishedEvent) -> list[Notification]:
        return await self.matcher.on_content_published(
            PublishedContent(
                content_id=event.post_id,
                author_id=event.author_id,
                title=event.title,
                text=event.text,
                category=event.category,
                secret=event.secret,
            )
        )

    async def on_comment_created(self, event: CommentCreatedEvent) -> Notification | None:
        """Tell the post author about a new comment, unless they wrote it."""
        if event.commenter_id == event.post_author_id:
            return None

        return await self.hub.create_and_push(
            NotificationCommand(
                receiver_id=event.post_author_id,
                type=NotificationType.COMMENT,
                title="New comment on your post",
                message=_preview(event.text),
                target_type=TargetType.COMMENT,
                target_id=event.comment_id,
                link_url=post_link(event.post_id),
                actor_id=event.commenter_id,
            )
        )

    async def on_like_created(self, event: LikeCreatedEvent) -> Notification | None:
        """Tell the author of a post or comment that it was liked, unless they liked it themselves."""
        if event.liker_id == event.content_author_id:
            return None

        if event.target_type == TargetType.COMMENT:
            notification_type, target_type, title = (
                NotificationType.COMMENT_LIKE, TargetType.COMMENT_LIKE, "Someone liked your comment"
            )
        else:
            notification_type, target_type, title = (
                NotificationType.POST_LIKE, TargetType.POST_LIKE, "Someone liked your post"
            )

        return await self.hub.create_and_push(
            NotificationCommand(
                receiver_id=event.content_author_id,
                type=notification_type,
                title=title,
                target_type=target_type,
                target_id=event.target_id,
                link_url=post_link(event.post_id),
                actor_id=event.liker_id,
            )
        )
