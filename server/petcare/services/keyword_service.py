"""Keyword subscriptions and matching of newly published content."""

import logging
from dataclasses import dataclass

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, local_now
from ..core.exceptions import ConflictError, NotFoundOrNotOwnerError, ValidationError
from ..models.keyword import KeywordSubscription
from ..models.notification import Notification, NotificationType, TargetType
from .live_channels import LiveChannelRegistry
from .member_service import MemberDirectory
from .notification_service import NotificationCommand, NotificationHub

logger = logging.getLogger(__name__)

MAX_KEYWORD_LENGTH = 100


class SubscriptionNotFoundError(NotFoundOrNotOwnerError):
    def __init__(self, subscription_id: int | str):
        super().__init__(resource_type="keyword_subscription", resource_id=str(subscription_id))


@dataclass(frozen=True)
class PublishedContent:
    """A newly visible piece of user content."""

    content_id: str
    author_id: str
    title: str = ""
    text: str = ""
    category: str | None = None
    secret: bool = False

    @property
    def searchable_text(self) -> str:
        """
        Title and body joined by a single space.

        A keyword containing a space can therefore match across the end of
        the title and the start of the body.
        """
        return f"{self.title or ''} {self.text or ''}"


def normalize_keyword(keyword: str | None) -> str:
    """
    Trim a keyword for storage.

    Raises:
        ValidationError: If the keyword is blank or too long
    """
    cleaned = (keyword or "").strip()
    if not cleaned:
        raise ValidationError(detail="keyword must not be blank")
    if len(cleaned) > MAX_KEYWORD_LENGTH:
        raise ValidationError(detail=f"keyword must be at most {MAX_KEYWORD_LENGTH} characters")
    return cleaned


def matches(keyword: str, content: PublishedContent) -> bool:
    """Case-sensitive substring match against title and body."""
    return bool(keyword) and keyword in content.searchable_text


def post_link(content_id: str) -> str:
    return f"/board/readOne/{content_id}"


class KeywordSubscriptionService:
    """Service for managing a member's keyword subscriptions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.members = MemberDirectory(db)

    async def subscribe(self, member_id: str, keyword: str, scope: str | None = None) -> KeywordSubscription:
        """
        Subscribe a member to a keyword, optionally within one category.

        Raises:
            ValidationError: If the keyword is blank
            NotFoundError: If the member is unknown
            ConflictError: If the same subscription already exists
        """
        keyword = normalize_keyword(keyword)
        scope = scope.strip() if scope and scope.strip() else None
        await self.members.require(member_id)

        if await self._find(member_id, keyword, scope) is not None:
            raise ConflictError(detail=f"Already subscribed to '{keyword}'")

        subscription = KeywordSubscription(subscriber_id=member_id, keyword=keyword, scope=scope)
        self.db.add(subscription)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(detail=f"Already subscribed to '{keyword}'") from e
        await self.db.refresh(subscription)

        logger.info(
            "Keyword subscribed",
            extra={"subscription_id": subscription.id, "subscriber_id": member_id, "scope": scope}
        )
        return subscription

    async def _find(self, member_id: str, keyword: str, scope: str | None) -> KeywordSubscription | None:
        scope_clause = KeywordSubscription.scope.is_(None) if scope is None else KeywordSubscription.scope == scope
        result = await self.db.execute(
            select(KeywordSubscription).where(
                KeywordSubscription.subscriber_id == member_id,
                KeywordSubscription.keyword == keyword,
                scope_clause,
            )
        )
        return result.scalar_one_or_none()

    async def list_for(self, member_id: str) -> list[KeywordSubscription]:
        result = await self.db.execute(
            select(KeywordSubscription)
            .where(KeywordSubscription.subscriber_id == member_id)
            .order_by(KeywordSubscription.id.desc())
        )
        return list(result.scalars().all())

    async def unsubscribe(self, member_id: str, subscription_id: int) -> None:
        """
        Raises:
            SubscriptionNotFoundError: If missing or owned by another member
        """
        result = await self.db.execute(
            delete(KeywordSubscription).where(
                KeywordSubscription.id == subscription_id,
                KeywordSubscription.subscriber_id == member_id,
            )
        )
        await self.db.commit()
        if not result.rowcount:
            raise SubscriptionNotFoundError(subscription_id)
        logger.info(
            "Keyword unsubscribed",
            extra={"subscription_id": subscription_id, "subscriber_id": member_id}
        )

    async def load_candidates(self, category: str | None) -> list[KeywordSubscription]:
        """Subscriptions that apply to content in ``category``: global ones plus that category's."""
        scope_filter = KeywordSubscription.scope.is_(None)
        if category:
            scope_filter = or_(scope_filter, KeywordSubscription.scope == category)
        result = await self.db.execute(
            select(KeywordSubscription).where(scope_filter).order_by(KeywordSubscription.id)
        )
        return list(result.scalars().all())


class KeywordMatcher:
    """Fans newly published content out to matching keyword subscribers."""

    def __init__(
        self,
        db: AsyncSession,
        registry: LiveChannelRegistry | None = None,
        clock: Clock = local_now,
    ):
        self.db = db
        self.subscriptions = KeywordSubscriptionService(db)
        self.hub = NotificationHub(db, registry=registry, clock=clock)

    async def on_content_published(self, content: PublishedContent) -> list[Notification]:
        """
        Notify every subscriber whose keyword appears in the content.

        Secret content and the author's own subscriptions are skipped. One
        subscriber's failure does not stop the others.

        Returns:
            Notifications created
        """
        if content.secret:
            logger.debug("Skipping keyword matching for secret content", extra={"content_id": content.content_id})
            return []

        candidates = [
            (s.id, s.subscriber_id, s.keyword)
            for s in await self.subscriptions.load_candidates(content.category)
        ]

        created: list[Notification] = []
        seen: set[tuple[str, str]] = set()
        for subscription_id, subscriber_id, keyword in candidates:
            if subscriber_id == content.author_id:
                continue
            # A global and a scoped subscription to the same keyword notify once
            if (subscriber_id, keyword) in seen or not matches(keyword, content):
                continue
            seen.add((subscriber_id, keyword))
            try:
                notification = await self.hub.create_and_push(
                    NotificationCommand(
                        receiver_id=subscriber_id,
                        type=NotificationType.KEYWORD_MATCH,
                        title=f"Keyword '{keyword}' appeared in a new post",
                        message=content.title or None,
                        target_type=TargetType.KEYWORD,
                        target_id=str(subscription_id),
                        link_url=post_link(content.content_id),
                        actor_id=content.author_id,
                    )
                )
            except Exception:
                await self.db.rollback()
                for earlier in created:
                    await self.db.refresh(earlier)
                logger.warning(
                    "Keyword notification failed",
                    exc_info=True,
                    extra={
                        "subscription_id": subscription_id,
                        "subscriber_id": subscriber_id,
                        "content_id": content.content_id,
                    }
                )
                continue
            created.append(notification)

        if created:
            logger.info(
                "Keyword matches notified",
                extra={"content_id": content.content_id, "notified": len(created)}
            )
        return created
