"""Notification persistence, querying and live delivery."""

import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, local_now
from ..core.exceptions import NotFoundOrNotOwnerError, ValidationError
from ..core.observability import metrics_collector
from ..models.notification import (
    Notification,
    NotificationTombstone,
    NotificationType,
    TargetType,
    new_event_id,
)
from ..schemas.notification import Notification as NotificationSchema
from .live_channels import LiveChannel, LiveChannelRegistry, LiveEvent, live_channels
from .member_service import MemberDirectory

logger = logging.getLogger(__name__)

EVENT_CREATED = "notification"
EVENT_READ = "notification.read"
EVENT_READ_ALL = "notification.read_all"
EVENT_DELETED = "notification.deleted"


class NotificationNotFoundError(NotFoundOrNotOwnerError):
    """The notification does not exist or belongs to another member."""

    def __init__(self, notification_id: int | str):
        super().__init__(resource_type="notification", resource_id=str(notification_id))


@dataclass
class NotificationCommand:
    """Everything needed to create one notification."""

    receiver_id: str
    type: NotificationType
    # Falls back to a label derived from ``type`` when blank
    title: str = ""
    message: str | None = None
    target_type: TargetType | None = None
    target_id: str | None = None
    link_url: str | None = None
    actor_id: str | None = None


def default_title(notification_type: NotificationType | str) -> str:
    """KEYWORD_MATCH -> 'Keyword match'."""
    return NotificationType(notification_type).value.replace("_", " ").capitalize()


def to_payload(notification: Notification) -> dict:
    """JSON-ready representation pushed to live clients and returned by the API."""
    return NotificationSchema.model_validate(notification).model_dump(mode="json")


def to_live_event(notification: Notification) -> LiveEvent:
    return LiveEvent(
        event=EVENT_CREATED,
        data=to_payload(notification),
        event_id=notification.event_id,
        sequence=notification.id,
    )


class NotificationHub:
    """Service that owns notifications and pushes them to connected receivers."""

    def __init__(
        self,
        db: AsyncSession,
        registry: LiveChannelRegistry | None = None,
        clock: Clock = local_now,
    ):
        self.db = db
        self.registry = registry if registry is not None else live_channels
        self.clock = clock
        self.members = MemberDirectory(db)

    async def create_and_push(self, command: NotificationCommand) -> Notification:
        """
        Persist a notification and push it to the receiver's open channels.

        The push happens after commit; a receiver with no open channel simply
        sees the notification on its next list or reconnect.

        Args:
            command: Notification contents

        Returns:
            The persisted notification

        Raises:
            ValidationError: If receiver or type is missing
            NotFoundError: If the receiver is not a known member
        """
        if not command.receiver_id or not command.receiver_id.strip():
            raise ValidationError(detail="receiver_id is required")
        if not command.type:
            raise ValidationError(detail="type is required")
        try:
            notification_type = NotificationType(command.type)
        except ValueError as e:
            raise ValidationError(detail=f"Unknown notification type '{command.type}'") from e
        title = (command.title or "").strip() or default_title(notification_type)

        await self.members.require(command.receiver_id)

        notification = Notification(
            receiver_id=command.receiver_id,
            actor_id=command.actor_id,
            type=notification_type.value,
            target_type=TargetType(command.target_type).value if command.target_type else None,
            target_id=command.target_id,
            title=title[:200],
            message=command.message,
            link_url=command.link_url,
            event_id=new_event_id(),
            is_read=False,
            created_at=self.clock(),
        )
        self.db.add(notification)
        await self.db.commit()
        await self.db.refresh(notification)

        metrics_collector.record_notification_created(notification.type)
        delivered = self.registry.publish(notification.receiver_id, to_live_event(notification))

        logger.info(
            "Notification created",
            extra={
                "notification_id": notification.id,
                "event_id": notification.event_id,
                "receiver_id": notification.receiver_id,
                "type": notification.type,
                "live_deliveries": delivered,
            }
        )
        return notification

    async def list_for(
        self,
        member_id: str,
        unread_only: bool = False,
        page: int = 0,
        size: int = 20,
    ) -> tuple[list[Notification], int]:
        """
        Page through a receiver's notifications, newest first.

        Returns:
            Tuple of (page items, total matching count)
        """
        conditions = [Notification.receiver_id == member_id]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))

        total = await self.db.scalar(
            select(func.count()).select_from(Notification).where(*conditions)
        )
        result = await self.db.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(page * size)
            .limit(size)
        )
        return list(result.scalars().all()), total or 0

    async def count_unread(self, member_id: str) -> int:
        count = await self.db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.receiver_id == member_id, Notification.is_read.is_(False))
        )
        return count or 0

    async def _get_owned(self, member_id: str, notification_id: int) -> Notification:
        result = await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.receiver_id == member_id,
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotificationNotFoundError(notification_id)
        return notification

    async def mark_read(self, member_id: str, notification_id: int) -> Notification:
        """
        Mark one notification read. Repeating the call changes nothing.

        Raises:
            NotificationNotFoundError: If missing or not owned by ``member_id``
        """
        await self._get_owned(member_id, notification_id)

        result = await self.db.execute(
            update(Notification)
            .where(
                Notification.id == notification_id,
                Notification.receiver_id == member_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=self.clock())
        )
        await self.db.commit()

        notification = await self._get_owned(member_id, notification_id)
        await self.db.refresh(notification)

        if result.rowcount:
            self.registry.publish(
                member_id,
                LiveEvent(
                    event=EVENT_READ,
                    data={"id": notification.id, "eventId": notification.event_id},
                ),
            )
            logger.debug(
                "Notification marked read",
                extra={"notification_id": notification_id, "receiver_id": member_id}
            )
        return notification

    async def mark_all_read(self, member_id: str) -> int:
        """Mark every unread notification of a receiver read; returns how many changed."""
        result = await self.db.execute(
            update(Notification)
            .where(Notification.receiver_id == member_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=self.clock())
        )
        await self.db.commit()

        updated = result.rowcount or 0
        if updated:
            self.registry.publish(member_id, LiveEvent(event=EVENT_READ_ALL, data={"count": updated}))
        logger.info(
            "Notifications marked read",
            extra={"receiver_id": member_id, "updated": updated}
        )
        return updated

    async def delete(self, member_id: str, notification_id: int) -> None:
        """
        Delete a notification on behalf of its receiver.

        A tombstone keeps the deleted row's replay position so a client that
        last saw it can still resume from it.

        Raises:
            NotificationNotFoundError: If missing or not owned by ``member_id``
        """
        notification = await self._get_owned(member_id, notification_id)
        event_id = notification.event_id

        await self.db.execute(
            delete(Notification).where(
                Notification.id == notification_id,
                Notification.receiver_id == member_id,
            )
        )
        self.db.add(
            NotificationTombstone(
                event_id=event_id,
                notification_id=notification_id,
                receiver_id=member_id,
                deleted_at=self.clock(),
            )
        )
        await self.db.commit()

        self.registry.publish(
            member_id,
            LiveEvent(event=EVENT_DELETED, data={"id": notification_id, "eventId": event_id}),
        )
        logger.info(
            "Notification deleted",
            extra={"notification_id": notification_id, "receiver_id": member_id}
        )

    async def replay_after(self, member_id: str, last_event_id: str | None) -> list[Notification]:
        """
        Notifications of ``member_id`` created after the one carrying ``last_event_id``.

        The anchor may since have been deleted; its tombstone still gives the
        position. An unknown or foreign ``last_event_id`` yields nothing: the
        client falls back to listing.
        """
        if not last_event_id:
            return []

        anchor_id = await self.db.scalar(
            select(Notification.id).where(
                Notification.event_id == last_event_id,
                Notification.receiver_id == member_id,
            )
        )
        if anchor_id is None:
            anchor_id = await self.db.scalar(
                select(NotificationTombstone.notification_id).where(
                    NotificationTombstone.event_id == last_event_id,
                    NotificationTombstone.receiver_id == member_id,
                )
            )
        if anchor_id is None:
            logger.warning(
                "Unknown last event id on reconnect; skipping replay",
                extra={"receiver_id": member_id, "last_event_id": last_event_id}
            )
            return []

        result = await self.db.execute(
            select(Notification)
            .where(Notification.receiver_id == member_id, Notification.id > anchor_id)
            .order_by(Notification.id.asc())
        )
        return list(result.scalars().all())

    async def connect(self, member_id: str, last_event_id: str | None = None) -> LiveChannel:
        """
        Open a live channel and prime it with everything missed since ``last_event_id``.

        The channel is registered before the replay query so nothing created in
        between can fall through the gap.
        """
        channel = self.registry.open(member_id)
        try:
            missed = await self.replay_after(member_id, last_event_id)
        except Exception:
            self.registry.close(channel)
            raise

        channel.prime(to_live_event(n) for n in missed)
        if missed:
            logger.info(
                "Replayed missed notifications",
                extra={"receiver_id": member_id, "count": len(missed)}
            )
        return channel
