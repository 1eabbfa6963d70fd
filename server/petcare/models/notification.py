"""Notification model definitions."""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class NotificationType(str, Enum):
    """What happened."""
    RESERVATION_HOSPITAL = "RESERVATION_HOSPITAL"
    RESERVATION_HOSPITAL_CONFIRM = "RESERVATION_HOSPITAL_CONFIRM"
    RESERVATION_HOSPITAL_REJECT = "RESERVATION_HOSPITAL_REJECT"
    RESERVATION_HOSPITAL_CANCEL = "RESERVATION_HOSPITAL_CANCEL"
    RESERVATION_HOSPITAL_NOSHOW = "RESERVATION_HOSPITAL_NOSHOW"
    RESERVATION_HOTEL = "RESERVATION_HOTEL"
    RESERVATION_HOTEL_CONFIRM = "RESERVATION_HOTEL_CONFIRM"
    RESERVATION_HOTEL_REJECT = "RESERVATION_HOTEL_REJECT"
    RESERVATION_HOTEL_CANCEL = "RESERVATION_HOTEL_CANCEL"
    RESERVATION_HOTEL_NOSHOW = "RESERVATION_HOTEL_NOSHOW"
    RESERVATION_REMINDER_24H = "RESERVATION_REMINDER_24H"
    RESERVATION_REMINDER_3H = "RESERVATION_REMINDER_3H"
    KEYWORD_MATCH = "KEYWORD_MATCH"
    COMMENT = "COMMENT"
    POST_LIKE = "POST_LIKE"
    COMMENT_LIKE = "COMMENT_LIKE"


class TargetType(str, Enum):
    """What the notification points at."""
    RESERVATION = "RESERVATION"
    KEYWORD = "KEYWORD"
    POST = "POST"
    COMMENT = "COMMENT"
    POST_LIKE = "POST_LIKE"
    COMMENT_LIKE = "COMMENT_LIKE"


def new_event_id() -> str:
    return str(uuid4())


class Notification(Base):
    """
    A persisted notification for one receiver.

    ``id`` is monotonic and defines replay order; ``event_id`` is the opaque
    identifier handed to live clients and is never reassigned.
    """

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    receiver_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    type: Mapped[NotificationType] = mapped_column(String(50), nullable=False)
    target_type: Mapped[TargetType | None] = mapped_column(String(30), nullable=True)
    target_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    link_url: Mapped[str | None] = mapped_column(String(300), nullable=True)

    event_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        unique=True,
        default=new_event_id
    )

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notifications_receiver_created", "receiver_id", "created_at"),
        Index("ix_notifications_receiver_read", "receiver_id", "is_read"),
        # Ids must never be reused; replay resumes after a deleted row's id
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, receiver_id='{self.receiver_id}', "
            f"type={self.type}, is_read={self.is_read})>"
        )


class NotificationTombstone(Base):
    """
    The replay position of a deleted notification.

    A client may still hold the ``event_id`` of a notification deleted while
    it was offline; reconnect replay resumes from ``notification_id``.
    """

    __tablename__ = "notification_tombstones"

    event_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    notification_id: Mapped[int] = mapped_column(Integer, nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    deleted_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationTombstone(event_id='{self.event_id}', "
            f"notification_id={self.notification_id}, receiver_id='{self.receiver_id}')>"
        )
