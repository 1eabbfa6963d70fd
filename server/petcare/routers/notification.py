"""Notification router: inbox queries, read state and the live event stream."""

import logging

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import get_db
from ..core.dependencies import Principal, get_current_user
from ..schemas.common import CountResponse, PageMeta
from ..schemas.notification import MarkAllReadResponse, Notification, NotificationPage
from ..services.live_channels import event_stream, live_channels
from ..services.notification_service import NotificationHub, to_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/notification", tags=["notification"])

DB_DEPENDENCY = Depends(get_db)
AUTH_DEPENDENCY = Depends(get_current_user)


@router.get("", response_model=NotificationPage)
async def list_notifications(
    page: int = Query(0, ge=0, description="Zero-based page index"),
    size: int = Query(20, ge=1, le=100, description="Page size"),
    unread_only: bool = Query(False, description="Only unread notifications"),
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    """List the caller's notifications, newest first."""
    items, total = await NotificationHub(db).list_for(
        principal.member_id, unread_only=unread_only, page=page, size=size
    )
    response_data = {
        "items": [to_payload(n) for n in items],
        "meta": PageMeta(page=page, size=size, total=total).model_dump(mode="json"),
    }
    return JSONResponse(content=response_data)


@router.get("/unread-count", response_model=CountResponse)
async def unread_count(
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    count = await NotificationHub(db).count_unread(principal.member_id)
    return JSONResponse(content=CountResponse(count=count).model_dump(mode="json"))


@router.patch("/{notification_id}/mark-read", response_model=Notification)
async def mark_read(
    notification_id: int,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    notification = await NotificationHub(db).mark_read(principal.member_id, notification_id)
    return JSONResponse(content=to_payload(notification))


@router.post("/mark-all-read", response_model=MarkAllReadResponse)
async def mark_all_read(
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    updated = await NotificationHub(db).mark_all_read(principal.member_id)
    return JSONResponse(content=MarkAllReadResponse(updated=updated).model_dump(mode="json"))


@router.delete("/{notification_id}", status_code=204)
async def delete_notification(
    notification_id: int,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> None:
    await NotificationHub(db).delete(principal.member_id, notification_id)


@router.get("/stream", response_class=StreamingResponse)
async def stream_notifications(
    last_event_id_header: str | None = Header(None, alias="Last-Event-ID"),
    last_event_id: str | None = Query(None, description="Resume after this event id"),
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> StreamingResponse:
    """
    Server-Sent Events stream of the caller's notifications.

    Reconnecting clients send the last event id they saw (header or query
    parameter) and receive everything created after it before live events.
    """
    resume_from = last_event_id_header or last_event_id
    channel = await NotificationHub(db).connect(principal.member_id, resume_from)

    logger.info(
        "Live stream opened",
        extra={
            "receiver_id": principal.member_id,
            "channel_id": channel.channel_id,
            "last_event_id": resume_from,
        }
    )

    return StreamingResponse(
        event_stream(
            channel,
            live_channels,
            keepalive_seconds=settings.live_keepalive_seconds,
            retry_millis=settings.live_retry_millis,
        ),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
