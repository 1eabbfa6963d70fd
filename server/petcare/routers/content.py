"""Hooks called by the community board when content is created."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import Principal, get_current_user
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.notification import (
    CommentCreatedEvent,
    ContentEventResult,
    LikeCreatedEvent,
    PostPublishedEvent,
)
from ..services.content_event_service import ContentEventService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/content", tags=["content"])

DB_DEPENDENCY = Depends(get_db)
AUTH_DEPENDENCY = Depends(get_current_user)


def _result(notifications) -> JSONResponse:
    response_data = ContentEventResult(notified=[n.receiver_id for n in notifications])
    return JSONResponse(content=response_data.model_dump(mode="json"))


@router.post("/post-published", response_model=ContentEventResult)
async def post_published(
    event: PostPublishedEvent,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    """Match a newly visible post against keyword subscriptions."""
    try:
        notifications = await ContentEventService(db).on_post_published(event)
        return _result(notifications)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in keyword matching",
            extra={"post_id": event.post_id, "caller": principal.member_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/comment-created", response_model=ContentEventResult)
async def comment_created(
    event: CommentCreatedEvent,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    notification = await ContentEventService(db).on_comment_created(event)
    return _result([notification] if notification else [])


@router.post("/like-created", response_model=ContentEventResult)
async def like_created(
    event: LikeCreatedEvent,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    notification = await ContentEventService(db).on_like_created(event)
    return _result([notification] if notification else [])
