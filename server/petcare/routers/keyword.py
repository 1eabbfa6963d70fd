"""Keyword subscription router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import Principal, get_current_user
from ..schemas.notification import KeywordSubscription, SubscribeKeywordRequest
from ..services.keyword_service import KeywordSubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/keyword", tags=["keyword"])

DB_DEPENDENCY = Depends(get_db)
AUTH_DEPENDENCY = Depends(get_current_user)


def _convert_subscription_to_schema(subscription_model) -> KeywordSubscription:
    return KeywordSubscription.model_validate(subscription_model)


@router.post("/subscribe", response_model=KeywordSubscription, status_code=201)
async def subscribe(
    request: SubscribeKeywordRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    """
    Watch new posts for a keyword.

    Omitting ``scope`` watches every category. Subscribing twice to the same
    keyword and scope is rejected with 409.
    """
    subscription = await KeywordSubscriptionService(db).subscribe(
        principal.member_id, request.keyword, request.scope
    )
    return JSONResponse(
        status_code=201,
        content=_convert_subscription_to_schema(subscription).model_dump(mode="json"),
    )


@router.get("", response_model=list[KeywordSubscription])
async def list_subscriptions(
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> JSONResponse:
    subscriptions = await KeywordSubscriptionService(db).list_for(principal.member_id)
    return JSONResponse(
        content=[_convert_subscription_to_schema(s).model_dump(mode="json") for s in subscriptions]
    )


@router.delete("/{subscription_id}", status_code=204)
async def unsubscribe(
    subscription_id: int,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = AUTH_DEPENDENCY,
) -> None:
    await KeywordSubscriptionService(db).unsubscribe(principal.member_id, subscription_id)
