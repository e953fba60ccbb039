"""Notification REST API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlmodel.ext.asyncio.session import AsyncSession

from countdown.api.dependencies import get_scheduler, require_cron_secret
from countdown.configs import configs
from countdown.core.push.payload import NotificationPayload
from countdown.core.push.vapid import push_service_origin
from countdown.core.schedule.scheduler import NotificationScheduler
from countdown.infra.database import get_session
from countdown.models.push_subscription import PushSubscription
from countdown.repos.push_subscription import PushSubscriptionRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


# --- Response / Request models -----------------------------------------------


class NotificationConfigResponse(BaseModel):
    enabled: bool
    vapid_public_key: str


class PushKeys(BaseModel):
    p256dh: str = Field(min_length=1)
    auth: str = Field(min_length=1)


class SubscribeRequest(BaseModel):
    owner_id: str = Field(min_length=1)
    endpoint: str
    keys: PushKeys
    user_agent: str = ""

    @field_validator("endpoint")
    @classmethod
    def _absolute_endpoint(cls, value: str) -> str:
        push_service_origin(value)
        return value


class UnsubscribeRequest(BaseModel):
    owner_id: str = Field(min_length=1)


class SubscriptionResponse(BaseModel):
    success: bool


class SendRequest(NotificationPayload):
    owner_id: str = Field(min_length=1)


class SendResponse(BaseModel):
    success: bool
    status: str
    status_code: int | None = None
    attempts: int


# --- Endpoints ----------------------------------------------------------------


@router.get("/config", response_model=NotificationConfigResponse)
async def get_notification_config() -> NotificationConfigResponse:
    """Public endpoint: what the browser needs for ``pushManager.subscribe``."""
    return NotificationConfigResponse(
        enabled=configs.Push.Enable,
        vapid_public_key=configs.Push.VapidPublicKey if configs.Push.Enable else "",
    )


@router.post("/subscribe", response_model=SubscriptionResponse)
async def subscribe(
    body: SubscribeRequest,
    db: AsyncSession = Depends(get_session),
) -> SubscriptionResponse:
    """Register (or replace) the owner's Web Push subscription."""
    repo = PushSubscriptionRepository(db)
    sub = PushSubscription(
        owner_id=body.owner_id,
        endpoint=body.endpoint,
        keys_p256dh=body.keys.p256dh,
        keys_auth=body.keys.auth,
        user_agent=body.user_agent,
    )
    await repo.upsert(sub)
    await db.commit()
    logger.info("Push subscription stored for owner %s", body.owner_id)
    return SubscriptionResponse(success=True)


@router.delete("/subscribe", response_model=SubscriptionResponse)
async def unsubscribe(
    body: UnsubscribeRequest,
    db: AsyncSession = Depends(get_session),
) -> SubscriptionResponse:
    """Remove the owner's subscription. Removing a missing one is not an error."""
    repo = PushSubscriptionRepository(db)
    removed = await repo.delete_by_owner(body.owner_id)
    await db.commit()
    return SubscriptionResponse(success=removed)


@router.post("/send", response_model=SendResponse, dependencies=[Depends(require_cron_secret)])
async def send_notification(
    body: SendRequest,
    scheduler: NotificationScheduler = Depends(get_scheduler),
) -> SendResponse:
    """Deliver one notification to an owner right away."""
    if not configs.Push.Enable:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Web Push is disabled")
    payload = NotificationPayload(title=body.title, body=body.body, url=body.url, tag=body.tag)
    result = await scheduler.send_now(body.owner_id, payload)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No push subscription for owner")
    return SendResponse(
        success=result.delivered,
        status=result.status.value,
        status_code=result.status_code,
        attempts=result.attempts,
    )
