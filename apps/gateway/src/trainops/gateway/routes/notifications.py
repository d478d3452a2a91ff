"""站内通知路由

GET /api/notifications               我的通知，可按 readStatus 筛选
GET /api/notifications/unread-count  未读数量（通知角标）
PUT /api/notifications/read-all      全部标记已读
PUT /api/notifications/{id}/read     单条标记已读
GET /api/notifications/stream        SSE 实时推送新通知，心跳保活
"""

import asyncio
import json
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query
from sse_starlette.sse import EventSourceResponse
from trainops.core.config import SSE_HEARTBEAT_INTERVAL
from trainops.core.exceptions import NotificationNotFoundError
from trainops.core.models import Actor, Notification
from trainops.core.store import StoreGroup

from ..deps import get_actor, get_notification_hub, get_store_group
from ..errors import success
from ..services.notification_hub import NotificationHub

router = APIRouter()


def _notification_to_sse(notification: Notification) -> dict:
    return {
        "id": str(notification.id),
        "event": "notification",
        "data": json.dumps(
            notification.model_dump(by_alias=True, mode="json"), ensure_ascii=False
        ),
    }


@router.get("/api/notifications")
async def list_notifications(
    read_status: int | None = Query(default=None, alias="readStatus", ge=0, le=1),
    actor: Actor = Depends(get_actor),
    store_group: StoreGroup = Depends(get_store_group),
):
    """查询当前用户的通知，最新的在前"""
    notifications = await store_group.notification_store.list_for_user(
        actor.user_id, read_status
    )
    return success(notifications)


@router.get("/api/notifications/unread-count")
async def get_unread_count(
    actor: Actor = Depends(get_actor),
    store_group: StoreGroup = Depends(get_store_group),
):
    count = await store_group.notification_store.count_unread(actor.user_id)
    return success({"count": count})


@router.put("/api/notifications/read-all")
async def mark_all_read(
    actor: Actor = Depends(get_actor),
    store_group: StoreGroup = Depends(get_store_group),
):
    updated = await store_group.notification_store.mark_all_read(
        actor.user_id, datetime.now(UTC)
    )
    return success({"updated": updated}, message="All notifications marked as read")


@router.put("/api/notifications/{notification_id}/read")
async def mark_read(
    notification_id: int,
    actor: Actor = Depends(get_actor),
    store_group: StoreGroup = Depends(get_store_group),
):
    found = await store_group.notification_store.mark_read(
        notification_id, actor.user_id, datetime.now(UTC)
    )
    if not found:
        raise NotificationNotFoundError(notification_id)
    return success(None, message="Notification marked as read")


@router.get("/api/notifications/stream")
async def stream_notifications(
    actor: Actor = Depends(get_actor),
    hub: NotificationHub = Depends(get_notification_hub),
):
    """SSE 通知流

    1. 注册到 NotificationHub 监听当前用户的新通知
    2. 实时推送新通知
    3. 心跳保活
    """
    queue = await hub.subscribe(actor.user_id)

    async def event_generator():
        try:
            while True:
                try:
                    notification = await asyncio.wait_for(
                        queue.get(), timeout=SSE_HEARTBEAT_INTERVAL
                    )
                    yield _notification_to_sse(notification)
                except TimeoutError:
                    # 心跳保活
                    yield {"comment": "heartbeat"}
        finally:
            await hub.unsubscribe(actor.user_id, queue)

    return EventSourceResponse(event_generator())
