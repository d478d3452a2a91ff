"""通知分发器 -- 邮箱式 fire-and-forget 投递

流程引擎在事务提交后调用 notify()：只把消息放进 asyncio.Queue 邮箱，
不等待、不抛异常。后台 worker 逐条落库并推送给在线订阅者；
邮箱已满或投递失败只记录日志，不影响已提交的流转。
"""

import asyncio
import contextlib
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

import structlog
from pydantic import ValidationError
from trainops.core.exceptions import NotificationDeliveryError
from trainops.core.models import NotificationMessage, NotificationSeverity
from trainops.core.store.protocols import NotificationStore

from .notification_hub import NotificationHub

log = structlog.get_logger()


class NotificationDispatcher(Protocol):
    """通知投递接口"""

    def notify(
        self,
        task_id: int,
        recipient_id: int,
        title: str,
        body: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
    ) -> None:
        """投递一条通知（非阻塞，永不抛异常）"""
        ...


class QueuedNotificationDispatcher:
    """基于 asyncio.Queue 的通知分发器"""

    def __init__(
        self,
        notification_store: NotificationStore,
        hub: NotificationHub | None = None,
        maxsize: int = 1000,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = notification_store
        self._hub = hub
        self._queue: asyncio.Queue[NotificationMessage] = asyncio.Queue(maxsize=maxsize)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._worker: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def notify(
        self,
        task_id: int,
        recipient_id: int,
        title: str,
        body: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
    ) -> None:
        try:
            message = NotificationMessage(
                task_id=task_id,
                recipient_id=recipient_id,
                title=title,
                body=body,
                severity=severity,
            )
        except ValidationError:
            log.warning(
                "notification_rejected",
                task_id=task_id,
                recipient_id=recipient_id,
                reason="invalid_message",
            )
            return

        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            log.warning(
                "notification_dropped",
                task_id=task_id,
                recipient_id=recipient_id,
                reason="mailbox_full",
            )

    def start(self) -> None:
        """启动后台投递 worker（需在事件循环内调用）"""
        if self._worker is not None and not self._worker.done():
            return
        self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")

    async def join(self) -> None:
        """等待邮箱中已有消息全部处理完"""
        await self._queue.join()

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """停止 worker：先尽量排空邮箱，超时后直接取消"""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except TimeoutError:
            log.warning("notification_drain_timeout", pending=self._queue.qsize())
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

    async def deliver(self, message: NotificationMessage) -> None:
        """落库并推送一条通知

        Raises:
            NotificationDeliveryError: 落库失败
        """
        try:
            notification = await self._store.create_notification(
                user_id=message.recipient_id,
                title=message.title,
                content=message.body,
                severity=message.severity,
                related_id=message.task_id,
                create_time=self._clock(),
            )
        except Exception as e:
            raise NotificationDeliveryError(
                f"Failed to store notification for user {message.recipient_id}"
            ) from e

        if self._hub is not None:
            await self._hub.broadcast(notification)

        log.debug(
            "notification_delivered",
            task_id=message.task_id,
            recipient_id=message.recipient_id,
            notification_id=notification.id,
        )

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self.deliver(message)
            except Exception as e:
                log.warning(
                    "notification_delivery_failed",
                    task_id=message.task_id,
                    recipient_id=message.recipient_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
            finally:
                self._queue.task_done()
