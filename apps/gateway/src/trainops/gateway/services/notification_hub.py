"""NotificationHub -- 内存中通知广播器

每个订阅者持有一个 asyncio.Queue，按接收人 user_id 分组，
支持 subscribe/unsubscribe/broadcast。
"""

import asyncio
from collections import defaultdict

from trainops.core.models import Notification


class NotificationHub:
    """站内通知广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(self, queue_maxsize: int = 100) -> None:
        # user_id -> set of asyncio.Queue
        self._subscribers: dict[int, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    async def subscribe(self, user_id: int) -> asyncio.Queue:
        """订阅指定用户的通知流

        Returns:
            asyncio.Queue 实例，新通知会被推送到此队列
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[user_id].add(queue)
        return queue

    async def unsubscribe(self, user_id: int, queue: asyncio.Queue) -> None:
        """取消订阅"""
        self._subscribers[user_id].discard(queue)
        if not self._subscribers[user_id]:
            del self._subscribers[user_id]

    def subscriber_count(self, user_id: int) -> int:
        return len(self._subscribers.get(user_id, ()))

    async def broadcast(self, notification: Notification) -> int:
        """向接收人的所有订阅者推送通知

        Returns:
            成功推送的订阅者数量
        """
        user_id = notification.user_id
        delivered = 0
        dead_queues = []
        for queue in self._subscribers.get(user_id, set()):
            try:
                queue.put_nowait(notification)
                delivered += 1
            except asyncio.QueueFull:
                dead_queues.append(queue)

        # 清理已满的队列（消费端已失去响应）
        for q in dead_queues:
            self._subscribers[user_id].discard(q)
        if user_id in self._subscribers and not self._subscribers[user_id]:
            del self._subscribers[user_id]
        return delivered
