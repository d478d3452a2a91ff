"""通知分发器测试

测试内容：
1. 投递落库并推送给在线订阅者
2. 落库失败只记录日志，worker 继续处理后续消息
3. 邮箱已满时丢弃新消息
4. 通知失败不影响已提交的流转
"""

import asyncio
from datetime import UTC, datetime

from trainops.core.models import NotificationSeverity
from trainops.gateway.services.notification_dispatcher import QueuedNotificationDispatcher
from trainops.gateway.services.notification_hub import NotificationHub
from trainops.gateway.services.task_service import ProjectTaskService


class _FlakyStore:
    """第一次写入失败，之后委托给真实 store"""

    def __init__(self, inner) -> None:
        self._inner = inner
        self.calls = 0

    async def create_notification(self, **kwargs):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("disk full")
        return await self._inner.create_notification(**kwargs)


class _BrokenDispatcher:
    def notify(self, *args, **kwargs) -> None:
        raise RuntimeError("mailbox gone")


class TestQueuedDispatcher:
    async def test_delivers_and_broadcasts(self, store_group, notification_hub, dispatcher):
        queue = await notification_hub.subscribe(20)

        dispatcher.notify(7, 20, "Project approval required", "body")
        await dispatcher.join()

        stored = await store_group.notification_store.list_for_user(20)
        assert len(stored) == 1
        assert stored[0].related_id == 7
        assert stored[0].type == NotificationSeverity.INFO

        pushed = queue.get_nowait()
        assert pushed.id == stored[0].id
        assert notification_hub.subscriber_count(20) == 1

    async def test_failure_does_not_stop_worker(self, store_group):
        flaky = _FlakyStore(store_group.notification_store)
        queued = QueuedNotificationDispatcher(flaky)
        queued.start()
        try:
            queued.notify(1, 20, "first", "body")
            queued.notify(1, 20, "second", "body")
            await queued.join()
        finally:
            await queued.stop(drain_timeout=1.0)

        stored = await store_group.notification_store.list_for_user(20)
        assert [n.title for n in stored] == ["second"]
        assert flaky.calls == 2

    async def test_full_mailbox_drops(self, store_group):
        queued = QueuedNotificationDispatcher(store_group.notification_store, maxsize=2)
        # worker 未启动，消息留在邮箱
        for index in range(3):
            queued.notify(1, 20, f"title {index}", "body")
        assert queued.pending == 2

    async def test_invalid_message_rejected_silently(self, store_group):
        queued = QueuedNotificationDispatcher(store_group.notification_store)
        queued.notify(1, "not-a-user", "title", "body")
        assert queued.pending == 0

    async def test_uses_clock(self, store_group):
        fixed = datetime(2025, 6, 15, 9, 30, tzinfo=UTC)
        queued = QueuedNotificationDispatcher(
            store_group.notification_store, clock=lambda: fixed
        )
        queued.start()
        try:
            queued.notify(1, 20, "title", "body", NotificationSeverity.WARNING)
            await queued.join()
        finally:
            await queued.stop(drain_timeout=1.0)

        stored = await store_group.notification_store.list_for_user(20)
        assert stored[0].create_time == fixed
        assert stored[0].type == NotificationSeverity.WARNING


class TestNotificationIsolation:
    async def test_broken_dispatcher_does_not_fail_transition(
        self, store_group, make_actor
    ):
        service = ProjectTaskService(store_group, _BrokenDispatcher())
        task = await service.create_task(
            make_actor(10),
            project_name="Leadership Bootcamp",
            project_type="corporate_training",
            responsible_person_id=10,
            consultant_id=20,
            market_manager_id=30,
        )
        await service.advance_stage(task.id, make_actor(20))

        task = await service.confirm_proposal(task.id, make_actor(20), True)
        assert task.current_stage.value == "teacher_confirmation"

    async def test_notices_follow_transitions(
        self, task_service, dispatcher, store_group, new_task, make_actor
    ):
        task = await new_task()
        consultant = make_actor(20)
        await task_service.advance_stage(task.id, consultant)
        await task_service.upload_proposal(task.id, consultant, [1])
        await task_service.confirm_proposal(task.id, consultant, True)
        await task_service.confirm_teacher(task.id, consultant, {"name": "Dr. Chen"})
        await task_service.approve_project(task.id, make_actor(30), False)
        await dispatcher.join()

        store = store_group.notification_store
        responsible = [n.title for n in await store.list_for_user(10)]
        consultant_titles = [n.title for n in await store.list_for_user(20)]
        manager = [n.title for n in await store.list_for_user(30)]

        assert responsible == ["Project proposal uploaded"]
        assert set(consultant_titles) == {
            "Teacher confirmation required",
            "Project sent back, teacher confirmation required",
        }
        assert manager == ["Project approval required"]

        warning = next(
            n for n in await store.list_for_user(20) if n.type == NotificationSeverity.WARNING
        )
        assert "Approval comment: none" in warning.content


class TestNotificationHub:
    async def test_unsubscribe(self):
        hub = NotificationHub()
        queue = await hub.subscribe(5)
        await hub.unsubscribe(5, queue)
        assert hub.subscriber_count(5) == 0

    async def test_full_subscriber_is_dropped(self, store_group):
        hub = NotificationHub(queue_maxsize=1)
        slow = await hub.subscribe(20)
        notification = await store_group.notification_store.create_notification(
            20, "title", "body", NotificationSeverity.INFO, 1, datetime.now(UTC)
        )

        assert await hub.broadcast(notification) == 1
        assert await hub.broadcast(notification) == 0
        assert hub.subscriber_count(20) == 0
        assert slow.qsize() == 1

    async def test_only_recipient_receives(self, store_group):
        hub = NotificationHub()
        other = await hub.subscribe(30)
        notification = await store_group.notification_store.create_notification(
            20, "title", "body", NotificationSeverity.INFO, 1, datetime.now(UTC)
        )
        assert await hub.broadcast(notification) == 0
        await asyncio.sleep(0)
        assert other.empty()
