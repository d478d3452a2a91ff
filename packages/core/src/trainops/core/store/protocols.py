"""Store Protocol 接口定义

定义 TaskStore、StageHistoryStore、NotificationStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any, Protocol

from ..models.enums import NotificationSeverity, ProjectStage
from ..models.history import StageHistoryEntry
from ..models.notification import Notification
from ..models.task import ProjectTask


class TaskStore(Protocol):
    """项目事项存储接口"""

    async def create_task(self, task: ProjectTask) -> int:
        """插入项目事项，返回分配的 id"""
        ...

    async def get_task(self, task_id: int) -> ProjectTask | None:
        """根据 id 查询项目事项"""
        ...

    async def list_tasks(
        self,
        stage: ProjectStage | None = None,
        is_archived: bool | None = None,
    ) -> list[ProjectTask]:
        """查询项目事项列表"""
        ...

    async def list_tasks_for_user(
        self,
        user_id: int,
        is_archived: bool | None = None,
    ) -> list[ProjectTask]:
        """查询用户相关的项目事项"""
        ...

    async def update_task_fields(
        self,
        task_id: int,
        changes: dict[str, Any],
        *,
        expected_version: int,
        expected_stage: ProjectStage | None = None,
    ) -> bool:
        """比较并交换更新"""
        ...


class StageHistoryStore(Protocol):
    """操作历史存储接口

    append-only：只允许插入，不允许更新或删除。
    """

    async def append_entries(
        self,
        task_id: int,
        entries: Sequence[StageHistoryEntry],
    ) -> None:
        """追加历史记录"""
        ...

    async def get_entries(self, task_id: int) -> tuple[StageHistoryEntry, ...]:
        """查询指定事项的全部历史"""
        ...

    async def get_entries_for_tasks(
        self,
        task_ids: Iterable[int],
    ) -> dict[int, tuple[StageHistoryEntry, ...]]:
        """批量查询历史"""
        ...


class NotificationStore(Protocol):
    """站内通知存储接口"""

    async def create_notification(
        self,
        user_id: int,
        title: str,
        content: str,
        severity: NotificationSeverity,
        related_id: int | None,
        create_time: datetime,
    ) -> Notification:
        """写入一条通知"""
        ...

    async def list_for_user(
        self,
        user_id: int,
        read_status: int | None = None,
    ) -> list[Notification]:
        """查询用户通知"""
        ...

    async def mark_read(
        self,
        notification_id: int,
        user_id: int,
        read_time: datetime,
    ) -> bool:
        """标记单条已读"""
        ...

    async def mark_all_read(self, user_id: int, read_time: datetime) -> int:
        """标记全部已读"""
        ...
