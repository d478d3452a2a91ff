"""NotificationStore SQLite 实现

通知使用独立连接写入，每个方法自行提交，
分发 worker 的写入不会与流程引擎的事务交错。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import NotificationSeverity
from ..models.notification import PROJECT_TASK_RELATED_TYPE, Notification
from .sqlite_errors import storage_errors


class SqliteNotificationStore:
    """NotificationStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_notification(
        self,
        user_id: int,
        title: str,
        content: str,
        severity: NotificationSeverity,
        related_id: int | None,
        create_time: datetime,
        related_type: str = PROJECT_TASK_RELATED_TYPE,
    ) -> Notification:
        """写入一条未读通知并提交"""
        with storage_errors(f"store notification for user {user_id}"):
            try:
                cursor = await self._conn.execute(
                    """
                    INSERT INTO notifications (user_id, title, content, type,
                                               read_status, related_id, related_type,
                                               create_time)
                    VALUES (?, ?, ?, ?, 0, ?, ?, ?)
                    """,
                    (
                        user_id,
                        title,
                        content,
                        severity.value,
                        related_id,
                        related_type,
                        create_time.isoformat(),
                    ),
                )
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise
        return Notification(
            id=cursor.lastrowid,
            user_id=user_id,
            title=title,
            content=content,
            type=severity,
            related_id=related_id,
            related_type=related_type,
            create_time=create_time,
        )

    async def list_for_user(
        self,
        user_id: int,
        read_status: int | None = None,
    ) -> list[Notification]:
        """查询用户通知，最新的在前"""
        sql = "SELECT * FROM notifications WHERE user_id = ?"
        params: list = [user_id]
        if read_status is not None:
            sql += " AND read_status = ?"
            params.append(read_status)
        sql += " ORDER BY create_time DESC, id DESC"
        with storage_errors(f"list notifications for user {user_id}"):
            cursor = await self._conn.execute(sql, tuple(params))
            rows = await cursor.fetchall()
        return [self._row_to_notification(row) for row in rows]

    async def count_unread(self, user_id: int) -> int:
        with storage_errors(f"count unread notifications for user {user_id}"):
            cursor = await self._conn.execute(
                "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND read_status = 0",
                (user_id,),
            )
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def mark_read(
        self,
        notification_id: int,
        user_id: int,
        read_time: datetime,
    ) -> bool:
        """标记单条通知已读

        Returns:
            False 如果通知不存在或不属于该用户
        """
        with storage_errors(f"mark notification {notification_id} as read"):
            cursor = await self._conn.execute(
                "SELECT read_status FROM notifications WHERE id = ? AND user_id = ?",
                (notification_id, user_id),
            )
            row = await cursor.fetchone()
            if row is None:
                return False
            if row["read_status"] == 1:
                return True
            try:
                await self._conn.execute(
                    "UPDATE notifications SET read_status = 1, read_time = ? WHERE id = ?",
                    (read_time.isoformat(), notification_id),
                )
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise
        return True

    async def mark_all_read(self, user_id: int, read_time: datetime) -> int:
        """标记用户全部未读通知已读，返回更新条数"""
        with storage_errors(f"mark notifications of user {user_id} as read"):
            try:
                cursor = await self._conn.execute(
                    """
                    UPDATE notifications SET read_status = 1, read_time = ?
                    WHERE user_id = ? AND read_status = 0
                    """,
                    (read_time.isoformat(), user_id),
                )
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise
        return cursor.rowcount

    @staticmethod
    def _row_to_notification(row: aiosqlite.Row) -> Notification:
        return Notification.model_validate(dict(row))
