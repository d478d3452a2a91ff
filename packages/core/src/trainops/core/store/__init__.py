"""trainops Core Store -- SQLite 持久化实现

提供工厂函数创建 Store 实例组：事项与历史共享主连接，通知使用独立连接。
"""

import asyncio
from pathlib import Path

import aiosqlite

from .history_store import SqliteStageHistoryStore
from .notification_store import SqliteNotificationStore
from .sqlite_init import init_db, verify_wal_mode
from .task_store import SqliteTaskStore
from .transaction import (
    commit_stage_transition,
    create_task_record,
    update_task_record,
)


class StoreGroup:
    """Store 实例组

    write_lock 串行化主连接上的事务，避免多个协程的语句交错进同一事务。
    """

    def __init__(
        self,
        conn: aiosqlite.Connection,
        notification_conn: aiosqlite.Connection,
    ) -> None:
        self.conn = conn
        self.notification_conn = notification_conn
        self.write_lock = asyncio.Lock()
        self.task_store = SqliteTaskStore(conn)
        self.history_store = SqliteStageHistoryStore(conn)
        self.notification_store = SqliteNotificationStore(notification_conn)

    async def close(self) -> None:
        await self.notification_conn.close()
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)

    notification_conn = await aiosqlite.connect(db_path)
    notification_conn.row_factory = aiosqlite.Row
    await notification_conn.execute("PRAGMA busy_timeout = 5000;")

    return StoreGroup(conn=conn, notification_conn=notification_conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteStageHistoryStore",
    "SqliteNotificationStore",
    "init_db",
    "verify_wal_mode",
    "commit_stage_transition",
    "create_task_record",
    "update_task_record",
]
