"""StageHistoryStore SQLite 实现

stage_history 表 append-only：只允许插入，不允许更新或删除。
seq 同一项目事项内从 1 开始严格连续递增，由 (task_id, seq) 唯一索引保证。
"""

import json
from collections.abc import Iterable, Sequence

import aiosqlite
from ulid import ULID

from ..models.history import StageHistoryEntry
from .sqlite_errors import storage_errors


class SqliteStageHistoryStore:
    """StageHistoryStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_entries(
        self,
        task_id: int,
        entries: Sequence[StageHistoryEntry],
    ) -> None:
        """追加历史记录（append-only）

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.executemany(
            """
            INSERT INTO stage_history (entry_id, task_id, seq, stage, ts,
                                       operator_id, operator_name, action,
                                       comment, payload)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    str(ULID()),
                    task_id,
                    entry.seq,
                    entry.stage.value,
                    entry.timestamp.isoformat(),
                    entry.operator_id,
                    entry.operator_name,
                    entry.action.value,
                    entry.comment,
                    json.dumps(entry.payload, ensure_ascii=False)
                    if entry.payload is not None
                    else None,
                )
                for entry in entries
            ],
        )

    async def get_entries(self, task_id: int) -> tuple[StageHistoryEntry, ...]:
        """查询指定事项的全部历史，按 seq 正序"""
        with storage_errors(f"load history of task {task_id}"):
            cursor = await self._conn.execute(
                "SELECT * FROM stage_history WHERE task_id = ? ORDER BY seq ASC",
                (task_id,),
            )
            rows = await cursor.fetchall()
        return tuple(self._row_to_entry(row) for row in rows)

    async def get_entries_for_tasks(
        self,
        task_ids: Iterable[int],
    ) -> dict[int, tuple[StageHistoryEntry, ...]]:
        """批量查询多个事项的历史（列表接口使用）"""
        ids = list(task_ids)
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        with storage_errors("load task histories"):
            cursor = await self._conn.execute(
                f"SELECT * FROM stage_history WHERE task_id IN ({placeholders}) "
                "ORDER BY task_id, seq ASC",
                tuple(ids),
            )
            rows = await cursor.fetchall()
        grouped: dict[int, list[StageHistoryEntry]] = {task_id: [] for task_id in ids}
        for row in rows:
            grouped[row["task_id"]].append(self._row_to_entry(row))
        return {task_id: tuple(entries) for task_id, entries in grouped.items()}

    async def count_entries(self, task_id: int) -> int:
        with storage_errors(f"count history of task {task_id}"):
            cursor = await self._conn.execute(
                "SELECT COUNT(*) FROM stage_history WHERE task_id = ?",
                (task_id,),
            )
            row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> StageHistoryEntry:
        """将数据库行转换为 StageHistoryEntry 模型"""
        payload = json.loads(row["payload"]) if row["payload"] else None
        return StageHistoryEntry(
            seq=row["seq"],
            stage=row["stage"],
            timestamp=row["ts"],
            operator_id=row["operator_id"],
            operator_name=row["operator_name"],
            action=row["action"],
            comment=row["comment"],
            payload=payload,
        )
