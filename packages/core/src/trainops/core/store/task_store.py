"""TaskStore SQLite 实现

tasks 表保存项目事项的当前状态，操作历史在 stage_history 表。
阶段相关字段只通过 update_task_fields 的比较并交换写入。
此处仅提供数据库操作，不自动提交事务。
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import aiosqlite

from ..models.enums import ProjectStage
from ..models.task import ProjectTask
from .sqlite_errors import storage_errors

# 可由 update_task_fields 写入的列（id / version / create_time 除外）
UPDATABLE_COLUMNS: frozenset[str] = frozenset(
    name
    for name in ProjectTask.model_fields
    if name not in {"id", "version", "create_time", "stage_history"}
)

_JSON_COLUMNS = ("proposal_attachment_ids", "teacher_info")


def _to_column(value: Any) -> Any:
    """Python 值 -> SQLite 列值"""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: ProjectTask) -> int:
        """插入项目事项，返回数据库分配的 id（task.id 被忽略）"""
        columns = {
            name: _to_column(getattr(task, name))
            for name in ProjectTask.model_fields
            if name not in {"id", "stage_history"}
        }
        placeholders = ", ".join("?" for _ in columns)
        cursor = await self._conn.execute(
            f"INSERT INTO tasks ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(columns.values()),
        )
        return cursor.lastrowid

    async def get_task(self, task_id: int) -> ProjectTask | None:
        """根据 id 查询项目事项（不含操作历史）"""
        with storage_errors(f"load task {task_id}"):
            cursor = await self._conn.execute(
                "SELECT * FROM tasks WHERE id = ?",
                (task_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks(
        self,
        stage: ProjectStage | None = None,
        is_archived: bool | None = None,
    ) -> list[ProjectTask]:
        """查询项目事项列表，支持按阶段和归档状态筛选，按创建时间倒序"""
        clauses: list[str] = []
        params: list[Any] = []
        if stage is not None:
            clauses.append("current_stage = ?")
            params.append(stage.value)
        if is_archived is not None:
            clauses.append("is_archived = ?")
            params.append(int(is_archived))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        with storage_errors("list tasks"):
            cursor = await self._conn.execute(
                f"SELECT * FROM tasks{where} ORDER BY create_time DESC, id DESC",
                tuple(params),
            )
            rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def list_tasks_for_user(
        self,
        user_id: int,
        is_archived: bool | None = None,
    ) -> list[ProjectTask]:
        """查询用户担任任一角色（或当前办理人）的项目事项"""
        sql = """
            SELECT * FROM tasks
            WHERE (responsible_person_id = ? OR consultant_id = ?
                   OR market_manager_id = ? OR executor_id = ?)
        """
        params: list[Any] = [user_id, user_id, user_id, user_id]
        if is_archived is not None:
            sql += " AND is_archived = ?"
            params.append(int(is_archived))
        sql += " ORDER BY create_time DESC, id DESC"
        with storage_errors(f"list tasks for user {user_id}"):
            cursor = await self._conn.execute(sql, tuple(params))
            rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def update_task_fields(
        self,
        task_id: int,
        changes: dict[str, Any],
        *,
        expected_version: int,
        expected_stage: ProjectStage | None = None,
    ) -> bool:
        """比较并交换更新：version（及可选的 current_stage）匹配才写入

        写入成功时 version 自增 1。

        Returns:
            True 如果恰好更新了一行

        Raises:
            ValueError: changes 包含不可更新的列
        """
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"不可更新的列: {sorted(unknown)}")

        assignments = [f"{name} = ?" for name in changes]
        assignments.append("version = version + 1")
        params: list[Any] = [_to_column(value) for value in changes.values()]

        sql = f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ? AND version = ?"
        params.extend([task_id, expected_version])
        if expected_stage is not None:
            sql += " AND current_stage = ?"
            params.append(expected_stage.value)

        cursor = await self._conn.execute(sql, tuple(params))
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> ProjectTask:
        """将数据库行转换为 ProjectTask 模型"""
        data = dict(row)
        for name in _JSON_COLUMNS:
            if data[name] is not None:
                data[name] = json.loads(data[name])
        if data["proposal_attachment_ids"] is None:
            data["proposal_attachment_ids"] = []
        return ProjectTask.model_validate(data)
