"""项目事项原子事务封装

事项行更新（比较并交换）与历史记录插入在同一 SQLite 事务内提交；
任一步失败整体回滚，不留下部分写入。
"""

from collections.abc import Sequence
from typing import Any

import aiosqlite

from ..exceptions import StageConflictError, StorageFailureError
from ..models.enums import ProjectStage
from ..models.history import StageHistoryEntry
from ..models.task import ProjectTask
from .history_store import SqliteStageHistoryStore
from .sqlite_errors import is_history_seq_conflict
from .task_store import SqliteTaskStore


async def commit_stage_transition(
    conn: aiosqlite.Connection,
    task_store: SqliteTaskStore,
    history_store: SqliteStageHistoryStore,
    *,
    task_id: int,
    action: str,
    expected_stage: ProjectStage,
    expected_version: int,
    changes: dict[str, Any],
    entries: Sequence[StageHistoryEntry],
) -> None:
    """在同一事务内原子提交事项更新和历史追加

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        task_store: TaskStore 实例
        history_store: StageHistoryStore 实例
        task_id: 项目事项 ID
        action: 触发流转的操作名（冲突错误信息用）
        expected_stage: 读取时的阶段，写入时必须仍然成立
        expected_version: 读取时的版本号，写入时必须仍然成立
        changes: 要写入的列
        entries: 要追加的历史记录

    Raises:
        StageConflictError: 另一个写入者已先提交（版本/阶段不匹配或 seq 冲突）
        StorageFailureError: 其他数据库错误（含 NOT NULL、外键等约束失败）
    """
    try:
        updated = await task_store.update_task_fields(
            task_id,
            changes,
            expected_version=expected_version,
            expected_stage=expected_stage,
        )
        if not updated:
            raise StageConflictError(task_id, action, expected_stage.value)
        if entries:
            await history_store.append_entries(task_id, entries)
        await conn.commit()
    except aiosqlite.IntegrityError as exc:
        await conn.rollback()
        if is_history_seq_conflict(exc):
            raise StageConflictError(task_id, action, expected_stage.value) from exc
        raise StorageFailureError(f"Failed to persist {action} for task {task_id}") from exc
    except aiosqlite.Error as exc:
        await conn.rollback()
        raise StorageFailureError(f"Failed to persist {action} for task {task_id}") from exc
    except Exception:
        await conn.rollback()
        raise


async def create_task_record(
    conn: aiosqlite.Connection,
    task_store: SqliteTaskStore,
    task: ProjectTask,
) -> int:
    """插入新项目事项并提交，返回分配的 id"""
    try:
        task_id = await task_store.create_task(task)
        await conn.commit()
    except aiosqlite.Error as exc:
        await conn.rollback()
        raise StorageFailureError("Failed to create project task") from exc
    except Exception:
        await conn.rollback()
        raise
    return task_id


async def update_task_record(
    conn: aiosqlite.Connection,
    task_store: SqliteTaskStore,
    *,
    task_id: int,
    expected_version: int,
    changes: dict[str, Any],
) -> bool:
    """更新描述性字段（不涉及阶段与历史）并提交

    Returns:
        False 如果版本号已变化（并发修改）
    """
    try:
        updated = await task_store.update_task_fields(
            task_id,
            changes,
            expected_version=expected_version,
        )
        await conn.commit()
    except aiosqlite.Error as exc:
        await conn.rollback()
        raise StorageFailureError(f"Failed to update task {task_id}") from exc
    except Exception:
        await conn.rollback()
        raise
    return updated
