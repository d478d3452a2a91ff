"""SQLite 错误转换

aiosqlite.Error 统一转换为 StorageFailureError，调用方只需处理 WorkflowError 体系。
"""

from collections.abc import Iterator
from contextlib import contextmanager

import aiosqlite

from ..exceptions import StorageFailureError

# stage_history (task_id, seq) 唯一索引冲突时 SQLite 的报错文本
_HISTORY_SEQ_CONFLICT = "UNIQUE constraint failed: stage_history.task_id, stage_history.seq"


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """在 with 块内把 aiosqlite.Error 转换为 StorageFailureError"""
    try:
        yield
    except aiosqlite.Error as exc:
        raise StorageFailureError(f"Failed to {operation}") from exc


def is_history_seq_conflict(exc: aiosqlite.IntegrityError) -> bool:
    """是否为同一事项历史 seq 冲突（并发写入者已先追加）"""
    return _HISTORY_SEQ_CONFLICT in str(exc)
