"""操作历史构建 -- 只追加的历史日志

所有流转点统一使用 resolve_operator_name 解析操作人显示名，
append_history 返回新序列，从不修改传入的历史。
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from .models.actor import Actor
from .models.enums import HistoryAction, ProjectStage
from .models.history import StageHistoryEntry

UNKNOWN_OPERATOR_NAME = "unknown user"


def resolve_operator_name(actor: Actor) -> str:
    """昵称 -> 登录名 -> "unknown user"（空字符串视为缺失）"""
    return actor.nick_name or actor.user_name or UNKNOWN_OPERATOR_NAME


def build_history_entry(
    *,
    seq: int,
    stage: ProjectStage,
    actor: Actor,
    action: HistoryAction,
    timestamp: datetime,
    comment: str | None = None,
    payload: dict[str, Any] | None = None,
) -> StageHistoryEntry:
    """构建一条历史记录"""
    return StageHistoryEntry(
        seq=seq,
        stage=stage,
        timestamp=timestamp,
        operator_id=actor.user_id,
        operator_name=resolve_operator_name(actor),
        action=action,
        comment=comment,
        payload=payload,
    )


def append_history(
    existing: Sequence[StageHistoryEntry],
    *entries: StageHistoryEntry,
) -> tuple[StageHistoryEntry, ...]:
    """返回追加后的新历史

    Raises:
        ValueError: 新记录的 seq 没有紧接在已有历史之后
    """
    expected = len(existing) + 1
    for entry in entries:
        if entry.seq != expected:
            raise ValueError(f"history seq {entry.seq} does not follow {expected - 1}")
        expected += 1
    return (*existing, *entries)


class HistoryBuilder:
    """为一次操作依次分配 seq 的历史构建器

    同一次操作内的多条记录（例如审批拒绝 + 打回）共享操作人和时间戳。
    """

    def __init__(
        self,
        existing: Sequence[StageHistoryEntry],
        actor: Actor,
        timestamp: datetime,
    ) -> None:
        self._next_seq = len(existing) + 1
        self._actor = actor
        self._timestamp = timestamp
        self.entries: list[StageHistoryEntry] = []

    def add(
        self,
        stage: ProjectStage,
        action: HistoryAction,
        comment: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> StageHistoryEntry:
        entry = build_history_entry(
            seq=self._next_seq,
            stage=stage,
            actor=self._actor,
            action=action,
            timestamp=self._timestamp,
            comment=comment,
            payload=payload,
        )
        self._next_seq += 1
        self.entries.append(entry)
        return entry
