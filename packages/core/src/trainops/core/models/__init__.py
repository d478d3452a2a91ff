"""trainops Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .actor import Actor
from .enums import (
    ACTION_REQUIRED_STAGE,
    NEXT_STAGE,
    REJECTION_EDGES,
    STAGE_ORDER,
    TERMINAL_STAGES,
    HistoryAction,
    NotificationSeverity,
    ProjectStage,
    StageAction,
    validate_transition,
)
from .history import StageHistoryEntry
from .notification import (
    PROJECT_TASK_RELATED_TYPE,
    Notification,
    NotificationMessage,
)
from .task import ProjectTask

__all__ = [
    # 枚举
    "ProjectStage",
    "StageAction",
    "HistoryAction",
    "NotificationSeverity",
    # 状态机
    "NEXT_STAGE",
    "REJECTION_EDGES",
    "STAGE_ORDER",
    "TERMINAL_STAGES",
    "ACTION_REQUIRED_STAGE",
    "validate_transition",
    # 聚合
    "ProjectTask",
    "StageHistoryEntry",
    "Actor",
    # 通知
    "Notification",
    "NotificationMessage",
    "PROJECT_TASK_RELATED_TYPE",
]
