"""办理人解析 -- (阶段, 角色分配) -> 下一步办理人

纯函数，无副作用。每次阶段变化后调用，结果无条件覆盖 executor_id。
"""

from enum import StrEnum
from typing import Protocol

from .models.enums import ProjectStage


class TaskRole(StrEnum):
    """项目事项上的固定角色"""

    RESPONSIBLE_PERSON = "responsible_person_id"
    CONSULTANT = "consultant_id"
    MARKET_MANAGER = "market_manager_id"


class HasRoles(Protocol):
    responsible_person_id: int
    consultant_id: int | None
    market_manager_id: int | None


# 阶段 -> 办理角色；None 表示该阶段不重新计算办理人
STAGE_EXECUTOR_ROLE: dict[ProjectStage, TaskRole | None] = {
    ProjectStage.CUSTOMER_INQUIRY: TaskRole.RESPONSIBLE_PERSON,
    ProjectStage.PROPOSAL_SUBMISSION: TaskRole.CONSULTANT,
    ProjectStage.TEACHER_CONFIRMATION: TaskRole.CONSULTANT,
    ProjectStage.PROJECT_APPROVAL: TaskRole.MARKET_MANAGER,
    ProjectStage.CONTRACT_SIGNING: TaskRole.CONSULTANT,
    ProjectStage.PROJECT_EXECUTION: TaskRole.CONSULTANT,
    ProjectStage.PROJECT_SETTLEMENT: TaskRole.RESPONSIBLE_PERSON,
    ProjectStage.COMPLETED: None,
}

_missing = set(ProjectStage) - set(STAGE_EXECUTOR_ROLE)
if _missing:
    raise RuntimeError(f"STAGE_EXECUTOR_ROLE 缺少阶段: {sorted(_missing)}")


def resolve_executor_id(stage: ProjectStage, task: HasRoles) -> int | None:
    """根据阶段返回负责办理的用户 ID

    Args:
        stage: 目标阶段
        task: 带角色分配字段的项目事项

    Returns:
        用户 ID；终态等无办理角色的阶段返回 None
    """
    role = STAGE_EXECUTOR_ROLE.get(stage)
    if role is None:
        return None
    return getattr(task, role.value)


def recompute_executor_id(
    stage: ProjectStage,
    task: HasRoles,
    current_executor_id: int | None,
) -> int | None:
    """阶段变化后的办理人：无办理角色的阶段保留原值"""
    if STAGE_EXECUTOR_ROLE.get(stage) is None:
        return current_executor_id
    return resolve_executor_id(stage, task)
