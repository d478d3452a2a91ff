"""枚举定义 -- 项目事项阶段状态机

包含 ProjectStage 阶段状态机、StageAction 阶段操作、HistoryAction 历史动作词表、
NotificationSeverity 通知级别，以及 NEXT_STAGE 线性推进表、ACTION_REQUIRED_STAGE
前置阶段表和 TERMINAL_STAGES 终态集合。
"""

from enum import StrEnum


class ProjectStage(StrEnum):
    """项目事项阶段 -- 7 个业务阶段 + 终态 completed"""

    CUSTOMER_INQUIRY = "customer_inquiry"
    PROPOSAL_SUBMISSION = "proposal_submission"
    TEACHER_CONFIRMATION = "teacher_confirmation"
    PROJECT_APPROVAL = "project_approval"
    CONTRACT_SIGNING = "contract_signing"
    PROJECT_EXECUTION = "project_execution"
    PROJECT_SETTLEMENT = "project_settlement"

    # 终态
    COMPLETED = "completed"


# 线性推进表（advance-stage 使用），终态无后继
NEXT_STAGE: dict[ProjectStage, ProjectStage | None] = {
    ProjectStage.CUSTOMER_INQUIRY: ProjectStage.PROPOSAL_SUBMISSION,
    ProjectStage.PROPOSAL_SUBMISSION: ProjectStage.TEACHER_CONFIRMATION,
    ProjectStage.TEACHER_CONFIRMATION: ProjectStage.PROJECT_APPROVAL,
    ProjectStage.PROJECT_APPROVAL: ProjectStage.CONTRACT_SIGNING,
    ProjectStage.CONTRACT_SIGNING: ProjectStage.PROJECT_EXECUTION,
    ProjectStage.PROJECT_EXECUTION: ProjectStage.PROJECT_SETTLEMENT,
    ProjectStage.PROJECT_SETTLEMENT: ProjectStage.COMPLETED,
    ProjectStage.COMPLETED: None,
}

# 唯一的回退边：项目审批拒绝 -> 师资确定
REJECTION_EDGES: dict[ProjectStage, ProjectStage] = {
    ProjectStage.PROJECT_APPROVAL: ProjectStage.TEACHER_CONFIRMATION,
}

TERMINAL_STAGES: frozenset[ProjectStage] = frozenset({ProjectStage.COMPLETED})

# 阶段在业务流程中的序号（统计按此排序）
STAGE_ORDER: dict[ProjectStage, int] = {
    stage: index for index, stage in enumerate(NEXT_STAGE)
}


class StageAction(StrEnum):
    """阶段操作 -- 引擎对外暴露的全部动作"""

    ADVANCE_STAGE = "advance_stage"
    UPLOAD_PROPOSAL = "upload_proposal"
    CONFIRM_PROPOSAL = "confirm_proposal"
    CONFIRM_TEACHER = "confirm_teacher"
    APPROVE_PROJECT = "approve_project"
    CONFIRM_CONTRACT = "confirm_contract"
    CONFIRM_COMPLETION = "confirm_completion"
    CONFIRM_PAYMENT = "confirm_payment"
    ARCHIVE = "archive"


# 各操作要求的前置阶段；None 表示不限定具体阶段（由操作自身规则判断）
ACTION_REQUIRED_STAGE: dict[StageAction, ProjectStage | None] = {
    StageAction.ADVANCE_STAGE: None,
    StageAction.UPLOAD_PROPOSAL: ProjectStage.PROPOSAL_SUBMISSION,
    StageAction.CONFIRM_PROPOSAL: ProjectStage.PROPOSAL_SUBMISSION,
    StageAction.CONFIRM_TEACHER: ProjectStage.TEACHER_CONFIRMATION,
    StageAction.APPROVE_PROJECT: ProjectStage.PROJECT_APPROVAL,
    StageAction.CONFIRM_CONTRACT: ProjectStage.CONTRACT_SIGNING,
    StageAction.CONFIRM_COMPLETION: ProjectStage.PROJECT_EXECUTION,
    StageAction.CONFIRM_PAYMENT: ProjectStage.PROJECT_SETTLEMENT,
    StageAction.ARCHIVE: None,
}


class HistoryAction(StrEnum):
    """历史记录动作词表"""

    ADVANCE_STAGE = "advance stage"
    UPLOAD_PROPOSAL = "upload proposal"
    CUSTOMER_APPROVED_PROPOSAL = "customer approved proposal"
    CUSTOMER_REJECTED_PROPOSAL = "customer rejected proposal"
    CONFIRM_TEACHER = "confirm teacher"
    APPROVAL_PASSED = "approval passed"
    APPROVAL_REJECTED = "approval rejected"
    REASSIGNED_BACK = "reassigned back"
    CONTRACT_SIGNED = "contract signed"
    CONTRACT_NOT_SIGNED = "contract not signed"
    PROJECT_COMPLETED = "project completed"
    PROJECT_IN_PROGRESS = "project in progress"
    PAYMENT_RECEIVED = "payment received"
    PAYMENT_NOT_RECEIVED = "payment not received"
    ARCHIVE = "archive"


class NotificationSeverity(StrEnum):
    """通知级别"""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


def validate_transition(from_stage: ProjectStage, to_stage: ProjectStage) -> bool:
    """验证阶段流转是否合法

    合法流转只有两类：线性推进到后继阶段，以及审批拒绝的回退边。
    """
    if NEXT_STAGE.get(from_stage) == to_stage:
        return True
    return REJECTION_EDGES.get(from_stage) == to_stage


def _check_tables() -> None:
    """导入期完整性检查：新增或拼错阶段/操作时立即失败"""
    missing_stages = set(ProjectStage) - set(NEXT_STAGE)
    if missing_stages:
        raise RuntimeError(f"NEXT_STAGE 缺少阶段: {sorted(missing_stages)}")
    missing_actions = set(StageAction) - set(ACTION_REQUIRED_STAGE)
    if missing_actions:
        raise RuntimeError(f"ACTION_REQUIRED_STAGE 缺少操作: {sorted(missing_actions)}")


_check_tables()
