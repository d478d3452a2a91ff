"""ProjectTask Domain Model -- 项目事项聚合

tasks 表保存项目事项当前状态，stage_history 表是其只追加的操作历史。
current_stage / executor_id / stage_history 只能由阶段流转引擎写入。
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import ProjectStage
from .history import StageHistoryEntry


class ProjectTask(BaseModel):
    """项目事项数据模型

    对外序列化使用 camelCase（responsiblePersonId、currentStage、stageHistory ...）。
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int = Field(description="项目事项 ID")
    project_name: str = Field(description="项目名称")
    project_type: str = Field(description="项目类型")
    priority: int = Field(default=2, ge=1, le=3, description="优先级 1-3")
    start_time: datetime | None = Field(default=None, description="开始时间")
    end_time: datetime | None = Field(default=None, description="结束时间")
    remark: str | None = Field(default=None, description="备注")

    # 角色分配
    responsible_person_id: int = Field(description="负责人")
    consultant_id: int | None = Field(default=None, description="咨询部人员")
    market_manager_id: int | None = Field(default=None, description="市场部经理")
    executor_id: int | None = Field(default=None, description="当前办理人（派生）")

    # 流程状态
    current_stage: ProjectStage = Field(
        default=ProjectStage.CUSTOMER_INQUIRY, description="当前阶段"
    )
    is_completed: bool = Field(default=False)
    is_archived: bool = Field(default=False)
    version: int = Field(default=0, description="乐观锁版本号，每次引擎写入递增")

    # 各阶段时间戳
    proposal_upload_time: datetime | None = None
    customer_approval_time: datetime | None = None
    teacher_confirm_time: datetime | None = None
    approval_time: datetime | None = None
    contract_sign_time: datetime | None = None
    project_completion_time: datetime | None = None
    completion_time: datetime | None = None
    payment_time: datetime | None = None
    archive_time: datetime | None = None

    # 各阶段备注
    proposal_comment: str | None = None
    customer_approval_comment: str | None = None
    teacher_confirm_comment: str | None = None
    approval_comment: str | None = None
    contract_sign_comment: str | None = None
    project_completion_comment: str | None = None
    payment_comment: str | None = None

    # 阶段结构化数据
    proposal_attachment_ids: list[int] = Field(default_factory=list)
    teacher_info: dict[str, Any] | None = None
    payment_amount: Decimal | None = None

    create_time: datetime = Field(description="创建时间")
    update_time: datetime = Field(description="更新时间")

    stage_history: tuple[StageHistoryEntry, ...] = Field(
        default=(), description="操作历史（只追加）"
    )
