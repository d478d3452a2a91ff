"""StageHistoryEntry Domain Model -- 项目事项操作历史

历史记录只追加，不允许更新或删除。
seq 同一项目事项内从 1 开始严格连续递增。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import HistoryAction, ProjectStage


class StageHistoryEntry(BaseModel):
    """一条不可变的操作历史"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    seq: int = Field(ge=1, description="项目事项内序号，从 1 开始")
    stage: ProjectStage = Field(description="记录所属阶段")
    timestamp: datetime = Field(description="操作时间")
    operator_id: int = Field(description="操作人 ID")
    operator_name: str = Field(description="操作人显示名")
    action: HistoryAction = Field(description="动作")
    comment: str | None = Field(default=None, description="备注")
    payload: dict[str, Any] | None = Field(
        default=None,
        description="结构化附加信息（师资信息、收款金额等）",
    )
