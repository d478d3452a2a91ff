"""Notification Domain Model -- 站内通知

通知由分发器异步写入，relatedType 固定为 project_task。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import NotificationSeverity

PROJECT_TASK_RELATED_TYPE = "project_task"


class NotificationMessage(BaseModel):
    """分发器邮箱中的待投递消息"""

    task_id: int
    recipient_id: int
    title: str
    body: str
    severity: NotificationSeverity = NotificationSeverity.INFO


class Notification(BaseModel):
    """已落盘的通知"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    user_id: int = Field(description="接收人")
    title: str
    content: str
    type: NotificationSeverity = Field(default=NotificationSeverity.INFO)
    read_status: int = Field(default=0, description="0 未读 / 1 已读")
    related_id: int | None = Field(default=None, description="关联业务 ID")
    related_type: str = Field(default=PROJECT_TASK_RELATED_TYPE)
    create_time: datetime
    read_time: datetime | None = None
