"""Actor Domain Model -- 认证层提供的操作人身份

引擎的每个写操作都显式接收 Actor，不从全局请求上下文读取。
"""

from pydantic import BaseModel, Field


class Actor(BaseModel):
    """已认证的操作人"""

    user_id: int = Field(gt=0, description="用户 ID")
    nick_name: str | None = Field(default=None, description="昵称")
    user_name: str | None = Field(default=None, description="登录名")
    roles: list[str] = Field(default_factory=list, description="角色编码")

    def has_role(self, role: str) -> bool:
        return role in self.roles
