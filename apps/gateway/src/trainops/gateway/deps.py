"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例和操作人

Store、流程引擎、通知分发器通过 app.state 管理，在 lifespan 中初始化/清理。
操作人身份由上游认证层写入请求头：
  X-User-Id        必填，正整数
  X-User-Nickname  可选，percent-encoded UTF-8
  X-User-Name      可选，percent-encoded UTF-8
  X-User-Roles     可选，逗号分隔
"""

from urllib.parse import unquote

from fastapi import Request
from trainops.core.exceptions import ActorRequiredError
from trainops.core.models import Actor
from trainops.core.store import StoreGroup

from .services.notification_hub import NotificationHub
from .services.task_service import ProjectTaskService


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_task_service(request: Request) -> ProjectTaskService:
    """从 app.state 获取流程引擎实例（全局唯一，事项级锁在其中）"""
    return request.app.state.task_service


def get_notification_hub(request: Request) -> NotificationHub:
    """从 app.state 获取 NotificationHub 实例"""
    return request.app.state.notification_hub


def _header_text(request: Request, name: str) -> str | None:
    raw = request.headers.get(name)
    if raw is None:
        return None
    text = unquote(raw).strip()
    return text or None


def get_actor(request: Request) -> Actor:
    """解析认证层提供的操作人

    Raises:
        ActorRequiredError: 缺少 X-User-Id 或不是正整数
    """
    raw_id = request.headers.get("X-User-Id", "").strip()
    try:
        user_id = int(raw_id)
    except ValueError:
        raise ActorRequiredError("Missing or invalid X-User-Id header") from None
    if user_id < 1:
        raise ActorRequiredError("Missing or invalid X-User-Id header")

    roles_header = _header_text(request, "X-User-Roles") or ""
    actor = Actor(
        user_id=user_id,
        nick_name=_header_text(request, "X-User-Nickname"),
        user_name=_header_text(request, "X-User-Name"),
        roles=[role.strip() for role in roles_header.split(",") if role.strip()],
    )
    request.state.actor = actor
    return actor
