"""TraceMiddleware -- 事项级日志关联

从 /api/tasks/{task_id}[/<action>] 路径中提取数字 task_id 和阶段操作名，
绑定到 structlog contextvars，贯穿该事项的流转日志。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


def extract_task_context(path: str) -> dict[str, str | int]:
    """/api/tasks/12/approve -> {"task_id": 12, "stage_action": "approve"}"""
    parts = [part for part in path.split("/") if part]
    if len(parts) < 3 or parts[:2] != ["api", "tasks"]:
        return {}
    if not parts[2].isdecimal():
        # /api/tasks/my、/api/tasks/statistics 等静态路径
        return {}
    context: dict[str, str | int] = {"task_id": int(parts[2])}
    if len(parts) > 3:
        context["stage_action"] = parts[3]
    return context


class TraceMiddleware(BaseHTTPMiddleware):
    """事项级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        context = extract_task_context(request.url.path)
        if context:
            structlog.contextvars.bind_contextvars(**context)

        return await call_next(request)
