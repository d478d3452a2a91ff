"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭、通知分发 worker 启停、流程引擎创建、路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from trainops.core.config import get_db_path, get_notification_queue_maxsize
from trainops.core.store import create_store_group

from .errors import register_error_handlers
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import health, notifications, stages, tasks
from .services.notification_dispatcher import QueuedNotificationDispatcher
from .services.notification_hub import NotificationHub
from .services.task_service import ProjectTaskService

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 Store 与后台组件，关闭时排空通知并清理连接"""
    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    app.state.store_group = store_group

    hub = NotificationHub()
    app.state.notification_hub = hub

    dispatcher = QueuedNotificationDispatcher(
        store_group.notification_store,
        hub,
        maxsize=get_notification_queue_maxsize(),
    )
    dispatcher.start()
    app.state.notification_dispatcher = dispatcher

    # 流程引擎全局唯一：事项级锁保存在实例上
    app.state.task_service = ProjectTaskService(store_group, dispatcher)

    log.info("gateway_started", db_path=db_path)

    yield

    await dispatcher.stop()
    await store_group.close()
    log.info("gateway_stopped")


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="TrainOps Gateway",
        version="0.1.0",
        description="培训项目事项阶段流转 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging，Logging 在最外层）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    register_error_handlers(app)

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    # 注册路由（tasks 的静态路径需先于阶段操作和 /{task_id}）
    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(stages.router, tags=["stages"])
    app.include_router(notifications.router, tags=["notifications"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
