"""apps/gateway 测试配置 -- 流程引擎 + FastAPI AsyncClient fixture"""

import os
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from trainops.core.models import Actor, ProjectTask
from trainops.core.store import StoreGroup, create_store_group
from trainops.gateway.services.notification_dispatcher import QueuedNotificationDispatcher
from trainops.gateway.services.notification_hub import NotificationHub
from trainops.gateway.services.task_service import ProjectTaskService

_ENV_KEYS = ("TRAINOPS_DB_PATH", "LOGFIRE_SEND_TO_LOGFIRE")


@pytest_asyncio.fixture
async def gateway_db_path(tmp_path: Path) -> AsyncGenerator[Path, None]:
    """Gateway 临时数据库路径（同时设置测试环境变量）"""
    db_path = tmp_path / "sqlite" / "test.db"
    os.environ["TRAINOPS_DB_PATH"] = str(db_path)
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"
    yield db_path
    for key in _ENV_KEYS:
        os.environ.pop(key, None)


@pytest_asyncio.fixture
async def store_group(gateway_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    group = await create_store_group(str(gateway_db_path))
    yield group
    await group.close()


@pytest_asyncio.fixture
async def notification_hub() -> NotificationHub:
    return NotificationHub()


@pytest_asyncio.fixture
async def dispatcher(
    store_group: StoreGroup, notification_hub: NotificationHub
) -> AsyncGenerator[QueuedNotificationDispatcher, None]:
    """已启动的通知分发器，测试结束时排空并停止"""
    queued = QueuedNotificationDispatcher(store_group.notification_store, notification_hub)
    queued.start()
    yield queued
    await queued.stop(drain_timeout=1.0)


@pytest_asyncio.fixture
async def task_service(
    store_group: StoreGroup, dispatcher: QueuedNotificationDispatcher
) -> ProjectTaskService:
    return ProjectTaskService(store_group, dispatcher)


@pytest.fixture
def make_actor() -> Callable[..., Actor]:
    def _make(user_id: int, nick_name: str | None = None, **kwargs) -> Actor:
        return Actor(user_id=user_id, nick_name=nick_name or f"user{user_id}", **kwargs)

    return _make


@pytest_asyncio.fixture
async def new_task(
    task_service: ProjectTaskService, make_actor
) -> Callable[..., ProjectTask]:
    """创建事项（角色 10/20/30），返回的是协程函数"""

    async def _create(**overrides) -> ProjectTask:
        fields = {
            "project_name": "Leadership Bootcamp",
            "project_type": "corporate_training",
            "responsible_person_id": 10,
            "consultant_id": 20,
            "market_manager_id": 30,
        }
        fields.update(overrides)
        return await task_service.create_task(make_actor(10), **fields)

    return _create


@pytest_asyncio.fixture
async def app(
    store_group: StoreGroup,
    notification_hub: NotificationHub,
    dispatcher: QueuedNotificationDispatcher,
    task_service: ProjectTaskService,
):
    """创建测试用 FastAPI app，手动初始化 lifespan 状态"""
    from trainops.gateway.main import create_app

    application = create_app()
    application.state.store_group = store_group
    application.state.notification_hub = notification_hub
    application.state.notification_dispatcher = dispatcher
    application.state.task_service = task_service
    yield application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def as_user() -> Callable[..., dict[str, str]]:
    """构造认证层请求头"""

    def _headers(user_id: int, nick_name: str | None = None, roles: str | None = None):
        headers = {"X-User-Id": str(user_id)}
        if nick_name is not None:
            headers["X-User-Nickname"] = nick_name
        if roles is not None:
            headers["X-User-Roles"] = roles
        return headers

    return _headers
