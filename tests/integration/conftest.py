"""集成测试共享 fixture"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from trainops.core.store import create_store_group
from trainops.gateway.services.notification_dispatcher import QueuedNotificationDispatcher
from trainops.gateway.services.notification_hub import NotificationHub
from trainops.gateway.services.task_service import ProjectTaskService


@pytest_asyncio.fixture
async def integration_app(tmp_path: Path):
    """集成测试用 FastAPI app"""
    os.environ["TRAINOPS_DB_PATH"] = str(tmp_path / "test.db")
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from trainops.gateway.main import create_app

    app = create_app()

    store_group = await create_store_group(str(tmp_path / "test.db"))
    hub = NotificationHub()
    dispatcher = QueuedNotificationDispatcher(store_group.notification_store, hub)
    dispatcher.start()

    app.state.store_group = store_group
    app.state.notification_hub = hub
    app.state.notification_dispatcher = dispatcher
    app.state.task_service = ProjectTaskService(store_group, dispatcher)

    yield app

    await dispatcher.stop(drain_timeout=1.0)
    await store_group.close()
    os.environ.pop("TRAINOPS_DB_PATH", None)
    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def client(integration_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac
