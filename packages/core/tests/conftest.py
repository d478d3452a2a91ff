"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from trainops.core.models import Actor, ProjectStage, ProjectTask
from trainops.core.store import StoreGroup, create_store_group

NOW = datetime(2025, 6, 15, 9, 30, tzinfo=UTC)


@pytest_asyncio.fixture
async def core_db_path(tmp_path: Path) -> Path:
    """核心层临时数据库路径"""
    return tmp_path / "sqlite" / "core_test.db"


@pytest_asyncio.fixture
async def store_group(core_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """核心层 Store 实例组"""
    group = await create_store_group(str(core_db_path))
    yield group
    await group.close()


@pytest.fixture
def make_task() -> Callable[..., ProjectTask]:
    """构造项目事项（默认角色 10/20/30，阶段 customer_inquiry）"""

    def _make(**overrides: Any) -> ProjectTask:
        data: dict[str, Any] = {
            "id": 0,
            "project_name": "Leadership Bootcamp",
            "project_type": "corporate_training",
            "responsible_person_id": 10,
            "consultant_id": 20,
            "market_manager_id": 30,
            "executor_id": 10,
            "current_stage": ProjectStage.CUSTOMER_INQUIRY,
            "create_time": NOW,
            "update_time": NOW,
        }
        data.update(overrides)
        return ProjectTask(**data)

    return _make


@pytest.fixture
def actor() -> Actor:
    return Actor(user_id=10, nick_name="Alice", user_name="alice")
