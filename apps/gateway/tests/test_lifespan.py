"""FastAPI lifespan 测试

测试内容：
1. 启动时 DB 初始化、分发 worker 启动、流程引擎创建
2. 关闭时排空通知并清理连接
"""

from pathlib import Path

from httpx import ASGITransport, AsyncClient
from trainops.gateway.main import create_app, lifespan


class TestLifespan:
    async def test_startup_and_shutdown(self, gateway_db_path: Path):
        app = create_app()

        async with lifespan(app):
            assert gateway_db_path.exists()
            assert app.state.task_service is not None

            async with AsyncClient(
                transport=ASGITransport(app=app), base_url="http://test"
            ) as client:
                resp = await client.post(
                    "/api/tasks",
                    json={
                        "projectName": "Lifespan Check",
                        "projectType": "public_course",
                        "responsiblePersonId": 10,
                        "consultantId": 20,
                        "marketManagerId": 30,
                    },
                    headers={"X-User-Id": "10"},
                )
                assert resp.status_code == 201
                task_id = resp.json()["data"]["id"]

                await client.post(
                    f"/api/tasks/{task_id}/advance-stage", headers={"X-User-Id": "10"}
                )
                await client.post(
                    f"/api/tasks/{task_id}/upload-proposal",
                    json={"attachmentIds": [1]},
                    headers={"X-User-Id": "20"},
                )
            dispatcher = app.state.notification_dispatcher

        # 关闭时已排空邮箱
        assert dispatcher.pending == 0

        app = create_app()
        async with lifespan(app):
            notifications = await app.state.store_group.notification_store.list_for_user(10)
        assert [n.title for n in notifications] == ["Project proposal uploaded"]
