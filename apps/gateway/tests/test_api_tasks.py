"""项目事项 API 测试

测试内容：
1. 统一响应信封 {code, message, data}
2. 创建 201 / 详情 / 列表 / 编辑
3. 阶段操作：2101 阶段不满足、1001 参数错误、401 缺少操作人、404 不存在
4. 请求头解析与 X-Request-ID
5. 存储失败与未捕获异常同样返回信封（500 + 1000）
"""

from urllib.parse import quote

import aiosqlite
from httpx import ASGITransport, AsyncClient

CREATE_BODY = {
    "projectName": "Leadership Bootcamp",
    "projectType": "corporate_training",
    "responsiblePersonId": 10,
    "consultantId": 20,
    "marketManagerId": 30,
    "priority": 1,
}


async def _create(client: AsyncClient, headers: dict, **overrides) -> dict:
    resp = await client.post("/api/tasks", json={**CREATE_BODY, **overrides}, headers=headers)
    assert resp.status_code == 201
    return resp.json()["data"]


class TestTaskCrud:
    async def test_create_returns_envelope(self, client: AsyncClient, as_user):
        resp = await client.post("/api/tasks", json=CREATE_BODY, headers=as_user(10))
        assert resp.status_code == 201
        body = resp.json()
        assert body["code"] == 0
        assert body["message"] == "Project task created"
        data = body["data"]
        assert data["currentStage"] == "customer_inquiry"
        assert data["executorId"] == 10
        assert data["stageHistory"] == []
        assert data["priority"] == 1

    async def test_create_missing_field(self, client: AsyncClient, as_user):
        body = {k: v for k, v in CREATE_BODY.items() if k != "consultantId"}
        resp = await client.post("/api/tasks", json=body, headers=as_user(10))
        assert resp.status_code == 400
        assert resp.json()["code"] == 1001
        assert resp.json()["data"]["errors"]

    async def test_create_requires_actor(self, client: AsyncClient):
        resp = await client.post("/api/tasks", json=CREATE_BODY)
        assert resp.status_code == 401
        assert resp.json()["code"] == 1002

    async def test_detail_and_not_found(self, client: AsyncClient, as_user):
        task = await _create(client, as_user(10))

        resp = await client.get(f"/api/tasks/{task['id']}")
        assert resp.status_code == 200
        assert resp.json()["data"]["projectName"] == "Leadership Bootcamp"

        resp = await client.get("/api/tasks/9999")
        assert resp.status_code == 404
        assert resp.json()["code"] == 1004
        assert resp.json()["data"] is None

    async def test_list_filters(self, client: AsyncClient, as_user):
        first = await _create(client, as_user(10))
        second = await _create(client, as_user(10))
        await client.post(f"/api/tasks/{second['id']}/advance-stage", headers=as_user(10))

        resp = await client.get("/api/tasks", params={"stage": "customer_inquiry"})
        assert [t["id"] for t in resp.json()["data"]] == [first["id"]]

        resp = await client.get("/api/tasks", params={"stage": "not_a_stage"})
        assert resp.status_code == 400

        resp = await client.get("/api/tasks", params={"isArchived": "false"})
        assert len(resp.json()["data"]) == 2

    async def test_update_task(self, client: AsyncClient, as_user):
        task = await _create(client, as_user(10))
        resp = await client.put(
            f"/api/tasks/{task['id']}",
            json={"projectName": "Sales Academy", "responsiblePersonId": 11},
            headers=as_user(10),
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["projectName"] == "Sales Academy"
        assert data["executorId"] == 11
        assert data["consultantId"] == 20

    async def test_my_and_statistics(self, client: AsyncClient, as_user):
        await _create(client, as_user(10))
        await _create(client, as_user(10), marketManagerId=31)

        resp = await client.get("/api/tasks/my", headers=as_user(31))
        assert len(resp.json()["data"]) == 1

        resp = await client.get("/api/tasks/my", headers=as_user(1, roles="super_admin"))
        assert len(resp.json()["data"]) == 2

        resp = await client.get("/api/tasks/statistics")
        stats = resp.json()["data"]
        assert stats["overview"]["total"] == 2
        assert stats["overview"]["active"] == 2
        assert stats["stageDistribution"]["customer_inquiry"] == 2
        assert len(stats["monthlyCompletions"]) == 12


class TestStageEndpoints:
    async def test_wrong_stage_returns_2101(self, client: AsyncClient, as_user):
        task = await _create(client, as_user(10))

        resp = await client.post(
            f"/api/tasks/{task['id']}/approve",
            json={"approved": True},
            headers=as_user(30),
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == 2101
        assert body["data"] == {
            "taskId": task["id"],
            "action": "approve_project",
            "currentStage": "customer_inquiry",
        }

        detail = (await client.get(f"/api/tasks/{task['id']}")).json()["data"]
        assert detail["stageHistory"] == []
        assert detail["executorId"] == 10

    async def test_non_bool_flag_returns_1001(self, client: AsyncClient, as_user):
        task = await _create(client, as_user(10))
        await client.post(f"/api/tasks/{task['id']}/advance-stage", headers=as_user(10))

        resp = await client.post(
            f"/api/tasks/{task['id']}/confirm-proposal",
            json={"approved": "yes"},
            headers=as_user(20),
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == 1001

    async def test_stage_action_unknown_task(self, client: AsyncClient, as_user):
        resp = await client.post("/api/tasks/9999/advance-stage", headers=as_user(10))
        assert resp.status_code == 404
        assert resp.json()["code"] == 1004

    async def test_rejection_flow(self, client: AsyncClient, as_user):
        task = await _create(client, as_user(10))
        task_id = task["id"]
        consultant = as_user(20, nick_name=quote("顾问小王"))

        await client.post(f"/api/tasks/{task_id}/advance-stage", headers=as_user(10))
        await client.post(
            f"/api/tasks/{task_id}/confirm-proposal",
            json={"approved": True, "remark": "looks good"},
            headers=consultant,
        )
        resp = await client.post(
            f"/api/tasks/{task_id}/confirm-teacher",
            json={"teacherInfo": {"name": "Dr. Chen"}},
            headers=consultant,
        )
        assert resp.json()["data"]["executorId"] == 30

        resp = await client.post(
            f"/api/tasks/{task_id}/approve",
            json={"approved": False, "comment": "budget too high"},
            headers=as_user(30),
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["currentStage"] == "teacher_confirmation"
        assert data["executorId"] == 20
        assert data["approvalComment"] == "budget too high"
        history = data["stageHistory"]
        assert len(history) == 5
        assert history[1]["comment"] == "looks good"
        assert history[1]["operatorName"] == "顾问小王"
        assert [h["action"] for h in history[-2:]] == ["approval rejected", "reassigned back"]

    async def test_payment_completes(self, client: AsyncClient, as_user):
        task = await _create(client, as_user(10))
        task_id = task["id"]
        for _ in range(6):
            await client.post(f"/api/tasks/{task_id}/advance-stage", headers=as_user(10))

        resp = await client.post(
            f"/api/tasks/{task_id}/confirm-payment",
            json={"received": True, "amount": "12800.50"},
            headers=as_user(10),
        )
        data = resp.json()["data"]
        assert data["currentStage"] == "completed"
        assert data["isCompleted"] is True
        assert data["isArchived"] is True

        resp = await client.get("/api/tasks/archived", headers=as_user(20))
        assert [t["id"] for t in resp.json()["data"]] == [task_id]

    async def test_negative_amount_rejected(self, client: AsyncClient, as_user):
        task = await _create(client, as_user(10))
        resp = await client.post(
            f"/api/tasks/{task['id']}/confirm-payment",
            json={"received": True, "amount": -5},
            headers=as_user(10),
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == 1001

    async def test_archive_without_body(self, client: AsyncClient, as_user):
        task = await _create(client, as_user(10))
        resp = await client.post(f"/api/tasks/{task['id']}/archive", headers=as_user(10))
        assert resp.status_code == 200
        assert resp.json()["data"]["isArchived"] is True


class TestActorHeaders:
    async def test_invalid_user_id(self, client: AsyncClient):
        for value in ("abc", "0", "-3", ""):
            resp = await client.get("/api/tasks/my", headers={"X-User-Id": value})
            assert resp.status_code == 401

    async def test_request_id_header(self, client: AsyncClient):
        resp = await client.get("/api/tasks")
        assert len(resp.headers["X-Request-ID"]) == 26


def _assert_system_error(resp) -> None:
    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("application/json")
    body = resp.json()
    assert body["code"] == 1000
    assert body["data"] is None


class TestStorageFailures:
    async def test_driver_error_on_read(
        self, client: AsyncClient, store_group, as_user, monkeypatch
    ):
        async def broken_get_task(task_id):
            raise aiosqlite.OperationalError("database is locked")

        monkeypatch.setattr(store_group.task_store, "get_task", broken_get_task)

        _assert_system_error(await client.get("/api/tasks/1"))
        _assert_system_error(
            await client.post("/api/tasks/1/advance-stage", headers=as_user(10))
        )

    async def test_missing_tables_render_envelope(
        self, client: AsyncClient, store_group, as_user
    ):
        await store_group.conn.execute("DROP TABLE stage_history")
        await store_group.conn.execute("DROP TABLE tasks")
        await store_group.conn.commit()

        _assert_system_error(await client.get("/api/tasks"))
        _assert_system_error(await client.get("/api/tasks/my", headers=as_user(10)))
        _assert_system_error(
            await client.post("/api/tasks/1/confirm-proposal", json={"approved": True},
                              headers=as_user(20))
        )

    async def test_commit_failure_rolls_back(
        self, client: AsyncClient, store_group, as_user, monkeypatch
    ):
        task = await _create(client, as_user(10))
        base = f"/api/tasks/{task['id']}"
        await client.post(f"{base}/advance-stage", headers=as_user(10))

        async def broken_append(task_id, entries):
            raise aiosqlite.OperationalError("disk I/O error")

        monkeypatch.setattr(store_group.history_store, "append_entries", broken_append)
        resp = await client.post(
            f"{base}/confirm-proposal", json={"approved": True}, headers=as_user(20)
        )
        _assert_system_error(resp)
        monkeypatch.undo()

        detail = (await client.get(base)).json()["data"]
        assert detail["currentStage"] == "proposal_submission"
        assert detail["version"] == 1
        assert len(detail["stageHistory"]) == 1

    async def test_unexpected_error_renders_envelope(self, app, task_service, monkeypatch):
        async def broken_list_tasks(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(task_service, "list_tasks", broken_list_tasks)

        async with AsyncClient(
            transport=ASGITransport(app=app, raise_app_exceptions=False),
            base_url="http://test",
        ) as ac:
            resp = await ac.get("/api/tasks")
        _assert_system_error(resp)
        assert resp.json()["message"] == "Internal server error"
