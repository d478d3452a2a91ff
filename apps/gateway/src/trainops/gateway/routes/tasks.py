"""项目事项路由

GET  /api/tasks              事项列表，支持 stage / isArchived 筛选
GET  /api/tasks/my           我的进行中事项
GET  /api/tasks/archived     我的已归档事项
GET  /api/tasks/statistics   统计汇总
GET  /api/tasks/{task_id}    事项详情（含操作历史）
POST /api/tasks              创建事项
PUT  /api/tasks/{task_id}    编辑描述性字段与角色分配

静态路径必须在 /{task_id} 之前注册。
"""

from datetime import datetime

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from trainops.core.models import Actor, ProjectStage

from ..deps import get_actor, get_task_service
from ..errors import success
from ..services.task_service import ProjectTaskService

router = APIRouter()


class _CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TaskCreateRequest(_CamelRequest):
    """创建事项请求体"""

    project_name: str = Field(min_length=1, description="项目名称")
    project_type: str = Field(min_length=1, description="项目类型")
    responsible_person_id: int = Field(ge=1, description="负责人")
    consultant_id: int = Field(ge=1, description="咨询部人员")
    market_manager_id: int = Field(ge=1, description="市场部经理")
    priority: int = Field(default=2, ge=1, le=3, description="优先级 1-3")
    start_time: datetime | None = None
    end_time: datetime | None = None
    remark: str | None = None


class TaskUpdateRequest(_CamelRequest):
    """编辑事项请求体（只提交需要修改的字段）"""

    project_name: str | None = Field(default=None, min_length=1)
    project_type: str | None = Field(default=None, min_length=1)
    responsible_person_id: int | None = Field(default=None, ge=1)
    consultant_id: int | None = Field(default=None, ge=1)
    market_manager_id: int | None = Field(default=None, ge=1)
    priority: int | None = Field(default=None, ge=1, le=3)
    start_time: datetime | None = None
    end_time: datetime | None = None
    remark: str | None = None


@router.get("/api/tasks")
async def list_tasks(
    stage: ProjectStage | None = Query(default=None, description="按阶段筛选"),
    is_archived: bool | None = Query(default=None, alias="isArchived"),
    service: ProjectTaskService = Depends(get_task_service),
):
    """查询事项列表，按创建时间倒序"""
    tasks = await service.list_tasks(stage, is_archived)
    return success(tasks)


@router.get("/api/tasks/my")
async def list_my_tasks(
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    tasks = await service.list_my_tasks(actor)
    return success(tasks)


@router.get("/api/tasks/archived")
async def list_archived_tasks(
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    tasks = await service.list_archived_tasks(actor)
    return success(tasks)


@router.get("/api/tasks/statistics")
async def get_statistics(
    service: ProjectTaskService = Depends(get_task_service),
):
    statistics = await service.get_statistics()
    return success(statistics)


@router.get("/api/tasks/{task_id}")
async def get_task_detail(
    task_id: int,
    service: ProjectTaskService = Depends(get_task_service),
):
    """查询事项详情，包含完整操作历史"""
    task = await service.get_task(task_id)
    return success(task)


@router.post("/api/tasks")
async def create_task(
    body: TaskCreateRequest,
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    """创建事项，返回 201"""
    task = await service.create_task(actor, **body.model_dump())
    return success(task, message="Project task created", status_code=201)


@router.put("/api/tasks/{task_id}")
async def update_task(
    task_id: int,
    body: TaskUpdateRequest = Body(...),
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    task = await service.update_task(task_id, actor, body.model_dump(exclude_unset=True))
    return success(task, message="Project task updated")
