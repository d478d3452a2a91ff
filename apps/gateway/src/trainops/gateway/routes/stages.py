"""阶段流转路由

POST /api/tasks/{task_id}/<action>，操作人来自认证请求头，
请求体只携带业务参数。阶段不满足时返回 400 + code 2101。
"""

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool
from pydantic.alias_generators import to_camel
from trainops.core.models import Actor

from ..deps import get_actor, get_task_service
from ..errors import success
from ..services.task_service import ProjectTaskService

router = APIRouter()


class _StageRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    comment: str | None = Field(
        default=None,
        validation_alias=AliasChoices("comment", "remark"),
        description="备注",
    )


class AdvanceStageRequest(_StageRequest):
    pass


class UploadProposalRequest(_StageRequest):
    attachment_ids: list[int] = Field(default_factory=list, description="方案附件 ID")


class ConfirmProposalRequest(_StageRequest):
    approved: StrictBool


class ConfirmTeacherRequest(_StageRequest):
    teacher_info: dict[str, Any] | None = Field(default=None, description="师资信息")


class ApproveProjectRequest(_StageRequest):
    approved: StrictBool


class ConfirmContractRequest(_StageRequest):
    signed: StrictBool


class ConfirmCompletionRequest(_StageRequest):
    completed: StrictBool


class ConfirmPaymentRequest(_StageRequest):
    received: StrictBool
    amount: Decimal | None = Field(default=None, ge=0, description="收款金额")


class ArchiveRequest(_StageRequest):
    pass


@router.post("/api/tasks/{task_id}/advance-stage")
async def advance_stage(
    task_id: int,
    body: AdvanceStageRequest | None = None,
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    """推进到下一阶段"""
    body = body or AdvanceStageRequest()
    task = await service.advance_stage(task_id, actor, body.comment)
    return success(task, message="Stage advanced")


@router.post("/api/tasks/{task_id}/upload-proposal")
async def upload_proposal(
    task_id: int,
    body: UploadProposalRequest,
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    task = await service.upload_proposal(task_id, actor, body.attachment_ids, body.comment)
    return success(task, message="Proposal uploaded")


@router.post("/api/tasks/{task_id}/confirm-proposal")
async def confirm_proposal(
    task_id: int,
    body: ConfirmProposalRequest,
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    task = await service.confirm_proposal(task_id, actor, body.approved, body.comment)
    return success(task, message="Proposal confirmation recorded")


@router.post("/api/tasks/{task_id}/confirm-teacher")
async def confirm_teacher(
    task_id: int,
    body: ConfirmTeacherRequest,
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    task = await service.confirm_teacher(task_id, actor, body.teacher_info, body.comment)
    return success(task, message="Teacher confirmed")


@router.post("/api/tasks/{task_id}/approve")
async def approve_project(
    task_id: int,
    body: ApproveProjectRequest,
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    task = await service.approve_project(task_id, actor, body.approved, body.comment)
    return success(task, message="Approval recorded")


@router.post("/api/tasks/{task_id}/confirm-contract")
async def confirm_contract(
    task_id: int,
    body: ConfirmContractRequest,
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    task = await service.confirm_contract(task_id, actor, body.signed, body.comment)
    return success(task, message="Contract status recorded")


@router.post("/api/tasks/{task_id}/confirm-completion")
async def confirm_completion(
    task_id: int,
    body: ConfirmCompletionRequest,
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    task = await service.confirm_completion(task_id, actor, body.completed, body.comment)
    return success(task, message="Completion status recorded")


@router.post("/api/tasks/{task_id}/confirm-payment")
async def confirm_payment(
    task_id: int,
    body: ConfirmPaymentRequest,
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    task = await service.confirm_payment(
        task_id, actor, body.received, body.amount, body.comment
    )
    return success(task, message="Payment status recorded")


@router.post("/api/tasks/{task_id}/archive")
async def archive_task(
    task_id: int,
    body: ArchiveRequest | None = None,
    actor: Actor = Depends(get_actor),
    service: ProjectTaskService = Depends(get_task_service),
):
    body = body or ArchiveRequest()
    task = await service.archive(task_id, actor, body.comment)
    return success(task, message="Project task archived")
