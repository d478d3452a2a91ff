"""ProjectTaskService -- 项目事项阶段流转引擎

每个阶段操作的执行流程：
1. 获取事项级锁，读取事项及其历史
2. 校验当前阶段满足操作的前置阶段（不满足直接失败，不落盘）
3. 规划字段变更、目标阶段、历史记录和待发通知
4. 由办理人解析器重新计算 executor_id
5. 在同一 SQLite 事务内比较并交换写入事项行 + 追加历史
6. 释放锁后把通知交给分发器邮箱（非阻塞）
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import structlog
from pydantic import ValidationError
from trainops.core.config import get_super_admin_role
from trainops.core.exceptions import (
    ActorRequiredError,
    InvalidStateTransitionError,
    StageConflictError,
    TaskNotFoundError,
    WorkflowValidationError,
)
from trainops.core.executor import recompute_executor_id, resolve_executor_id
from trainops.core.history import HistoryBuilder, append_history
from trainops.core.models import (
    ACTION_REQUIRED_STAGE,
    NEXT_STAGE,
    REJECTION_EDGES,
    Actor,
    HistoryAction,
    NotificationMessage,
    NotificationSeverity,
    ProjectStage,
    ProjectTask,
    StageAction,
    validate_transition,
)
from trainops.core.statistics import TaskStatistics, summarize_tasks
from trainops.core.store import (
    StoreGroup,
    commit_stage_transition,
    create_task_record,
    update_task_record,
)

from .notification_dispatcher import NotificationDispatcher

log = structlog.get_logger()

REASSIGNED_BACK_COMMENT = (
    "Approval was rejected; the project has been sent back to teacher confirmation. "
    "Please confirm the teacher information again."
)

# update_task 允许修改的字段
EDITABLE_FIELDS: frozenset[str] = frozenset(
    {
        "project_name",
        "project_type",
        "priority",
        "start_time",
        "end_time",
        "remark",
        "responsible_person_id",
        "consultant_id",
        "market_manager_id",
    }
)


@dataclass
class _TaskLock:
    """事项级锁及其当前使用者计数"""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


@dataclass
class _TransitionPlan:
    """一次阶段操作的规划结果（尚未落盘）"""

    changes: dict[str, Any] = field(default_factory=dict)
    to_stage: ProjectStage | None = None
    notices: list[NotificationMessage] = field(default_factory=list)


def _require_bool(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise WorkflowValidationError(f"{name} must be a boolean")
    return value


def _error_details(error: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(item["loc"]), "msg": item["msg"], "type": item["type"]}
        for item in error.errors(include_url=False, include_context=False)
    ]


def _require_actor(actor: Any) -> Actor:
    if not isinstance(actor, Actor):
        raise ActorRequiredError("An authenticated actor is required")
    return actor


def _check_time_range(start: datetime | None, end: datetime | None) -> None:
    if start is None or end is None:
        return
    try:
        reversed_range = end < start
    except TypeError as e:
        raise WorkflowValidationError(
            "startTime and endTime must both carry a timezone or both omit it"
        ) from e
    if reversed_range:
        raise WorkflowValidationError("endTime must not be earlier than startTime")


def _notice(
    task: ProjectTask,
    recipient_id: int | None,
    title: str,
    body: str,
    severity: NotificationSeverity = NotificationSeverity.INFO,
) -> list[NotificationMessage]:
    """构建通知；接收人未分配时不发"""
    if recipient_id is None:
        return []
    return [
        NotificationMessage(
            task_id=task.id,
            recipient_id=recipient_id,
            title=title,
            body=body,
            severity=severity,
        )
    ]


def payment_recipients(task: ProjectTask, actor_id: int) -> list[int]:
    """收款完成通知的接收人：相关人员去重（保持顺序），排除操作人本人

    executor_id 取流转前的值。
    """
    recipients: list[int] = []
    for user_id in (
        task.responsible_person_id,
        task.consultant_id,
        task.market_manager_id,
        task.executor_id,
    ):
        if user_id is None or user_id == actor_id or user_id in recipients:
            continue
        recipients.append(user_id)
    return recipients


class ProjectTaskService:
    """项目事项业务服务 -- 阶段流转引擎 + 事项 CRUD"""

    def __init__(
        self,
        store_group: StoreGroup,
        dispatcher: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] | None = None,
        super_admin_role: str | None = None,
    ) -> None:
        self._stores = store_group
        self._dispatcher = dispatcher
        self._clock = clock or (lambda: datetime.now(UTC))
        self._super_admin_role = super_admin_role or get_super_admin_role()
        self._task_locks: dict[int, _TaskLock] = {}

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    async def get_task(self, task_id: int) -> ProjectTask:
        """查询事项详情（含操作历史）

        Raises:
            TaskNotFoundError: 事项不存在
        """
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        history = await self._stores.history_store.get_entries(task_id)
        return task.model_copy(update={"stage_history": history})

    async def list_tasks(
        self,
        stage: ProjectStage | None = None,
        is_archived: bool | None = None,
    ) -> list[ProjectTask]:
        """查询事项列表，支持按阶段和归档状态筛选"""
        tasks = await self._stores.task_store.list_tasks(stage, is_archived)
        return await self._with_history(tasks)

    async def list_my_tasks(self, actor: Actor) -> list[ProjectTask]:
        """查询操作人参与的进行中事项；超级管理员返回全部进行中事项"""
        actor = _require_actor(actor)
        if actor.has_role(self._super_admin_role):
            tasks = await self._stores.task_store.list_tasks(is_archived=False)
        else:
            tasks = await self._stores.task_store.list_tasks_for_user(
                actor.user_id, is_archived=False
            )
        return await self._with_history(tasks)

    async def list_archived_tasks(self, actor: Actor) -> list[ProjectTask]:
        """查询操作人参与的已归档事项；超级管理员返回全部已归档事项"""
        actor = _require_actor(actor)
        if actor.has_role(self._super_admin_role):
            tasks = await self._stores.task_store.list_tasks(is_archived=True)
        else:
            tasks = await self._stores.task_store.list_tasks_for_user(
                actor.user_id, is_archived=True
            )
        return await self._with_history(tasks)

    async def get_statistics(self, now: datetime | None = None) -> TaskStatistics:
        """全部事项的统计汇总"""
        tasks = await self._stores.task_store.list_tasks()
        return summarize_tasks(tasks, now or self._clock())

    async def _with_history(self, tasks: list[ProjectTask]) -> list[ProjectTask]:
        histories = await self._stores.history_store.get_entries_for_tasks(
            task.id for task in tasks
        )
        return [
            task.model_copy(update={"stage_history": histories.get(task.id, ())})
            for task in tasks
        ]

    # ------------------------------------------------------------------
    # 创建 / 编辑
    # ------------------------------------------------------------------

    async def create_task(
        self,
        actor: Actor,
        *,
        project_name: str,
        project_type: str,
        responsible_person_id: int,
        consultant_id: int,
        market_manager_id: int,
        priority: int = 2,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        remark: str | None = None,
    ) -> ProjectTask:
        """创建项目事项：初始阶段 customer_inquiry，历史为空

        Raises:
            WorkflowValidationError: 字段不合法
        """
        actor = _require_actor(actor)
        if not project_name or not project_name.strip():
            raise WorkflowValidationError("projectName must not be empty")
        if not project_type or not project_type.strip():
            raise WorkflowValidationError("projectType must not be empty")
        for name, value in (
            ("responsiblePersonId", responsible_person_id),
            ("consultantId", consultant_id),
            ("marketManagerId", market_manager_id),
        ):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise WorkflowValidationError(f"{name} must be a positive integer")
        _check_time_range(start_time, end_time)

        now = self._clock()
        try:
            draft = ProjectTask(
                id=0,
                project_name=project_name.strip(),
                project_type=project_type.strip(),
                priority=priority,
                start_time=start_time,
                end_time=end_time,
                remark=remark,
                responsible_person_id=responsible_person_id,
                consultant_id=consultant_id,
                market_manager_id=market_manager_id,
                current_stage=ProjectStage.CUSTOMER_INQUIRY,
                create_time=now,
                update_time=now,
            )
        except ValidationError as e:
            raise WorkflowValidationError(
                "Invalid project task", details=_error_details(e)
            ) from e
        draft.executor_id = resolve_executor_id(ProjectStage.CUSTOMER_INQUIRY, draft)

        async with self._stores.write_lock:
            task_id = await create_task_record(
                self._stores.conn, self._stores.task_store, draft
            )

        log.info(
            "project_task_created",
            task_id=task_id,
            operator_id=actor.user_id,
            executor_id=draft.executor_id,
        )
        return draft.model_copy(update={"id": task_id})

    async def update_task(
        self,
        task_id: int,
        actor: Actor,
        changes: dict[str, Any],
    ) -> ProjectTask:
        """编辑描述性字段与角色分配，不改变阶段和历史

        角色变化时按当前阶段重新计算办理人。

        Raises:
            TaskNotFoundError: 事项不存在
            WorkflowValidationError: 包含不可编辑字段或字段值不合法
            StageConflictError: 并发修改
        """
        actor = _require_actor(actor)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise WorkflowValidationError(
                f"Fields cannot be edited: {', '.join(sorted(unknown))}"
            )

        async with self._task_lock(task_id):
            task = await self.get_task(task_id)
            now = self._clock()
            try:
                merged = ProjectTask.model_validate(
                    {**task.model_dump(), **changes, "update_time": now}
                )
            except ValidationError as e:
                raise WorkflowValidationError(
                    "Invalid project task", details=_error_details(e)
                ) from e
            _check_time_range(merged.start_time, merged.end_time)

            columns = {name: getattr(merged, name) for name in changes}
            columns["update_time"] = now
            columns["executor_id"] = recompute_executor_id(
                task.current_stage, merged, task.executor_id
            )

            async with self._stores.write_lock:
                updated = await update_task_record(
                    self._stores.conn,
                    self._stores.task_store,
                    task_id=task_id,
                    expected_version=task.version,
                    changes=columns,
                )
            if not updated:
                raise StageConflictError(task_id, "update_task", task.current_stage.value)

        log.info(
            "project_task_updated",
            task_id=task_id,
            operator_id=actor.user_id,
            fields=sorted(changes),
        )
        return task.model_copy(update={**columns, "version": task.version + 1})

    # ------------------------------------------------------------------
    # 阶段操作
    # ------------------------------------------------------------------

    async def advance_stage(
        self,
        task_id: int,
        actor: Actor,
        comment: str | None = None,
    ) -> ProjectTask:
        """按线性顺序推进到下一阶段（历史记录在新阶段下）"""

        def plan(task: ProjectTask, history: HistoryBuilder, now: datetime):
            next_stage = NEXT_STAGE[task.current_stage]
            if next_stage is None:
                raise InvalidStateTransitionError(
                    task.id,
                    StageAction.ADVANCE_STAGE.value,
                    task.current_stage.value,
                    message=f"Task {task.id} is already completed",
                )
            history.add(next_stage, HistoryAction.ADVANCE_STAGE, comment)
            return _TransitionPlan(to_stage=next_stage)

        return await self._run_action(task_id, actor, StageAction.ADVANCE_STAGE, plan)

    async def upload_proposal(
        self,
        task_id: int,
        actor: Actor,
        attachment_ids: Iterable[int] | None = None,
        comment: str | None = None,
    ) -> ProjectTask:
        """方案申报阶段上传方案（不改变阶段）"""
        ids = list(attachment_ids or [])
        if any(isinstance(i, bool) or not isinstance(i, int) for i in ids):
            raise WorkflowValidationError("attachmentIds must be integers")

        def plan(task: ProjectTask, history: HistoryBuilder, now: datetime):
            history.add(
                task.current_stage,
                HistoryAction.UPLOAD_PROPOSAL,
                comment,
                {"attachmentIds": ids} if ids else None,
            )
            return _TransitionPlan(
                changes={
                    "proposal_upload_time": now,
                    "proposal_comment": comment,
                    "proposal_attachment_ids": ids,
                },
                notices=_notice(
                    task,
                    task.responsible_person_id,
                    "Project proposal uploaded",
                    f'The proposal for project "{task.project_name}" has been uploaded. '
                    "Please review it and follow up on customer confirmation.",
                ),
            )

        return await self._run_action(task_id, actor, StageAction.UPLOAD_PROPOSAL, plan)

    async def confirm_proposal(
        self,
        task_id: int,
        actor: Actor,
        approved: bool,
        comment: str | None = None,
    ) -> ProjectTask:
        """记录客户对方案的意见；同意则进入师资确定"""
        _require_bool("approved", approved)

        def plan(task: ProjectTask, history: HistoryBuilder, now: datetime):
            result = _TransitionPlan(
                changes={
                    "customer_approval_time": now,
                    "customer_approval_comment": comment,
                }
            )
            if not approved:
                history.add(
                    task.current_stage, HistoryAction.CUSTOMER_REJECTED_PROPOSAL, comment
                )
                return result
            history.add(
                task.current_stage, HistoryAction.CUSTOMER_APPROVED_PROPOSAL, comment
            )
            result.to_stage = ProjectStage.TEACHER_CONFIRMATION
            result.notices = _notice(
                task,
                task.consultant_id,
                "Teacher confirmation required",
                f'The customer approved the proposal for project "{task.project_name}". '
                "Please confirm the teacher.",
            )
            return result

        return await self._run_action(task_id, actor, StageAction.CONFIRM_PROPOSAL, plan)

    async def confirm_teacher(
        self,
        task_id: int,
        actor: Actor,
        teacher_info: dict[str, Any] | None = None,
        comment: str | None = None,
    ) -> ProjectTask:
        """确认授课老师，进入项目审批"""
        if teacher_info is not None and not isinstance(teacher_info, dict):
            raise WorkflowValidationError("teacherInfo must be an object")

        def plan(task: ProjectTask, history: HistoryBuilder, now: datetime):
            history.add(
                task.current_stage,
                HistoryAction.CONFIRM_TEACHER,
                comment,
                {"teacherInfo": teacher_info} if teacher_info else None,
            )
            return _TransitionPlan(
                changes={
                    "teacher_confirm_time": now,
                    "teacher_confirm_comment": comment,
                    "teacher_info": teacher_info,
                },
                to_stage=ProjectStage.PROJECT_APPROVAL,
                notices=_notice(
                    task,
                    task.market_manager_id,
                    "Project approval required",
                    f'The teacher for project "{task.project_name}" has been confirmed. '
                    "Please review the project for approval.",
                ),
            )

        return await self._run_action(task_id, actor, StageAction.CONFIRM_TEACHER, plan)

    async def approve_project(
        self,
        task_id: int,
        actor: Actor,
        approved: bool,
        comment: str | None = None,
    ) -> ProjectTask:
        """项目审批：通过进入合同签订，拒绝打回师资确定"""
        _require_bool("approved", approved)

        def plan(task: ProjectTask, history: HistoryBuilder, now: datetime):
            result = _TransitionPlan(
                changes={"approval_time": now, "approval_comment": comment}
            )
            if approved:
                history.add(task.current_stage, HistoryAction.APPROVAL_PASSED, comment)
                result.to_stage = ProjectStage.CONTRACT_SIGNING
                result.notices = _notice(
                    task,
                    task.consultant_id,
                    "Contract signing follow-up required",
                    f'Project "{task.project_name}" has been approved. '
                    "Please follow up with the customer on signing the contract.",
                )
                return result

            back_to = REJECTION_EDGES[task.current_stage]
            history.add(task.current_stage, HistoryAction.APPROVAL_REJECTED, comment)
            history.add(back_to, HistoryAction.REASSIGNED_BACK, REASSIGNED_BACK_COMMENT)
            result.to_stage = back_to
            result.notices = _notice(
                task,
                task.consultant_id,
                "Project sent back, teacher confirmation required",
                f'Project "{task.project_name}" was rejected and sent back to teacher '
                "confirmation. Please confirm the teacher information again. "
                f"Approval comment: {comment or 'none'}",
                NotificationSeverity.WARNING,
            )
            return result

        return await self._run_action(task_id, actor, StageAction.APPROVE_PROJECT, plan)

    async def confirm_contract(
        self,
        task_id: int,
        actor: Actor,
        signed: bool,
        comment: str | None = None,
    ) -> ProjectTask:
        """记录合同签订结果；已签进入项目执行"""
        _require_bool("signed", signed)

        def plan(task: ProjectTask, history: HistoryBuilder, now: datetime):
            result = _TransitionPlan(
                changes={"contract_sign_time": now, "contract_sign_comment": comment}
            )
            if not signed:
                history.add(task.current_stage, HistoryAction.CONTRACT_NOT_SIGNED, comment)
                return result
            history.add(task.current_stage, HistoryAction.CONTRACT_SIGNED, comment)
            result.to_stage = ProjectStage.PROJECT_EXECUTION
            result.notices = _notice(
                task,
                task.consultant_id,
                "Project execution started",
                f'The contract for project "{task.project_name}" has been signed. '
                "Please start following up on project execution.",
            )
            return result

        return await self._run_action(task_id, actor, StageAction.CONFIRM_CONTRACT, plan)

    async def confirm_completion(
        self,
        task_id: int,
        actor: Actor,
        completed: bool,
        comment: str | None = None,
    ) -> ProjectTask:
        """记录项目执行结果；完成进入项目结算"""
        _require_bool("completed", completed)

        def plan(task: ProjectTask, history: HistoryBuilder, now: datetime):
            result = _TransitionPlan(
                changes={
                    "project_completion_time": now,
                    "project_completion_comment": comment,
                }
            )
            if not completed:
                history.add(task.current_stage, HistoryAction.PROJECT_IN_PROGRESS, comment)
                return result
            history.add(task.current_stage, HistoryAction.PROJECT_COMPLETED, comment)
            result.to_stage = ProjectStage.PROJECT_SETTLEMENT
            result.notices = _notice(
                task,
                task.responsible_person_id,
                "Project settlement required",
                f'Project "{task.project_name}" has been completed. '
                "Please follow up on the customer payment.",
            )
            return result

        return await self._run_action(task_id, actor, StageAction.CONFIRM_COMPLETION, plan)

    async def confirm_payment(
        self,
        task_id: int,
        actor: Actor,
        received: bool,
        amount: Decimal | None = None,
        comment: str | None = None,
    ) -> ProjectTask:
        """记录收款结果；已收款则完成并归档，通知全部相关人员"""
        _require_bool("received", received)
        if amount is not None:
            try:
                amount = Decimal(str(amount))
            except ArithmeticError as e:
                raise WorkflowValidationError("amount must be a decimal number") from e
            if not amount.is_finite() or amount < 0:
                raise WorkflowValidationError("amount must be a non-negative number")

        def plan(task: ProjectTask, history: HistoryBuilder, now: datetime):
            result = _TransitionPlan(
                changes={
                    "payment_time": now,
                    "payment_comment": comment,
                    "payment_amount": amount,
                }
            )
            payload = {"amount": str(amount)} if amount is not None else None
            if not received:
                history.add(
                    task.current_stage, HistoryAction.PAYMENT_NOT_RECEIVED, comment, payload
                )
                return result

            history.add(task.current_stage, HistoryAction.PAYMENT_RECEIVED, comment, payload)
            result.to_stage = ProjectStage.COMPLETED
            result.changes.update(
                {
                    "is_completed": True,
                    "completion_time": now,
                    "is_archived": True,
                    "archive_time": now,
                }
            )
            for recipient_id in payment_recipients(task, actor.user_id):
                result.notices.extend(
                    _notice(
                        task,
                        recipient_id,
                        "Project completed and archived",
                        f'Payment for project "{task.project_name}" has been received. '
                        "The project is complete and has been archived. "
                        "Thank you for your participation!",
                        NotificationSeverity.SUCCESS,
                    )
                )
            return result

        return await self._run_action(task_id, actor, StageAction.CONFIRM_PAYMENT, plan)

    async def archive(
        self,
        task_id: int,
        actor: Actor,
        comment: str | None = None,
    ) -> ProjectTask:
        """手动归档（任意阶段，不改变阶段）；已归档时直接返回"""

        def plan(task: ProjectTask, history: HistoryBuilder, now: datetime):
            if task.is_archived:
                return None
            history.add(task.current_stage, HistoryAction.ARCHIVE, comment)
            return _TransitionPlan(changes={"is_archived": True, "archive_time": now})

        return await self._run_action(task_id, actor, StageAction.ARCHIVE, plan)

    # ------------------------------------------------------------------
    # 内部
    # ------------------------------------------------------------------

    async def _run_action(
        self,
        task_id: int,
        actor: Actor,
        action: StageAction,
        plan_fn: Callable[[ProjectTask, HistoryBuilder, datetime], _TransitionPlan | None],
    ) -> ProjectTask:
        """在事项级锁内执行：读取 -> 校验阶段 -> 规划 -> 原子提交"""
        actor = _require_actor(actor)
        async with self._task_lock(task_id):
            task = await self.get_task(task_id)
            required = ACTION_REQUIRED_STAGE[action]
            if required is not None and task.current_stage != required:
                log.info(
                    "stage_action_rejected",
                    task_id=task_id,
                    action=action.value,
                    current_stage=task.current_stage.value,
                    required_stage=required.value,
                )
                raise InvalidStateTransitionError(
                    task_id, action.value, task.current_stage.value
                )

            now = self._clock()
            history = HistoryBuilder(task.stage_history, actor, now)
            plan = plan_fn(task, history, now)
            if plan is None:
                return task

            new_stage = task.current_stage
            changes = dict(plan.changes)
            if plan.to_stage is not None:
                if not validate_transition(task.current_stage, plan.to_stage):
                    raise InvalidStateTransitionError(
                        task_id, action.value, task.current_stage.value
                    )
                new_stage = plan.to_stage
                changes["current_stage"] = new_stage
            changes["executor_id"] = recompute_executor_id(
                new_stage, task, task.executor_id
            )
            changes["update_time"] = now

            async with self._stores.write_lock:
                await commit_stage_transition(
                    self._stores.conn,
                    self._stores.task_store,
                    self._stores.history_store,
                    task_id=task_id,
                    action=action.value,
                    expected_stage=task.current_stage,
                    expected_version=task.version,
                    changes=changes,
                    entries=history.entries,
                )

            updated = task.model_copy(
                update={
                    **changes,
                    "version": task.version + 1,
                    "stage_history": append_history(task.stage_history, *history.entries),
                }
            )

        log.info(
            "stage_transition_committed",
            task_id=task_id,
            action=action.value,
            operator_id=actor.user_id,
            from_stage=task.current_stage.value,
            to_stage=updated.current_stage.value,
            history_length=len(updated.stage_history),
        )
        self._dispatch(plan.notices)
        return updated

    def _dispatch(self, notices: list[NotificationMessage]) -> None:
        """把通知交给分发器；任何失败都只记日志"""
        if self._dispatcher is None:
            return
        for notice in notices:
            try:
                self._dispatcher.notify(
                    notice.task_id,
                    notice.recipient_id,
                    notice.title,
                    notice.body,
                    notice.severity,
                )
            except Exception as e:
                log.warning(
                    "notification_handoff_failed",
                    task_id=notice.task_id,
                    recipient_id=notice.recipient_id,
                    error_type=type(e).__name__,
                )

    @asynccontextmanager
    async def _task_lock(self, task_id: int) -> AsyncIterator[None]:
        """事项级锁，序列化同一事项的读取-校验-写入

        最后一个使用者离开时移除锁，字典只保留正在被操作的事项。
        取锁与计数之间没有 await，不需要额外的 guard。
        """
        entry = self._task_locks.get(task_id)
        if entry is None:
            entry = self._task_locks[task_id] = _TaskLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._task_locks.pop(task_id, None)
