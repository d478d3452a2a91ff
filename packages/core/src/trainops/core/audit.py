"""不变量巡检模块

读取全部项目事项及其历史，校验办理人、历史序号和完成/归档标记的一致性。
只读，不修改任何数据。
"""

import time
from dataclasses import dataclass

import structlog

from .executor import resolve_executor_id
from .models.enums import TERMINAL_STAGES, ProjectStage
from .models.task import ProjectTask
from .store.protocols import StageHistoryStore, TaskStore

log = structlog.get_logger()


@dataclass(frozen=True)
class InvariantViolation:
    task_id: int
    rule: str
    detail: str


def check_task(task: ProjectTask) -> list[InvariantViolation]:
    """校验单个事项（需已加载 stage_history）"""
    violations: list[InvariantViolation] = []

    if task.current_stage not in TERMINAL_STAGES:
        expected = resolve_executor_id(task.current_stage, task)
        if task.executor_id != expected:
            violations.append(
                InvariantViolation(
                    task.id,
                    "executor",
                    f"executor_id={task.executor_id}, expected {expected} "
                    f"for stage {task.current_stage}",
                )
            )

    for position, entry in enumerate(task.stage_history, start=1):
        if entry.seq != position:
            violations.append(
                InvariantViolation(
                    task.id,
                    "history_seq",
                    f"entry at position {position} has seq {entry.seq}",
                )
            )
            break

    for previous, entry in zip(task.stage_history, task.stage_history[1:]):
        if entry.timestamp < previous.timestamp:
            violations.append(
                InvariantViolation(
                    task.id,
                    "history_order",
                    f"seq {entry.seq} is older than seq {previous.seq}",
                )
            )
            break

    if task.is_completed:
        if task.current_stage != ProjectStage.COMPLETED:
            violations.append(
                InvariantViolation(
                    task.id,
                    "completed_flag",
                    f"is_completed set while in stage {task.current_stage}",
                )
            )
        if not task.is_archived:
            violations.append(
                InvariantViolation(
                    task.id,
                    "archived_flag",
                    "completed through payment but not archived",
                )
            )
        if task.completion_time is None:
            violations.append(
                InvariantViolation(task.id, "completion_time", "completion_time missing")
            )

    if task.is_archived and task.archive_time is None:
        violations.append(
            InvariantViolation(task.id, "archive_time", "archive_time missing")
        )

    return violations


async def audit_all(
    task_store: TaskStore,
    history_store: StageHistoryStore,
) -> list[InvariantViolation]:
    """巡检全部事项

    Returns:
        发现的违规列表（为空表示一致）
    """
    start_time = time.monotonic()

    tasks = await task_store.list_tasks()
    histories = await history_store.get_entries_for_tasks(task.id for task in tasks)

    await log.ainfo("invariant_audit_started", task_count=len(tasks))

    violations: list[InvariantViolation] = []
    for task in tasks:
        loaded = task.model_copy(update={"stage_history": histories.get(task.id, ())})
        violations.extend(check_task(loaded))

    elapsed_ms = int((time.monotonic() - start_time) * 1000)
    await log.ainfo(
        "invariant_audit_completed",
        task_count=len(tasks),
        violation_count=len(violations),
        elapsed_ms=elapsed_ms,
    )
    return violations
