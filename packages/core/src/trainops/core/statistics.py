"""项目事项统计 -- 只读汇总

summarize_tasks 是纯函数：只读取传入的事项，不修改任何状态。
"""

from collections import Counter
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import STATISTICS_MONTHS
from .models.enums import STAGE_ORDER, TERMINAL_STAGES
from .models.task import ProjectTask


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatisticsOverview(_CamelModel):
    total: int = 0
    active: int = 0
    completed: int = 0
    archived: int = 0
    completed_this_month: int = 0
    completed_this_year: int = 0
    completion_rate: float = Field(default=0.0, description="完成率（百分比，两位小数）")


class MonthlyCount(_CamelModel):
    month: str = Field(description="YYYY-MM")
    count: int = 0


class TaskStatistics(_CamelModel):
    overview: StatisticsOverview
    stage_distribution: dict[str, int] = Field(description="进行中事项按阶段计数")
    priority_distribution: dict[str, int] = Field(description="进行中事项按优先级计数")
    type_distribution: dict[str, int] = Field(description="已完成事项按项目类型计数")
    monthly_completions: list[MonthlyCount] = Field(description="近 12 个月完成数，按时间正序")


def _is_active(task: ProjectTask) -> bool:
    """进行中：未完成、未归档且不在终态阶段（advance_stage 进入 completed 不置 is_completed）"""
    return (
        not task.is_completed
        and not task.is_archived
        and task.current_stage not in TERMINAL_STAGES
    )


def _recent_months(now: datetime, count: int) -> list[str]:
    """返回截至 now 所在月的最近 count 个月，按时间正序"""
    year, month = now.year, now.month
    months: list[str] = []
    for _ in range(count):
        months.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(months))


def summarize_tasks(tasks: Iterable[ProjectTask], now: datetime) -> TaskStatistics:
    """汇总项目事项统计

    Args:
        tasks: 要统计的事项
        now: 统计基准时间（决定"本月""本年"和月度窗口）
    """
    items = list(tasks)
    overview = StatisticsOverview(total=len(items))

    stage_counts: Counter[str] = Counter()
    priority_counts: Counter[str] = Counter()
    type_counts: Counter[str] = Counter()
    month_counts: Counter[str] = Counter()

    for task in items:
        if task.is_archived:
            overview.archived += 1
        if _is_active(task):
            overview.active += 1
            stage_counts[task.current_stage.value] += 1
            priority_counts[str(task.priority)] += 1
        if not task.is_completed:
            continue

        overview.completed += 1
        type_counts[task.project_type] += 1
        finished_at = task.completion_time
        if finished_at is None:
            continue
        month_counts[f"{finished_at.year:04d}-{finished_at.month:02d}"] += 1
        if finished_at.year == now.year:
            overview.completed_this_year += 1
            if finished_at.month == now.month:
                overview.completed_this_month += 1

    if overview.total:
        overview.completion_rate = round(overview.completed / overview.total * 100, 2)

    return TaskStatistics(
        overview=overview,
        stage_distribution={
            stage.value: stage_counts[stage.value]
            for stage in sorted(STAGE_ORDER, key=STAGE_ORDER.__getitem__)
            if stage not in TERMINAL_STAGES
        },
        priority_distribution={
            str(priority): priority_counts[str(priority)] for priority in (1, 2, 3)
        },
        type_distribution=dict(type_counts),
        monthly_completions=[
            MonthlyCount(month=month, count=month_counts[month])
            for month in _recent_months(now, STATISTICS_MONTHS)
        ],
    )
