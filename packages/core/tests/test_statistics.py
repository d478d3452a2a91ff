"""统计汇总测试"""

from datetime import UTC, datetime

from trainops.core.models import STAGE_ORDER, ProjectStage
from trainops.core.statistics import summarize_tasks

NOW = datetime(2025, 6, 15, 9, 30, tzinfo=UTC)


def _completed(make_task, finished_at: datetime, project_type: str = "public_course"):
    return make_task(
        current_stage=ProjectStage.COMPLETED,
        is_completed=True,
        is_archived=True,
        completion_time=finished_at,
        archive_time=finished_at,
        project_type=project_type,
    )


class TestSummarizeTasks:
    def test_empty(self):
        stats = summarize_tasks([], NOW)
        assert stats.overview.total == 0
        assert stats.overview.completion_rate == 0.0
        assert len(stats.monthly_completions) == 12
        assert stats.monthly_completions[-1].month == "2025-06"
        assert stats.monthly_completions[0].month == "2024-07"

    def test_overview_counts(self, make_task):
        tasks = [
            make_task(),
            make_task(current_stage=ProjectStage.PROJECT_APPROVAL, priority=1),
            make_task(is_archived=True, archive_time=NOW),
            _completed(make_task, datetime(2025, 6, 2, tzinfo=UTC)),
            _completed(make_task, datetime(2025, 2, 10, tzinfo=UTC), "corporate_training"),
            _completed(make_task, datetime(2024, 12, 1, tzinfo=UTC)),
        ]
        stats = summarize_tasks(tasks, NOW)

        overview = stats.overview
        assert overview.total == 6
        assert overview.active == 2
        assert overview.completed == 3
        assert overview.archived == 4
        assert overview.completed_this_month == 1
        assert overview.completed_this_year == 2
        assert overview.completion_rate == 50.0

        assert stats.stage_distribution["customer_inquiry"] == 1
        assert stats.stage_distribution["project_approval"] == 1
        assert "completed" not in stats.stage_distribution
        assert stats.priority_distribution == {"1": 1, "2": 1, "3": 0}
        assert stats.type_distribution == {"public_course": 2, "corporate_training": 1}

        months = {m.month: m.count for m in stats.monthly_completions}
        assert months["2025-06"] == 1
        assert months["2025-02"] == 1
        assert months["2024-12"] == 1

    def test_advanced_to_completed_not_active(self, make_task):
        tasks = [
            make_task(current_stage=ProjectStage.COMPLETED),
            make_task(current_stage=ProjectStage.CONTRACT_SIGNING),
        ]
        stats = summarize_tasks(tasks, NOW)

        assert stats.overview.active == 1
        assert sum(stats.stage_distribution.values()) == stats.overview.active

    def test_stage_distribution_in_workflow_order(self, make_task):
        stats = summarize_tasks([make_task()], NOW)
        stages = [ProjectStage(name) for name in stats.stage_distribution]
        assert stages == sorted(stages, key=STAGE_ORDER.__getitem__)
        assert stages[0] is ProjectStage.CUSTOMER_INQUIRY
        assert stages[-1] is ProjectStage.PROJECT_SETTLEMENT

    def test_serializes_camel_case(self, make_task):
        data = summarize_tasks([make_task()], NOW).model_dump(by_alias=True, mode="json")
        assert "completedThisMonth" in data["overview"]
        assert "stageDistribution" in data
        assert "monthlyCompletions" in data

    def test_does_not_mutate_input(self, make_task):
        task = make_task()
        before = task.model_dump()
        summarize_tasks([task], NOW)
        assert task.model_dump() == before
