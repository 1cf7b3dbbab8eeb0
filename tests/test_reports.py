"""Tests for report generation and CSV rendering."""

from datetime import timedelta

import pytest

from taskboard.domain import TaskStatus
from taskboard.errors import InvalidInputError
from taskboard.services.reports import (
    Report,
    ReportFormat,
    ReportGenerator,
    ReportType,
    productivity_report,
    project_performance_report,
    render_csv,
    time_tracking_report,
)

from conftest import make_project, make_task


class TestRenderCsv:
    """CSV rendering"""

    def test_header_follows_first_record_key_order(self):
        text = render_csv([{"b": 1, "a": "x"}])
        assert text.splitlines()[0] == "b,a"

    def test_text_quoted_numbers_bare_nulls_empty(self):
        text = render_csv([{"name": 'say "hi", bye', "hours": 2.5, "due": None}])
        assert text == 'name,hours,due\n"say ""hi"", bye",2.5,""\n'

    def test_no_records_gives_empty_output(self):
        assert render_csv([]) == ""

    def test_custom_delimiter(self):
        assert render_csv([{"a": 1, "b": 2}], delimiter=";") == "a;b\n1;2\n"


class TestReportBuilders:

    def test_productivity_groups_by_iso_week(self, now):
        monday = now - timedelta(days=now.weekday())
        tasks = [
            make_task(status=TaskStatus.COMPLETED, completed_date=monday, actual_hours=2),
            make_task(status=TaskStatus.COMPLETED, completed_date=monday + timedelta(days=2),
                      actual_hours=4),
            make_task(status=TaskStatus.COMPLETED, completed_date=monday - timedelta(days=7)),
        ]
        records = productivity_report(tasks)

        year, week = monday.isocalendar()[:2]
        assert [r["week"] for r in records] == [week - 1, week]
        latest = records[-1]
        assert latest == {
            "week": week,
            "year": year,
            "tasksCompleted": 2,
            "totalHours": 6,
            "avgHoursPerTask": 3.0,
        }
        assert records[0]["avgHoursPerTask"] == 0.0

    def test_project_performance_on_time_flag(self, now):
        projects = [
            make_project("Early", id="a", status="completed",
                         due_date=now, completed_date=now - timedelta(days=1)),
            make_project("Late", id="b", status="completed",
                         due_date=now - timedelta(days=3), completed_date=now),
            make_project("Open", id="c"),
        ]
        tasks = [
            make_task(project_id="a", status=TaskStatus.COMPLETED, estimated_hours=2,
                      actual_hours=3),
            make_task(project_id="a", estimated_hours=1),
        ]
        records = {r["projectId"]: r for r in project_performance_report(projects, tasks)}

        assert records["a"]["onTimeCompletion"] is True
        assert records["b"]["onTimeCompletion"] is False
        assert records["c"]["onTimeCompletion"] is None
        assert records["a"]["totalTasks"] == 2
        assert records["a"]["completedTasks"] == 1
        assert records["a"]["totalEstimatedHours"] == 3
        assert records["a"]["totalActualHours"] == 3
        assert records["c"]["totalTasks"] == 0

    def test_time_tracking_variance(self):
        tasks = [
            make_task("Over", id="x", estimated_hours=4, actual_hours=5),
            make_task("Thirds", id="y", estimated_hours=3, actual_hours=2),
        ]
        records = {r["taskId"]: r for r in time_tracking_report(tasks)}
        assert records["x"]["variance"] == 1
        assert records["x"]["variancePercent"] == 25.0
        assert records["y"]["variancePercent"] == -33.33

    def test_time_tracking_skips_zero_estimates_and_untracked(self):
        tasks = [
            make_task("Zero", estimated_hours=0, actual_hours=3),
            make_task("Untracked", estimated_hours=2),
        ]
        assert time_tracking_report(tasks) == []


class TestReportGenerator:
    """Reports generated from a store"""

    def test_productivity(self, populated_store, now):
        report = ReportGenerator(populated_store).generate("productivity")
        completed_on = now - timedelta(days=1)
        assert report.records == [{
            "week": completed_on.isocalendar()[1],
            "year": completed_on.isocalendar()[0],
            "tasksCompleted": 2,
            "totalHours": 11,
            "avgHoursPerTask": 5.5,
        }]

    def test_date_range_filters_completions(self, populated_store, now):
        generator = ReportGenerator(populated_store)
        report = generator.generate(
            ReportType.PRODUCTIVITY,
            start_date=now - timedelta(days=30),
            end_date=now - timedelta(days=7),
        )
        assert report.records == []

    def test_project_performance(self, populated_store):
        report = ReportGenerator(populated_store).generate("project-performance")
        records = {r["projectId"]: r for r in report.records}
        assert records["p-web"]["totalTasks"] == 3
        assert records["p-web"]["completedTasks"] == 2
        assert records["p-web"]["totalEstimatedHours"] == 12
        assert records["p-empty"]["totalTasks"] == 0

    def test_time_tracking(self, populated_store):
        report = ReportGenerator(populated_store).generate("time-tracking")
        assert sorted(r["taskId"] for r in report.records) == ["t1", "t2"]

    def test_unknown_type(self, store):
        with pytest.raises(InvalidInputError) as exc:
            ReportGenerator(store).generate("velocity")
        assert exc.value.error == "Invalid report type"
        assert "productivity" in exc.value.message

    def test_inverted_range(self, store, now):
        with pytest.raises(InvalidInputError):
            ReportGenerator(store).generate("productivity", start_date=now,
                                            end_date=now - timedelta(days=1))

    def test_envelope(self, populated_store):
        report = ReportGenerator(populated_store).generate("time-tracking")
        data = report.to_dict()
        assert data["success"] is True
        assert data["reportType"] == "time-tracking"
        assert data["recordCount"] == 2
        assert data["generatedAt"].endswith("+00:00")
        assert report.filename == "time-tracking-report.csv"

    def test_csv_output(self, populated_store):
        report = ReportGenerator(populated_store).generate("time-tracking")
        lines = report.to_csv().splitlines()
        assert lines[0] == "taskId,title,estimatedHours,actualHours,variance,variancePercent"
        assert len(lines) == 3

    def test_empty_csv(self, store):
        report = Report(ReportType.PRODUCTIVITY, [])
        assert report.to_csv() == ""


def test_report_format_parse():
    assert ReportFormat.parse("CSV") == ReportFormat.CSV
    with pytest.raises(InvalidInputError):
        ReportFormat.parse("xml")
