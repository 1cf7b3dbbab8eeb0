"""Tests for performance insight synthesis."""

from taskboard.services.grouping import Bucket
from taskboard.services.insights import (
    avg_tasks_per_day,
    completion_rate,
    estimate_ratio,
    synthesize,
    time_accuracy,
)


def status_bucket(status, count, estimated=0.0, actual=0.0):
    return Bucket(status, count, {"totalEstimated": estimated, "totalActual": actual})


class TestCompletionRate:

    def test_share_of_completed(self):
        stats = [status_bucket("todo", 1), status_bucket("completed", 2)]
        assert completion_rate(stats) == 66.7

    def test_no_tasks(self):
        assert completion_rate([]) == 0


class TestTimeAccuracy:

    def test_overrun_is_symmetric_with_underrun(self):
        over = [status_bucket("completed", 1, estimated=10, actual=12.5)]
        under = [status_bucket("completed", 1, estimated=12.5, actual=10)]
        assert time_accuracy(over) == time_accuracy(under) == 80.0

    def test_sums_across_all_buckets(self):
        stats = [
            status_bucket("todo", 1, estimated=6, actual=0),
            status_bucket("completed", 2, estimated=4, actual=10),
        ]
        # 10 estimated, 10 actual overall
        assert time_accuracy(stats) == 100.0
        assert estimate_ratio(stats) == 100.0

    def test_stays_within_bounds(self):
        stats = [status_bucket("completed", 1, estimated=1, actual=50)]
        assert 0 <= time_accuracy(stats) <= 100
        assert estimate_ratio(stats) == 5000.0

    def test_zero_estimates(self):
        stats = [status_bucket("completed", 1, estimated=0, actual=5)]
        assert time_accuracy(stats) == 0
        assert estimate_ratio(stats) == 0


class TestAvgTasksPerDay:

    def test_mean_over_active_days(self):
        series = [Bucket("2026-10-01", 3), Bucket("2026-10-02", 1), Bucket("2026-10-05", 1)]
        assert avg_tasks_per_day(series) == 1.7

    def test_empty_series(self):
        assert avg_tasks_per_day([]) == 0


def test_synthesize_treats_missing_sections_as_empty():
    insights = synthesize(None, None)
    assert insights.to_dict() == {
        "timeAccuracy": 0.0,
        "estimateRatio": 0.0,
        "completionRate": 0.0,
        "avgTasksPerDay": 0.0,
    }


def test_synthesize_combines_sections():
    stats = [status_bucket("completed", 2, estimated=12, actual=11), status_bucket("todo", 2)]
    insights = synthesize(stats, [Bucket("2026-10-18", 2)])
    assert insights.completion_rate == 50.0
    assert insights.time_accuracy == 91.7
    assert insights.avg_tasks_per_day == 2.0
