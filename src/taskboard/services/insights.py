"""Performance insights derived from already computed dashboard sections.

The synthesizer never touches the store. Estimation figures are summed over
every status bucket rather than read from whichever bucket happens to come
first, so the result does not depend on bucket order.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence

from ..domain import TaskStatus
from .grouping import Bucket
from .metrics import percentage


@dataclass
class PerformanceInsights:
    """Derived ratios, each 0 when its denominator is 0.

    ``time_accuracy`` is min(actual, estimated) / max(actual, estimated) as a
    percentage: 100 means estimates matched reality, lower values mean either
    under- or over-estimation. ``estimate_ratio`` keeps the raw
    actual / estimated percentage, which exceeds 100 on overruns.
    """
    time_accuracy: float = 0.0
    estimate_ratio: float = 0.0
    completion_rate: float = 0.0
    avg_tasks_per_day: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeAccuracy": self.time_accuracy,
            "estimateRatio": self.estimate_ratio,
            "completionRate": self.completion_rate,
            "avgTasksPerDay": self.avg_tasks_per_day,
        }


def completion_rate(task_stats: Iterable[Bucket]) -> float:
    """Share of tasks whose status is completed, as a percentage."""
    total = 0
    completed = 0
    for bucket in task_stats:
        total += bucket.count
        if bucket.key == TaskStatus.COMPLETED.value:
            completed += bucket.count
    return round(percentage(completed, total), 1)


def _hour_totals(task_stats: Iterable[Bucket]):
    estimated = 0.0
    actual = 0.0
    for bucket in task_stats:
        estimated += bucket.get("totalEstimated") or 0.0
        actual += bucket.get("totalActual") or 0.0
    return estimated, actual


def time_accuracy(task_stats: Sequence[Bucket]) -> float:
    estimated, actual = _hour_totals(task_stats)
    if estimated <= 0 or actual <= 0:
        return 0.0
    return round(min(estimated, actual) / max(estimated, actual) * 100, 1)


def estimate_ratio(task_stats: Sequence[Bucket]) -> float:
    estimated, actual = _hour_totals(task_stats)
    if estimated <= 0 or actual <= 0:
        return 0.0
    return round(actual / estimated * 100, 1)


def avg_tasks_per_day(series: Sequence[Bucket]) -> float:
    """Mean completions over the days that had any."""
    if not series:
        return 0.0
    return round(sum(day.count for day in series) / len(series), 1)


def synthesize(task_stats: Optional[Sequence[Bucket]],
               series: Optional[Sequence[Bucket]]) -> PerformanceInsights:
    """Build insights; missing inputs count as empty."""
    task_stats = task_stats or []
    series = series or []
    return PerformanceInsights(
        time_accuracy=time_accuracy(task_stats),
        estimate_ratio=estimate_ratio(task_stats),
        completion_rate=completion_rate(task_stats),
        avg_tasks_per_day=avg_tasks_per_day(series),
    )
