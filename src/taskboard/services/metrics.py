"""Metric calculators behind the dashboard.

Each calculator is a pure function over entity lists, paired with a
``MetricsCalculator`` method that performs the store read(s) for it:

- Status rollups for tasks and projects
- Daily productivity time-series
- Priority x status cross-tabulation
- Overdue analysis
- Project progress rollup (outer join of projects to tasks)
- Recent activity feed (left join of tasks to projects)

Percentages are guarded against empty denominators and resolve to 0.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..domain import (
    PROJECT_STATUS_ORDER,
    TASK_STATUS_ORDER,
    Priority,
    Project,
    Task,
    TaskStatus,
)
from ..utils.datetime import max_utc, to_iso_string
from .grouping import Bucket, average_of, conditional_average, group_by, sum_of

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400

CLOSED_STATUSES = (TaskStatus.COMPLETED, TaskStatus.CANCELLED)

_TASK_STATUS_RANK = {s.value: i for i, s in enumerate(TASK_STATUS_ORDER)}
_PROJECT_STATUS_RANK = {s.value: i for i, s in enumerate(PROJECT_STATUS_ORDER)}


def _priority_rank(value: str) -> int:
    return Priority(value).rank


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def percentage(part: float, whole: float) -> float:
    """``part / whole * 100``, or 0 when ``whole`` is 0."""
    if not whole:
        return 0.0
    return part / whole * 100


# ============================================================================
# Result types
# ============================================================================

@dataclass
class StatusCount:
    status: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "count": self.count}


@dataclass
class PriorityBreakdown:
    """One row of the priority x status cross-tab."""
    priority: str
    total: int
    status_breakdown: List[StatusCount] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "priority": self.priority,
            "total": self.total,
            "statusBreakdown": [s.to_dict() for s in self.status_breakdown],
        }


@dataclass
class ProgressSummary:
    """Completion progress of one project."""
    project_id: str
    name: str
    status: str
    priority: str
    due_date: Optional[datetime]
    total_tasks: int = 0
    completed_tasks: int = 0
    progress_percentage: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "name": self.name,
            "status": self.status,
            "priority": self.priority,
            "dueDate": to_iso_string(self.due_date),
            "totalTasks": self.total_tasks,
            "completedTasks": self.completed_tasks,
            "progressPercentage": self.progress_percentage,
        }


@dataclass
class ActivityEntry:
    """A recently touched task with its project name denormalized."""
    task_id: str
    title: str
    status: str
    priority: str
    updated_at: datetime
    project_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taskId": self.task_id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority,
            "updatedAt": to_iso_string(self.updated_at),
            "projectName": self.project_name,
        }


# ============================================================================
# Pure calculators
# ============================================================================

def task_status_rollup(tasks: Iterable[Task]) -> List[Bucket]:
    """Per task status: count, estimated/actual hour totals, mean variance."""
    return group_by(
        tasks,
        key=lambda t: t.status.value,
        aggregations={
            "totalEstimated": sum_of(lambda t: t.estimated_hours),
            "totalActual": sum_of(lambda t: t.actual_hours),
            "avgVariance": conditional_average(
                lambda t: t.has_time_tracking,
                lambda t: t.actual_hours - t.estimated_hours,
            ),
        },
        sort_key=lambda b: _TASK_STATUS_RANK[b.key],
    )


def project_status_rollup(projects: Iterable[Project]) -> List[Bucket]:
    """Per project status: count and mean duration of finished projects."""
    return group_by(
        projects,
        key=lambda p: p.status.value,
        aggregations={
            "avgDurationDays": conditional_average(
                lambda p: p.start_date is not None and p.completed_date is not None,
                lambda p: (p.completed_date - p.start_date).total_seconds() / SECONDS_PER_DAY,
            ),
        },
        sort_key=lambda b: _PROJECT_STATUS_RANK[b.key],
    )


def productivity_series(tasks: Iterable[Task], since: datetime) -> List[Bucket]:
    """Completions per calendar day for tasks created since ``since``.

    Days are keyed by the UTC date of ``completed_date`` and returned in
    ascending order. No completions yields an empty list.
    """
    window = [
        t for t in tasks
        if t.completed_date is not None and t.created_at >= since
    ]
    return group_by(
        window,
        key=lambda t: t.completed_date.date().isoformat(),
        aggregations={
            "hoursTracked": sum_of(lambda t: t.actual_hours),
            "avgCompletionHours": average_of(
                lambda t: _hours_between(t.created_at, t.completed_date)
            ),
        },
        sort_key=lambda b: b.key,
    )


def priority_distribution(tasks: Iterable[Task]) -> List[PriorityBreakdown]:
    """Cross-tabulate priority against status.

    Cells are counted per (priority, status) pair, then regrouped by
    priority. Each priority present in the input appears exactly once, and
    its total equals the sum of its cells.
    """
    cells = group_by(tasks, key=lambda t: (t.priority.value, t.status.value))
    rows = group_by(
        cells,
        key=lambda cell: cell.key[0],
        aggregations={"total": sum_of(lambda cell: cell.count)},
        sort_key=lambda b: _priority_rank(b.key),
    )

    breakdown: Dict[str, List[StatusCount]] = {}
    for cell in cells:
        priority, status = cell.key
        breakdown.setdefault(priority, []).append(StatusCount(status, cell.count))

    return [
        PriorityBreakdown(
            priority=row.key,
            total=int(row["total"]),
            status_breakdown=sorted(
                breakdown[row.key], key=lambda s: _TASK_STATUS_RANK[s.status]
            ),
        )
        for row in rows
    ]


def overdue_analysis(tasks: Iterable[Task], now: datetime) -> List[Bucket]:
    """Open tasks past their due date, per priority.

    ``now`` must be captured once by the caller; it drives both the filter
    and the age so the two can never disagree.
    """
    overdue = [t for t in tasks if t.is_overdue(now)]
    return group_by(
        overdue,
        key=lambda t: t.priority.value,
        aggregations={
            "avgOverdueDays": average_of(
                lambda t: (now - t.due_date).total_seconds() / SECONDS_PER_DAY
            ),
        },
        sort_key=lambda b: _priority_rank(b.key),
    )


def project_progress(projects: Iterable[Project], tasks: Iterable[Task]) -> List[ProgressSummary]:
    """Outer join projects to their tasks and compute completion.

    Projects without tasks are kept with zero progress. Output is ordered by
    due date, undated projects last, then by name.
    """
    per_project = {
        b.key: b
        for b in group_by(
            (t for t in tasks if t.project_id is not None),
            key=lambda t: t.project_id,
            aggregations={"completed": sum_of(lambda t: 1 if t.is_completed else 0)},
        )
    }

    summaries = []
    for project in projects:
        bucket = per_project.get(project.id)
        total = bucket.count if bucket else 0
        completed = int(bucket["completed"]) if bucket else 0
        summaries.append(ProgressSummary(
            project_id=project.id,
            name=project.name,
            status=project.status.value,
            priority=project.priority.value,
            due_date=project.due_date,
            total_tasks=total,
            completed_tasks=completed,
            progress_percentage=percentage(completed, total),
        ))

    summaries.sort(key=lambda s: (s.due_date is None, s.due_date or max_utc(), s.name))
    return summaries


def recent_activity(
    tasks: Iterable[Task],
    projects_by_id: Mapping[str, Project],
    since: datetime,
    limit: int = 20,
) -> List[ActivityEntry]:
    """Most recently updated tasks within the window, newest first.

    Missing or dangling project references yield an empty project name.
    """
    recent = sorted(
        (t for t in tasks if t.updated_at >= since),
        key=lambda t: t.updated_at,
        reverse=True,
    )[:limit]

    entries = []
    for task in recent:
        project = projects_by_id.get(task.project_id) if task.project_id else None
        entries.append(ActivityEntry(
            task_id=task.id,
            title=task.title,
            status=task.status.value,
            priority=task.priority.value,
            updated_at=task.updated_at,
            project_name=project.name if project else "",
        ))
    return entries


# ============================================================================
# Store-backed calculator
# ============================================================================

class MetricsCalculator:
    """Runs each calculator against one store read.

    Every method is synchronous and side-effect free; the dashboard engine
    runs them concurrently in worker threads.
    """

    def __init__(self, store):
        self.store = store

    def task_stats(self) -> List[Bucket]:
        return task_status_rollup(self.store.list_tasks())

    def project_stats(self) -> List[Bucket]:
        return project_status_rollup(self.store.list_projects())

    def productivity(self, since: datetime) -> List[Bucket]:
        tasks = self.store.list_tasks(created_since=since, completed_only=True)
        return productivity_series(tasks, since)

    def priority_distribution(self) -> List[PriorityBreakdown]:
        return priority_distribution(self.store.list_tasks())

    def overdue(self, now: datetime) -> List[Bucket]:
        tasks = self.store.list_tasks(due_before=now, exclude_statuses=CLOSED_STATUSES)
        return overdue_analysis(tasks, now)

    def project_progress(self) -> List[ProgressSummary]:
        projects = self.store.list_projects()
        if not projects:
            return []
        tasks = self.store.list_tasks(project_ids=[p.id for p in projects])
        return project_progress(projects, tasks)

    def recent_activity(self, since: datetime, limit: int = 20) -> List[ActivityEntry]:
        tasks = self.store.list_tasks(
            updated_since=since, order_by="updated_at", descending=True, limit=limit
        )
        projects = self.store.get_projects(t.project_id for t in tasks if t.project_id)
        return recent_activity(tasks, projects, since, limit)

    def totals(self) -> Dict[str, int]:
        return {
            "totalProjects": self.store.count_projects(),
            "totalTasks": self.store.count_tasks(),
        }
