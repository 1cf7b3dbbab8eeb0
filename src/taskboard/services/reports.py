"""
Parameterized reports over tasks and projects.

Three report types produce a flat list of records:
- productivity: completions per ISO week
- project-performance: task and hour totals per project
- time-tracking: estimate variance per task

Records render as JSON (the default) or CSV.
"""

import csv
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from io import StringIO
from typing import Any, Dict, Iterable, List, Optional

from ..domain import Project, Task
from ..errors import InvalidInputError
from ..utils.datetime import now_utc, to_iso_string
from .grouping import average_of, group_by, sum_of
from .metrics import percentage

logger = logging.getLogger(__name__)


class ReportType(Enum):
    """Available report types"""
    PRODUCTIVITY = "productivity"
    PROJECT_PERFORMANCE = "project-performance"
    TIME_TRACKING = "time-tracking"

    @classmethod
    def parse(cls, value: str) -> "ReportType":
        try:
            return cls(value)
        except ValueError:
            raise InvalidInputError(
                f"Unknown report type '{value}'",
                [t.value for t in cls],
                error="Invalid report type",
            ) from None


class ReportFormat(Enum):
    """Report output formats"""
    JSON = "json"
    CSV = "csv"

    @classmethod
    def parse(cls, value: str) -> "ReportFormat":
        try:
            return cls(value.lower())
        except (ValueError, AttributeError):
            raise InvalidInputError(
                f"Unknown report format '{value}'",
                [f.value for f in cls],
                error="Invalid report format",
            ) from None


@dataclass
class Report:
    """A generated report and its records."""
    report_type: ReportType
    records: List[Dict[str, Any]]
    generated_at: datetime = field(default_factory=now_utc)

    @property
    def filename(self) -> str:
        return f"{self.report_type.value}-report.csv"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "reportType": self.report_type.value,
            "data": self.records,
            "generatedAt": to_iso_string(self.generated_at),
            "recordCount": len(self.records),
        }

    def to_csv(self) -> str:
        return render_csv(self.records)


# ============================================================================
# Rendering
# ============================================================================

def _csv_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return to_iso_string(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return value


def render_csv(records: List[Dict[str, Any]], delimiter: str = ",") -> str:
    """Render records as CSV text.

    The header is the key order of the first record. Text cells are quoted,
    numbers and booleans are written bare. No records gives an empty string.
    """
    if not records:
        return ""

    headers = list(records[0].keys())
    output = StringIO()

    header_writer = csv.writer(output, delimiter=delimiter, lineterminator="\n")
    header_writer.writerow(headers)

    writer = csv.writer(
        output,
        delimiter=delimiter,
        quoting=csv.QUOTE_NONNUMERIC,
        lineterminator="\n",
    )
    for record in records:
        writer.writerow([_csv_cell(record.get(h)) for h in headers])

    return output.getvalue()


# ============================================================================
# Report builders
# ============================================================================

def productivity_report(tasks: Iterable[Task]) -> List[Dict[str, Any]]:
    """Completed tasks per ISO week, in chronological order."""
    buckets = group_by(
        (t for t in tasks if t.completed_date is not None),
        key=lambda t: tuple(t.completed_date.isocalendar())[:2],
        aggregations={
            "totalHours": sum_of(lambda t: t.actual_hours),
            "avgHoursPerTask": average_of(lambda t: t.actual_hours),
        },
        sort_key=lambda b: b.key,
    )
    return [
        {
            "week": b.key[1],
            "year": b.key[0],
            "tasksCompleted": b.count,
            "totalHours": b["totalHours"],
            "avgHoursPerTask": round(b["avgHoursPerTask"] or 0.0, 2),
        }
        for b in buckets
    ]


def project_performance_report(projects: Iterable[Project],
                               tasks: Iterable[Task]) -> List[Dict[str, Any]]:
    """Per project task counts, hour totals and on-time completion.

    ``onTimeCompletion`` is None unless the project has both a completed and
    a due date.
    """
    per_project = {
        b.key: b
        for b in group_by(
            (t for t in tasks if t.project_id is not None),
            key=lambda t: t.project_id,
            aggregations={
                "completed": sum_of(lambda t: 1 if t.is_completed else 0),
                "estimated": sum_of(lambda t: t.estimated_hours),
                "actual": sum_of(lambda t: t.actual_hours),
            },
        )
    }

    records = []
    for project in projects:
        bucket = per_project.get(project.id)
        on_time = None
        if project.completed_date is not None and project.due_date is not None:
            on_time = project.completed_date <= project.due_date
        records.append({
            "projectId": project.id,
            "name": project.name,
            "status": project.status.value,
            "startDate": to_iso_string(project.start_date),
            "dueDate": to_iso_string(project.due_date),
            "completedDate": to_iso_string(project.completed_date),
            "totalTasks": bucket.count if bucket else 0,
            "completedTasks": int(bucket["completed"]) if bucket else 0,
            "totalEstimatedHours": bucket["estimated"] if bucket else 0.0,
            "totalActualHours": bucket["actual"] if bucket else 0.0,
            "onTimeCompletion": on_time,
        })
    return records


def time_tracking_report(tasks: Iterable[Task]) -> List[Dict[str, Any]]:
    """Estimate variance per task that tracks both estimate and actual.

    Tasks estimated at zero hours have no meaningful percentage and are
    left out.
    """
    records = []
    skipped = 0
    for task in tasks:
        if not task.has_time_tracking:
            continue
        if task.estimated_hours == 0:
            skipped += 1
            continue
        variance = task.actual_hours - task.estimated_hours
        records.append({
            "taskId": task.id,
            "title": task.title,
            "estimatedHours": task.estimated_hours,
            "actualHours": task.actual_hours,
            "variance": round(variance, 2),
            "variancePercent": round(percentage(variance, task.estimated_hours), 2),
        })
    if skipped:
        logger.debug(f"Time-tracking report skipped {skipped} zero-estimate tasks")
    return records


class ReportGenerator:
    """Dispatches report requests to the matching builder."""

    def __init__(self, store):
        self.store = store

    def generate(self, report_type: ReportType,
                 start_date: Optional[datetime] = None,
                 end_date: Optional[datetime] = None) -> Report:
        """Generate a report

        Args:
            report_type: Which report to build
            start_date: Inclusive lower bound on completed date
            end_date: Inclusive upper bound on completed date

        Raises:
            InvalidInputError: If the date range is inverted
        """
        if isinstance(report_type, str):
            report_type = ReportType.parse(report_type)
        if start_date and end_date and start_date > end_date:
            raise InvalidInputError("startDate must not be after endDate")

        if report_type == ReportType.PRODUCTIVITY:
            tasks = self.store.list_tasks(
                completed_only=True, completed_from=start_date, completed_to=end_date
            )
            records = productivity_report(tasks)
        elif report_type == ReportType.PROJECT_PERFORMANCE:
            projects = self.store.list_projects()
            tasks = self.store.list_tasks(project_ids=[p.id for p in projects]) if projects else []
            records = project_performance_report(projects, tasks)
        else:
            tasks = self.store.list_tasks(
                timed_only=True, completed_from=start_date, completed_to=end_date
            )
            records = time_tracking_report(tasks)

        logger.info(f"Generated {report_type.value} report with {len(records)} records")
        return Report(report_type, records)
