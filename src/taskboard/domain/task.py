"""Task data model for Taskboard."""

import secrets
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.datetime import now_utc, ensure_aware, parse_datetime, to_iso_string


class Priority(Enum):
    """Priority levels shared by tasks and projects."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Sort rank, most pressing first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.URGENT: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


class TaskStatus(Enum):
    """Task lifecycle states."""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    REVIEW = "review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_closed(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


# Lifecycle order used when listing statuses
TASK_STATUS_ORDER = list(TaskStatus)


def new_id() -> str:
    """Generate a 24 character hex identifier."""
    return secrets.token_hex(12)


@dataclass
class Note:
    """Timestamped comment attached to a task."""
    content: str
    created_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        self.created_at = ensure_aware(self.created_at)

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "createdAt": to_iso_string(self.created_at)}


@dataclass
class Task:
    """A unit of work, optionally filed under a project.

    ``project_id`` is a weak reference: the project may not exist.
    ``completed_date`` is maintained by the store and is only set while the
    status is ``completed``.
    """

    title: str
    id: str = field(default_factory=new_id)
    description: str = ""

    status: TaskStatus = TaskStatus.TODO
    priority: Priority = Priority.MEDIUM

    project_id: Optional[str] = None
    assignee: Optional[str] = None

    due_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None

    # Time tracking, in hours
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None

    tags: List[str] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)

    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = TaskStatus(self.status)
        if isinstance(self.priority, str):
            self.priority = Priority(self.priority)

        self.due_date = ensure_aware(self.due_date)
        self.completed_date = ensure_aware(self.completed_date)
        self.created_at = ensure_aware(self.created_at)
        self.updated_at = ensure_aware(self.updated_at)

        # Tags behave as a set but keep first-seen order
        self.tags = list(dict.fromkeys(tag.strip() for tag in self.tags if tag.strip()))
        self.notes = [Note(**n) if isinstance(n, dict) else n for n in self.notes]

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def is_overdue(self, now: datetime) -> bool:
        """Whether the task is past due and still open at ``now``."""
        if self.due_date is None or self.status.is_closed:
            return False
        return self.due_date < now

    @property
    def has_time_tracking(self) -> bool:
        return self.estimated_hours is not None and self.actual_hours is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the public (camelCase) representation."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "project": self.project_id,
            "assignee": self.assignee,
            "dueDate": to_iso_string(self.due_date),
            "completedDate": to_iso_string(self.completed_date),
            "estimatedHours": self.estimated_hours,
            "actualHours": self.actual_hours,
            "tags": list(self.tags),
            "notes": [note.to_dict() for note in self.notes],
            "createdAt": to_iso_string(self.created_at),
            "updatedAt": to_iso_string(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Build a task from its public representation (see ``to_dict``).

        ``project`` may be an id or an embedded ``{"id": ...}`` summary, as
        found in task exports.
        """
        project = data.get("project")
        if isinstance(project, dict):
            project = project.get("id")

        kwargs: Dict[str, Any] = {
            "title": data["title"],
            "description": data.get("description") or "",
            "status": data.get("status", TaskStatus.TODO.value),
            "priority": data.get("priority", Priority.MEDIUM.value),
            "project_id": project,
            "assignee": data.get("assignee"),
            "due_date": parse_datetime(data.get("dueDate")),
            "completed_date": parse_datetime(data.get("completedDate")),
            "estimated_hours": data.get("estimatedHours"),
            "actual_hours": data.get("actualHours"),
            "tags": data.get("tags") or [],
            "notes": [
                Note(content=n["content"], created_at=parse_datetime(n.get("createdAt")) or now_utc())
                for n in data.get("notes") or []
            ],
        }
        if data.get("id"):
            kwargs["id"] = data["id"]
        for key, attr in (("createdAt", "created_at"), ("updatedAt", "updated_at")):
            if data.get(key):
                kwargs[attr] = parse_datetime(data[key])
        return cls(**kwargs)
