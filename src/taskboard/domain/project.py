"""Project data model for Taskboard."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .task import Priority, new_id
from ..utils.datetime import now_utc, ensure_aware, parse_datetime, to_iso_string


class ProjectStatus(Enum):
    """Project lifecycle states."""
    PLANNING = "planning"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ON_HOLD = "on-hold"
    CANCELLED = "cancelled"


PROJECT_STATUS_ORDER = list(ProjectStatus)

DEFAULT_COLOR = "#3b82f6"


@dataclass
class Project:
    """A named container that tasks may reference."""

    name: str
    id: str = field(default_factory=new_id)
    description: str = ""
    status: ProjectStatus = ProjectStatus.PLANNING
    priority: Priority = Priority.MEDIUM

    start_date: Optional[datetime] = field(default_factory=now_utc)
    due_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None

    tags: List[str] = field(default_factory=list)
    color: str = DEFAULT_COLOR

    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = ProjectStatus(self.status)
        if isinstance(self.priority, str):
            self.priority = Priority(self.priority)

        self.start_date = ensure_aware(self.start_date)
        self.due_date = ensure_aware(self.due_date)
        self.completed_date = ensure_aware(self.completed_date)
        self.created_at = ensure_aware(self.created_at)
        self.updated_at = ensure_aware(self.updated_at)
        self.tags = list(dict.fromkeys(tag.strip() for tag in self.tags if tag.strip()))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the public (camelCase) representation."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "startDate": to_iso_string(self.start_date),
            "dueDate": to_iso_string(self.due_date),
            "completedDate": to_iso_string(self.completed_date),
            "tags": list(self.tags),
            "color": self.color,
            "createdAt": to_iso_string(self.created_at),
            "updatedAt": to_iso_string(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        """Build a project from its public representation (see ``to_dict``)."""
        kwargs: Dict[str, Any] = {
            "name": data["name"],
            "description": data.get("description") or "",
            "status": data.get("status", ProjectStatus.PLANNING.value),
            "priority": data.get("priority", Priority.MEDIUM.value),
            "due_date": parse_datetime(data.get("dueDate")),
            "completed_date": parse_datetime(data.get("completedDate")),
            "tags": data.get("tags") or [],
            "color": data.get("color") or DEFAULT_COLOR,
        }
        if "startDate" in data:
            kwargs["start_date"] = parse_datetime(data["startDate"])
        if data.get("id"):
            kwargs["id"] = data["id"]
        for key, attr in (("createdAt", "created_at"), ("updatedAt", "updated_at")):
            if data.get(key):
                kwargs[attr] = parse_datetime(data[key])
        return cls(**kwargs)
