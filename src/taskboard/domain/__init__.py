"""Domain models for Taskboard."""

from .task import Task, TaskStatus, Priority, Note, TASK_STATUS_ORDER, new_id
from .project import Project, ProjectStatus, PROJECT_STATUS_ORDER

__all__ = [
    "Task",
    "TaskStatus",
    "Priority",
    "Note",
    "TASK_STATUS_ORDER",
    "new_id",
    "Project",
    "ProjectStatus",
    "PROJECT_STATUS_ORDER",
]
