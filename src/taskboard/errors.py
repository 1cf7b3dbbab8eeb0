"""Error taxonomy for the Taskboard analytics engine.

Only structurally invalid requests and store failures cross component
boundaries. Missing join targets and zero denominators are absorbed locally
by the calculators and never surface as errors.
"""

from typing import Iterable, List, Optional


class TaskboardError(Exception):
    """Base class for all Taskboard errors."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"success": False, "error": self.error, "message": self.message}


class InvalidInputError(TaskboardError):
    """A request that can never succeed as written. Never retried."""

    status_code = 400
    error = "Invalid input"

    def __init__(self, message: str, valid_options: Optional[Iterable[str]] = None,
                 error: Optional[str] = None):
        self.valid_options: List[str] = list(valid_options or [])
        if self.valid_options:
            message = f"{message}. Valid options: {', '.join(self.valid_options)}"
        super().__init__(message)
        if error:
            self.error = error


class StoreError(TaskboardError):
    """The entity store failed (connectivity, locking, corrupt data)."""

    status_code = 500
    error = "Store failure"
