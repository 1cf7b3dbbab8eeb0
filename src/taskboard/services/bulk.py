"""Apply one operation to many tasks with a single store call."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..domain import Priority, TaskStatus
from ..errors import InvalidInputError

logger = logging.getLogger(__name__)


class BulkOperation(Enum):
    """Supported bulk operations"""
    UPDATE_STATUS = "update-status"
    UPDATE_PRIORITY = "update-priority"
    ASSIGN_PROJECT = "assign-project"
    DELETE = "delete"

    @property
    def required_field(self) -> Optional[str]:
        return _REQUIRED_FIELDS[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> "BulkOperation":
        try:
            return cls(value)
        except ValueError:
            raise InvalidInputError(
                f"Unknown operation '{value}'",
                [op.value for op in cls],
                error="Invalid operation",
            ) from None


_REQUIRED_FIELDS = {
    BulkOperation.UPDATE_STATUS: "status",
    BulkOperation.UPDATE_PRIORITY: "priority",
    BulkOperation.ASSIGN_PROJECT: "project",
    BulkOperation.DELETE: None,
}


@dataclass
class BulkResult:
    operation: BulkOperation
    affected_count: int
    task_ids: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation.value,
            "affectedCount": self.affected_count,
            "taskIds": self.task_ids,
        }


def _coerce(field_name: str, value: Any) -> Any:
    """Validate a payload value against its enum, if it has one."""
    if field_name == "status":
        try:
            return TaskStatus(value)
        except ValueError:
            raise InvalidInputError(
                f"Invalid status '{value}'", [s.value for s in TaskStatus]
            ) from None
    if field_name == "priority":
        try:
            return Priority(value)
        except ValueError:
            raise InvalidInputError(
                f"Invalid priority '{value}'", [p.value for p in Priority]
            ) from None
    if not isinstance(value, str):
        raise InvalidInputError(f"{field_name} must be a project identifier")
    return value


class BulkMutationExecutor:
    """Validates a bulk request and issues exactly one batch write.

    The store runs each batch in one transaction, so a failure leaves no
    partial state. Unknown identifiers are skipped by the store and simply
    lower the affected count.
    """

    def __init__(self, store):
        self.store = store

    def validate(self, task_ids: Optional[Sequence[str]], operation: Any,
                 updates: Optional[Dict[str, Any]] = None):
        if not task_ids or isinstance(task_ids, str):
            raise InvalidInputError("taskIds must be a non-empty list", error="Validation failed")
        if not all(isinstance(task_id, str) and task_id for task_id in task_ids):
            raise InvalidInputError("taskIds must contain only non-empty strings",
                                    error="Validation failed")

        if not isinstance(operation, BulkOperation):
            operation = BulkOperation.parse(operation)

        changes: Dict[str, Any] = {}
        field_name = operation.required_field
        if field_name is not None:
            value = (updates or {}).get(field_name)
            if value in (None, ""):
                raise InvalidInputError(
                    f"'{field_name}' is required for {operation.value}",
                    error="Validation failed",
                )
            changes[field_name] = _coerce(field_name, value)
        return operation, changes

    def execute(self, task_ids: Sequence[str], operation: Any,
                updates: Optional[Dict[str, Any]] = None) -> BulkResult:
        """Run a bulk operation

        Args:
            task_ids: Non-empty list of task identifiers
            operation: BulkOperation or its string value
            updates: Payload holding the operation's required field

        Returns:
            BulkResult: Operation, affected count and the requested ids

        Raises:
            InvalidInputError: Empty ids, unknown operation or missing field
        """
        operation, changes = self.validate(task_ids, operation, updates)
        ids = list(task_ids)

        if operation == BulkOperation.DELETE:
            affected = self.store.bulk_delete_tasks(ids)
        else:
            affected = self.store.bulk_update_tasks(ids, changes)

        logger.info(
            f"Bulk {operation.value}: {affected} of {len(ids)} requested tasks affected"
        )
        return BulkResult(operation, affected, ids)
