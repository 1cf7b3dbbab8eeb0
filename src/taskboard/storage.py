"""
SQLite entity store for tasks and projects.

This module is the single owner of persisted entity state:
- Read primitives with filtering, sorting, limiting and counting
- Batch writes that run as one statement inside one transaction
- The completed-date invariant on status changes
- Driver failures surfaced as StoreError

Every call opens its own short-lived connection, so reads may run
concurrently from worker threads.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .domain import Note, Priority, Project, ProjectStatus, Task, TaskStatus
from .errors import InvalidInputError, StoreError
from .utils.datetime import from_storage, now_utc, to_storage

logger = logging.getLogger(__name__)

# Columns callers may sort tasks by
TASK_SORT_COLUMNS = {
    "created_at", "updated_at", "due_date", "completed_date", "priority", "status", "title",
}

# Fields a batch update may change, mapped to their column
BULK_UPDATE_FIELDS = {
    "status": "status",
    "priority": "priority",
    "project": "project_id",
}


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


class EntityStore:
    """Persistent store for Task and Project entities."""

    def __init__(self, db_path: Path):
        """Initialize the store

        Args:
            db_path: Database file path; parent directories are created
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()

    @contextmanager
    def get_connection(self):
        """Get database connection with context manager

        Commits on success, rolls back on any failure. Driver errors are
        re-raised as StoreError.

        Yields:
            sqlite3.Connection: Database connection
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=10)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Database error on {self.db_path}: {e}")
            raise StoreError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_db(self):
        """Initialize database schema"""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL,
                    priority TEXT NOT NULL,
                    start_date TEXT,
                    due_date TEXT,
                    completed_date TEXT,
                    tags TEXT NOT NULL DEFAULT '[]',
                    color TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            # project_id is a weak reference, deliberately without a foreign key
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL,
                    priority TEXT NOT NULL,
                    project_id TEXT,
                    assignee TEXT,
                    due_date TEXT,
                    completed_date TEXT,
                    estimated_hours REAL,
                    actual_hours REAL,
                    tags TEXT NOT NULL DEFAULT '[]',
                    notes TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_status_priority ON tasks (status, priority)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks (project_id)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_due_date ON tasks (due_date)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_updated_at ON tasks (updated_at)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_projects_due_date ON projects (due_date)"
            )
        logger.debug(f"Database initialized at {self.db_path}")

    # ========================================================================
    # Row mapping
    # ========================================================================

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            priority=Priority(row["priority"]),
            project_id=row["project_id"],
            assignee=row["assignee"],
            due_date=from_storage(row["due_date"]),
            completed_date=from_storage(row["completed_date"]),
            estimated_hours=row["estimated_hours"],
            actual_hours=row["actual_hours"],
            tags=json.loads(row["tags"]),
            notes=[
                Note(content=n["content"], created_at=from_storage(n["createdAt"]))
                for n in json.loads(row["notes"])
            ],
            created_at=from_storage(row["created_at"]),
            updated_at=from_storage(row["updated_at"]),
        )

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            status=ProjectStatus(row["status"]),
            priority=Priority(row["priority"]),
            start_date=from_storage(row["start_date"]),
            due_date=from_storage(row["due_date"]),
            completed_date=from_storage(row["completed_date"]),
            tags=json.loads(row["tags"]),
            color=row["color"],
            created_at=from_storage(row["created_at"]),
            updated_at=from_storage(row["updated_at"]),
        )

    # ========================================================================
    # Inserts
    # ========================================================================

    @staticmethod
    def _apply_completion_rule(task: Task) -> Task:
        """Make ``completed_date`` agree with the status.

        A completed task without a stamp takes its ``updated_at``; any other
        status drops the stamp.
        """
        if task.is_completed:
            if task.completed_date is None:
                task.completed_date = task.updated_at
        else:
            task.completed_date = None
        return task

    def add_tasks(self, tasks: Iterable[Task]) -> int:
        """Insert tasks with their timestamps, enforcing the completion rule.

        Returns:
            int: Number of tasks written
        """
        tasks = [self._apply_completion_rule(t) for t in tasks]
        rows = [
            (
                t.id, t.title, t.description, t.status.value, t.priority.value,
                t.project_id, t.assignee, to_storage(t.due_date),
                to_storage(t.completed_date), t.estimated_hours, t.actual_hours,
                json.dumps(t.tags),
                json.dumps([
                    {"content": n.content, "createdAt": to_storage(n.created_at)}
                    for n in t.notes
                ]),
                to_storage(t.created_at), to_storage(t.updated_at),
            )
            for t in tasks
        ]
        with self.get_connection() as conn:
            conn.executemany("""
                INSERT INTO tasks (id, title, description, status, priority, project_id,
                                   assignee, due_date, completed_date, estimated_hours,
                                   actual_hours, tags, notes, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, rows)
        return len(rows)

    def add_task(self, task: Task) -> Task:
        self.add_tasks([task])
        return task

    def add_projects(self, projects: Iterable[Project]) -> int:
        """Insert projects as given, timestamps included."""
        rows = [
            (
                p.id, p.name, p.description, p.status.value, p.priority.value,
                to_storage(p.start_date), to_storage(p.due_date),
                to_storage(p.completed_date), json.dumps(p.tags), p.color,
                to_storage(p.created_at), to_storage(p.updated_at),
            )
            for p in projects
        ]
        with self.get_connection() as conn:
            conn.executemany("""
                INSERT INTO projects (id, name, description, status, priority, start_date,
                                      due_date, completed_date, tags, color, created_at,
                                      updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, rows)
        return len(rows)

    def add_project(self, project: Project) -> Project:
        self.add_projects([project])
        return project

    # ========================================================================
    # Task reads
    # ========================================================================

    @staticmethod
    def _task_filters(
        created_since: Optional[datetime] = None,
        updated_since: Optional[datetime] = None,
        completed_from: Optional[datetime] = None,
        completed_to: Optional[datetime] = None,
        completed_only: bool = False,
        due_before: Optional[datetime] = None,
        exclude_statuses: Optional[Iterable[TaskStatus]] = None,
        timed_only: bool = False,
        project_ids: Optional[Sequence[str]] = None,
    ) -> Tuple[str, List[Any]]:
        clauses: List[str] = []
        params: List[Any] = []

        if created_since is not None:
            clauses.append("created_at >= ?")
            params.append(to_storage(created_since))
        if updated_since is not None:
            clauses.append("updated_at >= ?")
            params.append(to_storage(updated_since))
        if completed_only:
            clauses.append("completed_date IS NOT NULL")
        if completed_from is not None:
            clauses.append("completed_date >= ?")
            params.append(to_storage(completed_from))
        if completed_to is not None:
            clauses.append("completed_date <= ?")
            params.append(to_storage(completed_to))
        if due_before is not None:
            clauses.append("due_date < ?")
            params.append(to_storage(due_before))
        if exclude_statuses:
            statuses = [s.value for s in exclude_statuses]
            clauses.append(f"status NOT IN ({_placeholders(statuses)})")
            params.extend(statuses)
        if timed_only:
            clauses.append("estimated_hours IS NOT NULL AND actual_hours IS NOT NULL")
        if project_ids is not None:
            clauses.append(f"project_id IN ({_placeholders(project_ids)})")
            params.extend(project_ids)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def list_tasks(
        self,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        **filters: Any,
    ) -> List[Task]:
        """List tasks matching the given filters

        Args:
            order_by: One of TASK_SORT_COLUMNS; nulls sort last
            descending: Sort direction
            limit: Maximum number of tasks
            **filters: created_since, updated_since, completed_from,
                completed_to, completed_only, due_before, exclude_statuses,
                timed_only, project_ids

        Returns:
            List[Task]: Matching tasks
        """
        where, params = self._task_filters(**filters)
        sql = f"SELECT * FROM tasks {where}"

        if order_by is not None:
            if order_by not in TASK_SORT_COLUMNS:
                raise InvalidInputError(
                    f"Cannot sort tasks by '{order_by}'", sorted(TASK_SORT_COLUMNS)
                )
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY {order_by} IS NULL, {order_by} {direction}, id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        with self.get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
            return [self._row_to_task(row) for row in rows]

    def count_tasks(self, **filters: Any) -> int:
        """Count tasks matching the same filters as list_tasks."""
        where, params = self._task_filters(**filters)
        with self.get_connection() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM tasks {where}", params).fetchone()[0]

    def get_task(self, task_id: str) -> Optional[Task]:
        with self.get_connection() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_task(row) if row else None

    # ========================================================================
    # Project reads
    # ========================================================================

    def list_projects(self) -> List[Project]:
        """List all projects in insertion order."""
        with self.get_connection() as conn:
            rows = conn.execute("SELECT * FROM projects ORDER BY rowid").fetchall()
            return [self._row_to_project(row) for row in rows]

    def get_projects(self, project_ids: Iterable[str]) -> Dict[str, Project]:
        """Look up projects by id; unknown ids are simply absent."""
        ids = list(dict.fromkeys(project_ids))
        if not ids:
            return {}
        with self.get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM projects WHERE id IN ({_placeholders(ids)})", ids
            ).fetchall()
            return {row["id"]: self._row_to_project(row) for row in rows}

    def count_projects(self) -> int:
        with self.get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM projects").fetchone()[0]

    # ========================================================================
    # Batch writes
    # ========================================================================

    def bulk_update_tasks(self, task_ids: Sequence[str], changes: Dict[str, Any]) -> int:
        """Apply the same field changes to many tasks in one statement

        Setting ``status`` maintains the completed date: it is stamped when
        the new status is ``completed`` (an existing stamp is kept) and
        cleared otherwise. ``updated_at`` is always bumped.

        Args:
            task_ids: Task identifiers; unknown ids are ignored
            changes: Mapping of ``status``, ``priority`` or ``project`` to value

        Returns:
            int: Number of tasks updated
        """
        unknown = set(changes) - set(BULK_UPDATE_FIELDS)
        if unknown or not changes:
            raise InvalidInputError(
                f"Unsupported update fields: {', '.join(sorted(unknown)) or 'none'}",
                sorted(BULK_UPDATE_FIELDS),
            )

        ids = list(dict.fromkeys(task_ids))
        if not ids:
            return 0

        now = to_storage(now_utc())
        assignments: List[str] = []
        params: List[Any] = []
        for field_name, value in changes.items():
            assignments.append(f"{BULK_UPDATE_FIELDS[field_name]} = ?")
            params.append(value.value if hasattr(value, "value") else value)

        if "status" in changes:
            status = changes["status"]
            status = status.value if hasattr(status, "value") else status
            assignments.append(
                "completed_date = CASE WHEN ? = 'completed' "
                "THEN COALESCE(completed_date, ?) ELSE NULL END"
            )
            params.extend([status, now])

        assignments.append("updated_at = ?")
        params.append(now)
        params.extend(ids)

        with self.get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE tasks SET {', '.join(assignments)} WHERE id IN ({_placeholders(ids)})",
                params,
            )
            return cursor.rowcount

    def bulk_delete_tasks(self, task_ids: Sequence[str]) -> int:
        """Delete many tasks in one statement; returns the number removed."""
        ids = list(dict.fromkeys(task_ids))
        if not ids:
            return 0
        with self.get_connection() as conn:
            cursor = conn.execute(
                f"DELETE FROM tasks WHERE id IN ({_placeholders(ids)})", ids
            )
            return cursor.rowcount

    def delete_projects(self, project_ids: Sequence[str],
                        cascade_tasks: bool = False) -> Tuple[int, int]:
        """Delete projects, optionally together with their tasks

        Without ``cascade_tasks`` the tasks keep their (now dangling)
        project reference.

        Returns:
            Tuple[int, int]: (projects deleted, tasks deleted)
        """
        ids = list(dict.fromkeys(project_ids))
        if not ids:
            return 0, 0
        with self.get_connection() as conn:
            tasks_deleted = 0
            if cascade_tasks:
                tasks_deleted = conn.execute(
                    f"DELETE FROM tasks WHERE project_id IN ({_placeholders(ids)})", ids
                ).rowcount
            projects_deleted = conn.execute(
                f"DELETE FROM projects WHERE id IN ({_placeholders(ids)})", ids
            ).rowcount
            return projects_deleted, tasks_deleted
