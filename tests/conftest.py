"""Pytest configuration and shared fixtures."""

import sys
import asyncio
import inspect
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure src directory is in Python path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from taskboard.config import CONFIG_ENV_VAR, Config, ConfigModel  # noqa: E402
from taskboard.domain import Priority, Project, ProjectStatus, Task, TaskStatus  # noqa: E402
from taskboard.storage import EntityStore  # noqa: E402


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Execute async tests without external plugins."""
    testfunction = pyfuncitem.obj
    if inspect.iscoroutinefunction(testfunction):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            sig = inspect.signature(testfunction)
            call_kwargs = {name: pyfuncitem.funcargs[name] for name in sig.parameters}
            loop.run_until_complete(testfunction(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the global configuration away from the real home directory."""
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "home" / "config.yaml"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    Config.reset()
    yield
    Config.reset()


@pytest.fixture
def now():
    """Fixed reference time for calculations."""
    return NOW


@pytest.fixture
def store(tmp_path):
    """Empty store in a temporary directory."""
    return EntityStore(tmp_path / "taskboard.db")


@pytest.fixture
def config(tmp_path):
    """Configuration rooted in a temporary directory."""
    return ConfigModel(data_dir=str(tmp_path / "data"), db_path=str(tmp_path / "taskboard.db"))


def make_task(title="Task", now=NOW, created_days_ago=5, updated_days_ago=1, **kwargs):
    """Task with timestamps expressed relative to ``now``."""
    kwargs.setdefault("created_at", now - timedelta(days=created_days_ago))
    kwargs.setdefault("updated_at", now - timedelta(days=updated_days_ago))
    if kwargs.get("status") == TaskStatus.COMPLETED:
        kwargs.setdefault("completed_date", now - timedelta(days=updated_days_ago))
    return Task(title=title, **kwargs)


def make_project(name="Project", **kwargs):
    kwargs.setdefault("start_date", NOW - timedelta(days=60))
    return Project(name=name, **kwargs)


@pytest.fixture
def populated_store(store):
    """Two projects, one empty, and a spread of tasks across statuses."""
    website = make_project(
        "Website", id="p-web", status=ProjectStatus.IN_PROGRESS,
        due_date=NOW + timedelta(days=10),
    )
    empty = make_project("Empty", id="p-empty", due_date=NOW + timedelta(days=30))
    store.add_projects([website, empty])
    store.add_tasks([
        make_task("Design", id="t1", project_id="p-web", status=TaskStatus.COMPLETED,
                  priority=Priority.HIGH, estimated_hours=4, actual_hours=5),
        make_task("Build", id="t2", project_id="p-web", status=TaskStatus.COMPLETED,
                  priority=Priority.HIGH, estimated_hours=8, actual_hours=6),
        make_task("Deploy", id="t3", project_id="p-web", status=TaskStatus.TODO,
                  priority=Priority.URGENT, due_date=NOW - timedelta(days=2)),
        make_task("Write docs", id="t4", status=TaskStatus.IN_PROGRESS,
                  priority=Priority.LOW, due_date=NOW - timedelta(days=4)),
    ])
    return store
