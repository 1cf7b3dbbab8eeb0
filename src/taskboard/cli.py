"""Command-line interface for Taskboard.

Commands:
- dashboard: summary tables for the last N days
- report: productivity, project-performance or time-tracking report
- bulk: apply one operation to many tasks
- import: load a JSON export into the store
- serve: run the HTTP API
"""

import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import Config, ConfigModel
from .domain import Project, Task
from .errors import InvalidInputError, TaskboardError
from .services import BulkMutationExecutor, DashboardEngine, ReportFormat, ReportGenerator
from .storage import EntityStore
from .utils.datetime import parse_datetime

logger = logging.getLogger(__name__)


def get_console() -> Console:
    return Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class CliContext:
    """Lazily opened store shared by the commands of one invocation."""

    def __init__(self, config: ConfigModel):
        self.config = config
        self._store: Optional[EntityStore] = None

    @property
    def store(self) -> EntityStore:
        if self._store is None:
            self._store = EntityStore(Path(self.config.db_path))
        return self._store


def _fail(error: TaskboardError) -> None:
    """Print an error and exit: 2 for bad input, 1 for everything else."""
    get_console().print(f"[red]Error:[/red] {error.message}")
    sys.exit(2 if isinstance(error, InvalidInputError) else 1)


def _parse_option_date(name: str, value: Optional[str], end_of_day: bool = False):
    try:
        return parse_datetime(value, end_of_day=end_of_day)
    except ValueError:
        raise InvalidInputError(f"{name} must be an ISO-8601 date, got '{value}'") from None


def _fmt(value: Any, digits: int = 1) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.{digits}f}"
    return str(value)


@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path),
              help="Path to config.yaml")
@click.option("--db", "db_path", type=click.Path(path_type=Path),
              help="Override the database path")
@click.option("--log-level", default=None, help="Logging level (DEBUG, INFO, ...)")
@click.pass_context
def main(ctx, config_path: Optional[Path], db_path: Optional[Path], log_level: Optional[str]):
    """Taskboard analytics and reporting."""
    config = Config.load(config_path) if config_path else Config.get()
    if db_path:
        config = dataclasses.replace(config, db_path=str(db_path))
    configure_logging(log_level or config.log_level)
    ctx.obj = CliContext(config)


@main.command()
@click.option("--days", "-d", type=int, default=None, help="Lookback window in days")
@click.option("--json", "as_json", is_flag=True, help="Print the raw JSON payload")
@click.pass_obj
def dashboard(obj: CliContext, days: Optional[int], as_json: bool):
    """Show dashboard metrics."""
    engine = DashboardEngine(
        obj.store,
        activity_limit=obj.config.activity_limit,
        max_lookback_days=obj.config.max_lookback_days,
    )
    try:
        if days is None:
            days = obj.config.default_lookback_days
        data = asyncio.run(engine.build(days)).to_dict()
    except TaskboardError as e:
        _fail(e)

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    console = get_console()
    overview = data["overview"]
    insights = data["performanceInsights"]
    console.print(Panel(
        f"Projects: {_fmt(overview['totalProjects'])}   "
        f"Tasks: {_fmt(overview['totalTasks'])}   "
        f"Overdue: {_fmt(overview['overdueCount'])}\n"
        f"Completion rate: {insights['completionRate']}%   "
        f"Time accuracy: {insights['timeAccuracy']}%   "
        f"Tasks/day: {insights['avgTasksPerDay']}",
        title=f"Dashboard (last {data['timeRange']['days']} days)",
    ))

    status_table = Table(title="Tasks by status")
    for column in ("Status", "Count", "Estimated h", "Actual h", "Avg variance h"):
        status_table.add_column(column)
    for row in data["taskStats"]:
        status_table.add_row(
            row["status"], str(row["count"]), _fmt(row["totalEstimated"]),
            _fmt(row["totalActual"]), _fmt(row["avgVariance"]),
        )
    console.print(status_table)

    progress_table = Table(title="Project progress")
    for column in ("Project", "Status", "Due", "Done", "Progress"):
        progress_table.add_column(column)
    for row in data["projectProgress"]:
        progress_table.add_row(
            row["name"], row["status"], (row["dueDate"] or "-")[:10],
            f"{row['completedTasks']}/{row['totalTasks']}",
            f"{row['progressPercentage']:.0f}%",
        )
    console.print(progress_table)

    if data["overdueAnalysis"]:
        overdue_table = Table(title="Overdue tasks")
        for column in ("Priority", "Count", "Avg days overdue"):
            overdue_table.add_column(column)
        for row in data["overdueAnalysis"]:
            overdue_table.add_row(row["priority"], str(row["count"]), _fmt(row["avgOverdueDays"]))
        console.print(overdue_table)

    for error in data["errors"]:
        console.print(f"[yellow]Warning:[/yellow] {error['section']} unavailable: {error['error']}")


@main.command()
@click.argument("report_type")
@click.option("--start", "start_date", default=None, help="Earliest completion date")
@click.option("--end", "end_date", default=None, help="Latest completion date")
@click.option("--format", "-f", "output_format", default="json",
              type=click.Choice(["json", "csv"]), help="Output format")
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Write to file")
@click.pass_obj
def report(obj: CliContext, report_type: str, start_date: Optional[str],
           end_date: Optional[str], output_format: str, output: Optional[Path]):
    """Generate REPORT_TYPE (productivity, project-performance, time-tracking)."""
    try:
        result = ReportGenerator(obj.store).generate(
            report_type,
            start_date=_parse_option_date("--start", start_date),
            end_date=_parse_option_date("--end", end_date, end_of_day=True),
        )
    except TaskboardError as e:
        _fail(e)

    if ReportFormat(output_format) == ReportFormat.CSV:
        text = result.to_csv()
    else:
        text = json.dumps(result.to_dict(), indent=2)

    if output:
        output.write_text(text)
        get_console().print(
            f"[green]Wrote {len(result.records)} records to {output}[/green]"
        )
    else:
        click.echo(text, nl=not text.endswith("\n"))


@main.command()
@click.argument("operation")
@click.argument("task_ids", nargs=-1)
@click.option("--status", default=None, help="New status for update-status")
@click.option("--priority", default=None, help="New priority for update-priority")
@click.option("--project", default=None, help="Project id for assign-project")
@click.pass_obj
def bulk(obj: CliContext, operation: str, task_ids: List[str], status: Optional[str],
         priority: Optional[str], project: Optional[str]):
    """Apply OPERATION to every TASK_ID."""
    updates: Dict[str, Any] = {
        k: v for k, v in (("status", status), ("priority", priority), ("project", project))
        if v is not None
    }
    try:
        result = BulkMutationExecutor(obj.store).execute(list(task_ids), operation, updates)
    except TaskboardError as e:
        _fail(e)

    get_console().print(
        f"[green]Bulk {result.operation.value}:[/green] "
        f"{result.affected_count} of {len(result.task_ids)} tasks affected"
    )


@main.command(name="import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--kind", type=click.Choice(["auto", "tasks", "projects"]), default="auto",
              help="What the file contains; guessed from its records by default")
@click.pass_obj
def import_export(obj: CliContext, path: Path, kind: str):
    """Load a JSON export (from /api/export/*) into the store."""
    try:
        payload = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        _fail(InvalidInputError(f"{path} is not valid JSON: {e}"))

    records = payload.get("data", []) if isinstance(payload, dict) else payload
    if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
        _fail(InvalidInputError(f"Import file must hold a list of JSON objects: {path}"))
    if kind == "auto":
        kind = "tasks" if records and "title" in records[0] else "projects"

    try:
        if kind == "tasks":
            count = obj.store.add_tasks(Task.from_dict(r) for r in records)
        else:
            count = obj.store.add_projects(Project.from_dict(r) for r in records)
    except (KeyError, ValueError) as e:
        _fail(InvalidInputError(f"Malformed {kind} record: {e}"))
    except TaskboardError as e:
        _fail(e)

    logger.info(f"Imported {count} {kind} from {path}")
    get_console().print(f"[green]Imported {count} {kind}[/green]")


@main.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Port")
@click.option("--reload", is_flag=True, help="Reload on code changes")
@click.pass_obj
def serve(obj: CliContext, host: Optional[str], port: Optional[int], reload: bool):
    """Run the HTTP API."""
    from .webapp.app import main as run_server

    run_server(host=host, port=port, reload=reload, config=obj.config)


if __name__ == "__main__":
    main()
