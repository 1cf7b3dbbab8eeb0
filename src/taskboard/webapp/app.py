"""
FastAPI application for the Taskboard analytics engine

Routes:
- GET  /health
- GET  /api/dashboard?days=N
- GET  /api/dashboard/reports/{type}?startDate&endDate&format
- POST /api/dashboard/bulk-update
- GET  /api/export/tasks, /api/export/projects
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from taskboard import __version__
from taskboard.config import ConfigModel, get_config
from taskboard.errors import InvalidInputError, TaskboardError
from taskboard.services import (
    BulkMutationExecutor,
    DashboardEngine,
    ReportFormat,
    ReportGenerator,
    ReportType,
)
from taskboard.storage import EntityStore
from taskboard.utils.datetime import now_utc, parse_datetime, to_iso_string
from taskboard.webapp.models import BulkUpdateRequest, ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)

ERROR_RESPONSES = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


# ============================================================================
# Dependencies
# ============================================================================

def get_store(request: Request) -> EntityStore:
    """The store handle bound to this application."""
    return request.app.state.store


def get_config_for(request: Request) -> ConfigModel:
    return request.app.state.config


def get_dashboard_engine(request: Request) -> DashboardEngine:
    config = get_config_for(request)
    return DashboardEngine(
        get_store(request),
        activity_limit=config.activity_limit,
        max_lookback_days=config.max_lookback_days,
    )


def get_report_generator(store: EntityStore = Depends(get_store)) -> ReportGenerator:
    return ReportGenerator(store)


def get_bulk_executor(store: EntityStore = Depends(get_store)) -> BulkMutationExecutor:
    return BulkMutationExecutor(store)


def _parse_date_param(name: str, value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """Parse a date query parameter; bare dates on the upper bound cover the whole day."""
    if not value:
        return None
    try:
        return parse_datetime(value, end_of_day=end_of_day)
    except ValueError:
        raise InvalidInputError(f"{name} must be an ISO-8601 date, got '{value}'") from None


# ============================================================================
# Application factory
# ============================================================================

def create_app(store: Optional[EntityStore] = None,
               config: Optional[ConfigModel] = None) -> FastAPI:
    """Build the API around an explicit store handle

    Args:
        store: Entity store; opened from ``config.db_path`` when omitted
        config: Configuration; the global configuration when omitted
    """
    config = config or get_config()
    store = store or EntityStore(Path(config.db_path))

    app = FastAPI(
        title="Taskboard Analytics",
        description="Dashboard, reports and bulk operations for tasks and projects",
        version=__version__,
    )
    app.state.store = store
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # ------------------------------------------------------------------------
    # Error handlers
    # ------------------------------------------------------------------------

    @app.exception_handler(TaskboardError)
    async def taskboard_error_handler(request: Request, exc: TaskboardError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        message = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Validation failed", "message": message},
        )

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "message": str(exc)},
        )

    # ------------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse)
    def health_check(store: EntityStore = Depends(get_store)):
        """Health check endpoint with entity counts."""
        return HealthResponse(
            timestamp=now_utc(),
            version=__version__,
            totalTasks=store.count_tasks(),
            totalProjects=store.count_projects(),
        )

    @app.get("/api/dashboard", responses=ERROR_RESPONSES)
    async def dashboard(
        days: Optional[str] = None,
        engine: DashboardEngine = Depends(get_dashboard_engine),
        config: ConfigModel = Depends(get_config_for),
    ):
        """Composite analytics payload for the last ``days`` days."""
        data = await engine.build(days if days is not None else config.default_lookback_days)
        return {"success": True, "data": data.to_dict()}

    @app.get("/api/dashboard/reports/{report_type}", responses=ERROR_RESPONSES)
    def generate_report(
        report_type: str,
        startDate: Optional[str] = None,
        endDate: Optional[str] = None,
        format: str = "json",
        generator: ReportGenerator = Depends(get_report_generator),
    ):
        """Generate a productivity, project-performance or time-tracking report."""
        rtype = ReportType.parse(report_type)
        output = ReportFormat.parse(format)
        report = generator.generate(
            rtype,
            start_date=_parse_date_param("startDate", startDate),
            end_date=_parse_date_param("endDate", endDate, end_of_day=True),
        )

        if output == ReportFormat.CSV:
            return Response(
                content=report.to_csv(),
                media_type="text/csv",
                headers={"Content-Disposition": f'attachment; filename="{report.filename}"'},
            )
        return report.to_dict()

    @app.post("/api/dashboard/bulk-update", responses=ERROR_RESPONSES)
    def bulk_update(
        body: BulkUpdateRequest,
        executor: BulkMutationExecutor = Depends(get_bulk_executor),
    ):
        """Apply one operation to many tasks."""
        result = executor.execute(body.taskIds, body.operation, body.updates)
        return {
            "success": True,
            "message": f"Bulk {result.operation.value} completed successfully",
            "data": result.to_dict(),
        }

    @app.get("/api/export/tasks")
    def export_tasks(store: EntityStore = Depends(get_store)):
        """Download all tasks with their project summary embedded."""
        tasks = store.list_tasks(order_by="created_at")
        projects = store.get_projects(t.project_id for t in tasks if t.project_id)
        data = []
        for task in tasks:
            record = task.to_dict()
            project = projects.get(task.project_id) if task.project_id else None
            record["project"] = (
                {"id": project.id, "name": project.name, "status": project.status.value}
                if project else None
            )
            data.append(record)
        return _export_response("tasks", data)

    @app.get("/api/export/projects")
    def export_projects(store: EntityStore = Depends(get_store)):
        """Download all projects."""
        return _export_response("projects", [p.to_dict() for p in store.list_projects()])

    return app


def _export_response(kind: str, data) -> JSONResponse:
    return JSONResponse(
        content={
            "exportDate": to_iso_string(now_utc()),
            "totalRecords": len(data),
            "data": data,
        },
        headers={"Content-Disposition": f'attachment; filename="{kind}-export.json"'},
    )


# ============================================================================
# Main Entry Point
# ============================================================================

def main(host: Optional[str] = None, port: Optional[int] = None, reload: bool = False,
         config: Optional[ConfigModel] = None):
    """Run the web application

    The reloader re-imports the app in a fresh process, so it always starts
    from the configuration file rather than ``config``.
    """
    config = config or get_config()
    app = "taskboard.webapp.app:create_app" if reload else create_app(config=config)
    uvicorn.run(
        app,
        factory=reload,
        host=host or config.host,
        port=port or config.port,
        reload=reload,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
