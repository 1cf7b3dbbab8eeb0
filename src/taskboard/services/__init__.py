"""Analytics services: grouping, metrics, insights, reports and bulk writes."""

from .grouping import (
    Aggregation,
    AggregationKind,
    Bucket,
    average_of,
    conditional_average,
    count,
    group_by,
    sum_of,
)
from .metrics import MetricsCalculator
from .insights import PerformanceInsights, synthesize
from .reports import Report, ReportFormat, ReportGenerator, ReportType, render_csv
from .bulk import BulkMutationExecutor, BulkOperation, BulkResult
from .dashboard import DashboardData, DashboardEngine

__all__ = [
    "Aggregation",
    "AggregationKind",
    "Bucket",
    "average_of",
    "conditional_average",
    "count",
    "group_by",
    "sum_of",
    "MetricsCalculator",
    "PerformanceInsights",
    "synthesize",
    "Report",
    "ReportFormat",
    "ReportGenerator",
    "ReportType",
    "render_csv",
    "BulkMutationExecutor",
    "BulkOperation",
    "BulkResult",
    "DashboardData",
    "DashboardEngine",
]
