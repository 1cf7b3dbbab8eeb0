"""Dashboard engine: concurrent fan-out of the metric calculators.

A dashboard request captures "now" once, starts every calculator as its own
task and waits for all of them. A calculator that fails leaves its section
empty and is reported under ``errors``; the request as a whole only fails
when every calculator does.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import InvalidInputError
from ..utils.datetime import now_utc, to_iso_string
from .insights import PerformanceInsights, synthesize
from .metrics import MetricsCalculator

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 30
DEFAULT_ACTIVITY_LIMIT = 20


@dataclass
class DashboardData:
    """Joined results of one dashboard request."""
    start_date: datetime
    end_date: datetime
    days: int
    sections: Dict[str, Any]
    insights: PerformanceInsights
    errors: List[Dict[str, str]] = field(default_factory=list)

    def _serialize(self, name: str, key_name: Optional[str] = None,
                   count_name: str = "count") -> List[Dict[str, Any]]:
        items = self.sections.get(name) or []
        if key_name is None:
            return [item.to_dict() for item in items]
        return [item.to_dict(key_name, count_name) for item in items]

    @property
    def overview(self) -> Dict[str, Any]:
        totals = self.sections.get("totals") or {}
        overdue = self.sections.get("overdueAnalysis")
        return {
            "totalProjects": totals.get("totalProjects"),
            "totalTasks": totals.get("totalTasks"),
            "overdueCount": sum(b.count for b in overdue) if overdue is not None else None,
            "completionRate": (
                self.insights.completion_rate
                if self.sections.get("taskStats") is not None else None
            ),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overview": self.overview,
            "projectStats": self._serialize("projectStats", "status"),
            "taskStats": self._serialize("taskStats", "status"),
            "productivityMetrics": self._serialize(
                "productivityMetrics", "date", "tasksCompleted"
            ),
            "priorityDistribution": self._serialize("priorityDistribution"),
            "overdueAnalysis": self._serialize("overdueAnalysis", "priority"),
            "projectProgress": self._serialize("projectProgress"),
            "recentActivity": self._serialize("recentActivity"),
            "performanceInsights": self.insights.to_dict(),
            "timeRange": {
                "startDate": to_iso_string(self.start_date),
                "endDate": to_iso_string(self.end_date),
                "days": self.days,
            },
            "errors": self.errors,
            "generatedAt": to_iso_string(self.end_date),
        }


class DashboardEngine:
    """Builds the composite dashboard payload from an explicit store handle."""

    def __init__(self, store, activity_limit: int = DEFAULT_ACTIVITY_LIMIT,
                 max_lookback_days: int = 365):
        self.store = store
        self.activity_limit = activity_limit
        self.max_lookback_days = max_lookback_days

    def validate_days(self, days: Any) -> int:
        try:
            days = int(days)
        except (TypeError, ValueError):
            raise InvalidInputError(f"days must be an integer, got '{days}'") from None
        if not 1 <= days <= self.max_lookback_days:
            raise InvalidInputError(
                f"days must be between 1 and {self.max_lookback_days}, got {days}"
            )
        return days

    def _plan(self, now: datetime, start: datetime) -> List[Tuple[str, Callable, tuple]]:
        calc = MetricsCalculator(self.store)
        return [
            ("projectStats", calc.project_stats, ()),
            ("taskStats", calc.task_stats, ()),
            ("productivityMetrics", calc.productivity, (start,)),
            ("priorityDistribution", calc.priority_distribution, ()),
            ("overdueAnalysis", calc.overdue, (now,)),
            ("projectProgress", calc.project_progress, ()),
            ("recentActivity", calc.recent_activity, (start, self.activity_limit)),
            ("totals", calc.totals, ()),
        ]

    async def build(self, days: Any = DEFAULT_LOOKBACK_DAYS,
                    now: Optional[datetime] = None) -> DashboardData:
        """Compute every dashboard section concurrently

        Args:
            days: Lookback window in days
            now: Reference time, captured once when omitted

        Raises:
            InvalidInputError: If ``days`` is not a valid window
            Exception: The first failure, when every calculator failed
        """
        days = self.validate_days(days)
        now = now or now_utc()
        start = now - timedelta(days=days)

        plan = self._plan(now, start)
        # Threads cannot be interrupted; on cancellation their reads finish
        # in the background and the results are dropped.
        results = await asyncio.gather(
            *(asyncio.to_thread(fn, *args) for _, fn, args in plan),
            return_exceptions=True,
        )

        sections: Dict[str, Any] = {}
        errors: List[Dict[str, str]] = []
        failures: List[BaseException] = []
        for (name, _, _), result in zip(plan, results):
            if isinstance(result, BaseException):
                logger.warning(f"Dashboard section '{name}' failed: {result}")
                errors.append({"section": name, "error": str(result)})
                failures.append(result)
                sections[name] = None
            else:
                sections[name] = result

        if len(failures) == len(plan):
            raise failures[0]

        insights = synthesize(sections.get("taskStats"), sections.get("productivityMetrics"))
        return DashboardData(
            start_date=start,
            end_date=now,
            days=days,
            sections=sections,
            insights=insights,
            errors=errors,
        )
