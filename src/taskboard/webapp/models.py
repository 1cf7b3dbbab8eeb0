"""
Pydantic models for API requests and responses
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class BulkUpdateRequest(BaseModel):
    """Bulk operation request body

    Fields are loosely typed on purpose: the bulk executor reports missing
    or unknown values with the list of valid alternatives.
    """
    taskIds: Optional[List[str]] = None
    operation: Optional[str] = None
    updates: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Standard error envelope."""
    success: bool = False
    error: str
    message: str


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str = "healthy"
    timestamp: datetime
    version: str
    totalTasks: int
    totalProjects: int
