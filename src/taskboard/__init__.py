"""Taskboard: analytics and reporting engine for task and project tracking."""

__version__ = "1.0.0"
