"""Utility helpers for Taskboard."""
