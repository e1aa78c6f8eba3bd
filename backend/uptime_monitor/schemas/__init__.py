"""Pydantic schemas for API request/response models."""
from .monitor import (
    MonitorCreate,
    MonitorResponse,
    MonitorStatsResponse,
    CheckResponse,
    MonitorWithStats,
    ToggleResponse,
)
from .status import (
    ResultsPage,
    StatusOverview,
    MonitorSummary,
)

__all__ = [
    "MonitorCreate",
    "MonitorResponse",
    "MonitorStatsResponse",
    "CheckResponse",
    "MonitorWithStats",
    "ToggleResponse",
    "ResultsPage",
    "StatusOverview",
    "MonitorSummary",
]
