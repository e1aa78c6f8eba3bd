"""Status overview schemas for dashboard."""
from typing import List, Optional
from pydantic import BaseModel

from .monitor import CheckResponse


class ResultsPage(BaseModel):
    """Paginated check history."""
    items: List[CheckResponse]
    total: int
    page: int
    per_page: int
    total_pages: int


class MonitorSummary(BaseModel):
    """Summary of a monitor for dashboard."""
    id: int
    name: str
    url: str
    is_active: bool
    status: str  # UP, DOWN, ERROR, UNKNOWN
    uptime_percentage: float
    avg_response_time: float
    last_check: Optional[str] = None


class StatusOverview(BaseModel):
    """Dashboard overview data."""
    total_monitors: int
    monitors_up: int
    monitors_down: int
    monitors_error: int
    monitors_unknown: int
    overall_uptime: float
    monitors: List[MonitorSummary]
