"""Monitor schemas for API."""
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


class MonitorCreate(BaseModel):
    """Schema for creating a new monitor."""
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1)
    check_interval: int = Field(default=60, ge=10, le=86400)

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Invalid URL format")
        return value


class MonitorResponse(BaseModel):
    """Schema for monitor in API responses."""
    id: int
    name: str
    url: str
    is_active: bool
    check_interval: int
    created_at: datetime

    class Config:
        from_attributes = True


class MonitorStatsResponse(BaseModel):
    """Aggregate statistics; zeroed with DOWN status before the first check."""
    uptime_percentage: float = 0
    avg_response_time: float = 0
    total_checks: int = 0
    successful_checks: int = 0
    last_status: str = "DOWN"
    last_check_time: Optional[datetime] = None
    last_response_time: Optional[int] = None

    class Config:
        from_attributes = True


class CheckResponse(BaseModel):
    """One recorded check."""
    monitor_id: int
    status: str  # UP, DOWN, ERROR
    response_time_ms: Optional[int] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    checked_at: datetime

    class Config:
        from_attributes = True


class MonitorWithStats(MonitorResponse):
    """Monitor with its aggregate and most recent checks."""
    stats: MonitorStatsResponse
    recent_checks: List[CheckResponse] = []


class ToggleResponse(BaseModel):
    id: int
    is_active: bool
