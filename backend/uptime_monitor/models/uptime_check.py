"""UptimeCheck model - append-only history of check results."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Index

from ..database import Base

# Possible values of UptimeCheck.status and MonitorStats.last_status
STATUS_UP = "UP"
STATUS_DOWN = "DOWN"
STATUS_ERROR = "ERROR"


class UptimeCheck(Base):
    """One immutable observation of a monitor.

    monitor_id deliberately carries no foreign key: deleting a monitor
    keeps its history.
    """

    __tablename__ = "uptime_checks"
    __table_args__ = (
        Index("ix_uptime_checks_monitor_checked_at", "monitor_id", "checked_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, nullable=False, index=True)
    status = Column(String, nullable=False)  # UP, DOWN, ERROR
    response_time_ms = Column(Integer, nullable=True)
    status_code = Column(Integer, nullable=True)
    error_message = Column(String, nullable=True)
    checked_at = Column(DateTime, default=datetime.utcnow, index=True)
