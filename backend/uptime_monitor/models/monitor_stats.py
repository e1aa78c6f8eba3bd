"""MonitorStats model - running aggregate per monitor."""
from sqlalchemy import Column, Integer, Float, String, DateTime, ForeignKey

from ..database import Base


class MonitorStats(Base):
    """Aggregate snapshot, one row per monitor, upserted after every check."""

    __tablename__ = "monitor_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False, unique=True)
    uptime_percentage = Column(Float, nullable=False, default=0)
    avg_response_time = Column(Float, nullable=False, default=0)
    total_checks = Column(Integer, nullable=False, default=0)
    successful_checks = Column(Integer, nullable=False, default=0)
    # Denominator of avg_response_time; NULL on rows written before it existed
    latency_checks = Column(Integer, nullable=True)
    last_status = Column(String, nullable=False)
    last_check_time = Column(DateTime, nullable=False)
    last_response_time = Column(Integer, nullable=True)
