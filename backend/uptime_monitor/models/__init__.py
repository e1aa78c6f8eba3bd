"""Database models."""
from .monitor import Monitor
from .uptime_check import UptimeCheck, STATUS_UP, STATUS_DOWN, STATUS_ERROR
from .monitor_stats import MonitorStats

__all__ = ["Monitor", "UptimeCheck", "MonitorStats", "STATUS_UP", "STATUS_DOWN", "STATUS_ERROR"]
