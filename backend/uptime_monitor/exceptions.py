"""Exceptions raised by the check engine."""
from typing import Dict


class UptimeMonitorError(Exception):
    """Base class for uptime monitor errors."""


class MonitorNotFoundError(UptimeMonitorError):
    """The monitor does not exist (or is not visible to the requester)."""

    def __init__(self, monitor_id: int):
        self.monitor_id = monitor_id
        super().__init__(f"Monitor {monitor_id} not found")


class MonitorInactiveError(UptimeMonitorError):
    """An instant check was requested for a paused monitor."""

    def __init__(self, monitor_id: int):
        self.monitor_id = monitor_id
        super().__init__(f"Cannot check paused monitor {monitor_id}")


class RoundError(UptimeMonitorError):
    """One or more monitors could not be recorded during a round.

    Raised only after every monitor in the round has resolved, so a failure
    here never hides results recorded for the other monitors.
    """

    def __init__(self, failures: Dict[int, BaseException], total: int):
        self.failures = failures
        self.total = total
        ids = ", ".join(str(monitor_id) for monitor_id in sorted(failures))
        super().__init__(f"{len(failures)}/{total} monitors failed to record: {ids}")
