"""Services for probing, aggregation, scheduling and metrics forwarding."""
from .probe import ProbeService, ProbeOutcome
from .aggregator import AggregateSnapshot, CheckResult, advance, replay
from .store import CheckStore, MonitorTarget
from .metrics_sink import GraphiteSink
from .scheduler import RoundScheduler, SchedulerService

__all__ = [
    "ProbeService",
    "ProbeOutcome",
    "AggregateSnapshot",
    "CheckResult",
    "advance",
    "replay",
    "CheckStore",
    "MonitorTarget",
    "GraphiteSink",
    "RoundScheduler",
    "SchedulerService",
]
