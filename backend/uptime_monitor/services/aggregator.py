"""Stats aggregator - folds check results into a running snapshot.

Pure functions only: no I/O, no clock, no exceptions. The snapshot for a
monitor can always be rebuilt by replaying its history in time order.

Average latency policy: the mean is taken over checks that carried a
latency, using ``latency_checks`` as its denominator. Snapshots written
before that counter existed have ``latency_checks=None``; for those the
total check count is used as the denominator, which is what older
releases always did (a check without latency then still dilutes the
next update).
"""
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, Optional

from ..models import STATUS_UP


@dataclass(frozen=True)
class CheckResult:
    """One observation of a monitor, as appended to history."""
    monitor_id: int
    status: str  # UP, DOWN, ERROR
    checked_at: datetime
    response_time_ms: Optional[int] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None

    @property
    def is_up(self) -> bool:
        return self.status == STATUS_UP


@dataclass(frozen=True)
class AggregateSnapshot:
    """Running statistics for one monitor."""
    monitor_id: int
    uptime_percentage: float
    avg_response_time: float
    total_checks: int
    successful_checks: int
    last_status: str
    last_check_time: datetime
    last_response_time: Optional[int] = None
    latency_checks: Optional[int] = None


def uptime_percentage(successful_checks: int, total_checks: int) -> float:
    if total_checks == 0:
        return 0.0
    return successful_checks / total_checks * 100


def _initial(result: CheckResult) -> AggregateSnapshot:
    has_latency = result.response_time_ms is not None
    successful = 1 if result.is_up else 0
    return AggregateSnapshot(
        monitor_id=result.monitor_id,
        uptime_percentage=uptime_percentage(successful, 1),
        avg_response_time=float(result.response_time_ms) if has_latency else 0.0,
        total_checks=1,
        successful_checks=successful,
        last_status=result.status,
        last_check_time=result.checked_at,
        last_response_time=result.response_time_ms,
        latency_checks=1 if has_latency else 0,
    )


def advance(previous: Optional[AggregateSnapshot], result: CheckResult) -> AggregateSnapshot:
    """Return the snapshot that follows ``previous`` once ``result`` is counted."""
    if previous is None:
        return _initial(result)

    total = previous.total_checks + 1
    successful = previous.successful_checks + (1 if result.is_up else 0)

    latency_checks = previous.latency_checks
    avg = previous.avg_response_time
    if result.response_time_ms is not None:
        if latency_checks is None:
            # Legacy row: the denominator is the total check count
            avg = (previous.avg_response_time * previous.total_checks + result.response_time_ms) / total
        else:
            latency_checks += 1
            avg = (previous.avg_response_time * (latency_checks - 1) + result.response_time_ms) / latency_checks

    return replace(
        previous,
        uptime_percentage=uptime_percentage(successful, total),
        avg_response_time=avg,
        total_checks=total,
        successful_checks=successful,
        last_status=result.status,
        last_check_time=result.checked_at,
        last_response_time=result.response_time_ms,
        latency_checks=latency_checks,
    )


def replay(results: Iterable[CheckResult]) -> Optional[AggregateSnapshot]:
    """Rebuild a snapshot from history, oldest result first."""
    snapshot = None
    for result in sorted(results, key=lambda r: r.checked_at):
        snapshot = advance(snapshot, result)
    return snapshot
