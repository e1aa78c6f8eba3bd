"""Check store - persistence of monitors, check history and aggregate stats.

The round scheduler only talks to storage through this module. Every write
for one check happens inside a single ``transaction()`` so the appended
history row and the upserted snapshot commit together.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import async_session
from ..models import Monitor, MonitorStats, UptimeCheck
from ..utils.db_utils import retry_on_lock
from .aggregator import AggregateSnapshot, CheckResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitorTarget:
    """Read-only view of a monitor as seen by the check engine."""
    id: int
    name: str
    url: str
    is_active: bool
    check_interval: int = 60
    owner_id: Optional[str] = None

    @classmethod
    def from_model(cls, monitor: Monitor) -> "MonitorTarget":
        return cls(
            id=monitor.id,
            name=monitor.name,
            url=monitor.url,
            is_active=bool(monitor.is_active),
            check_interval=monitor.check_interval,
            owner_id=monitor.owner_id,
        )


def snapshot_from_model(stats: MonitorStats) -> AggregateSnapshot:
    return AggregateSnapshot(
        monitor_id=stats.monitor_id,
        uptime_percentage=stats.uptime_percentage,
        avg_response_time=stats.avg_response_time,
        total_checks=stats.total_checks,
        successful_checks=stats.successful_checks,
        last_status=stats.last_status,
        last_check_time=stats.last_check_time,
        last_response_time=stats.last_response_time,
        latency_checks=stats.latency_checks,
    )


def check_result_from_model(check: UptimeCheck) -> CheckResult:
    return CheckResult(
        monitor_id=check.monitor_id,
        status=check.status,
        checked_at=check.checked_at,
        response_time_ms=check.response_time_ms,
        status_code=check.status_code,
        error_message=check.error_message,
    )


class StoreTransaction:
    """Storage operations bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_active_monitors(self) -> List[MonitorTarget]:
        result = await self.session.execute(
            select(Monitor).where(Monitor.is_active.is_(True)).order_by(Monitor.id)
        )
        return [MonitorTarget.from_model(m) for m in result.scalars().all()]

    async def get_monitor(self, monitor_id: int) -> Optional[MonitorTarget]:
        monitor = await self.session.get(Monitor, monitor_id)
        return MonitorTarget.from_model(monitor) if monitor else None

    async def _get_stats_row(self, monitor_id: int) -> Optional[MonitorStats]:
        result = await self.session.execute(
            select(MonitorStats).where(MonitorStats.monitor_id == monitor_id)
        )
        return result.scalar_one_or_none()

    async def get_aggregate(self, monitor_id: int) -> Optional[AggregateSnapshot]:
        stats = await self._get_stats_row(monitor_id)
        return snapshot_from_model(stats) if stats else None

    async def upsert_aggregate(self, monitor_id: int, snapshot: AggregateSnapshot) -> None:
        stats = await self._get_stats_row(monitor_id)
        if stats is None:
            stats = MonitorStats(monitor_id=monitor_id)
            self.session.add(stats)

        stats.uptime_percentage = snapshot.uptime_percentage
        stats.avg_response_time = snapshot.avg_response_time
        stats.total_checks = snapshot.total_checks
        stats.successful_checks = snapshot.successful_checks
        stats.latency_checks = snapshot.latency_checks
        stats.last_status = snapshot.last_status
        stats.last_check_time = snapshot.last_check_time
        stats.last_response_time = snapshot.last_response_time
        await self.session.flush()

    async def append_check_result(self, result: CheckResult) -> None:
        self.session.add(UptimeCheck(
            monitor_id=result.monitor_id,
            status=result.status,
            response_time_ms=result.response_time_ms,
            status_code=result.status_code,
            error_message=result.error_message,
            checked_at=result.checked_at,
        ))
        await self.session.flush()


class CheckStore:
    """SQLAlchemy-backed store. Each call outside a transaction gets its own session."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or async_session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreTransaction]:
        """Unit of work; commits on clean exit, rolls back on error."""
        async with self.session_factory() as session:
            yield StoreTransaction(session)
            await retry_on_lock(session.commit)

    async def list_active_monitors(self) -> List[MonitorTarget]:
        async with self.transaction() as tx:
            return await tx.list_active_monitors()

    async def get_monitor(self, monitor_id: int) -> Optional[MonitorTarget]:
        async with self.transaction() as tx:
            return await tx.get_monitor(monitor_id)

    async def get_aggregate(self, monitor_id: int) -> Optional[AggregateSnapshot]:
        async with self.transaction() as tx:
            return await tx.get_aggregate(monitor_id)

    async def upsert_aggregate(self, monitor_id: int, snapshot: AggregateSnapshot) -> None:
        async with self.transaction() as tx:
            await tx.upsert_aggregate(monitor_id, snapshot)

    async def append_check_result(self, result: CheckResult) -> None:
        async with self.transaction() as tx:
            await tx.append_check_result(result)


# Global instance
check_store = CheckStore()
