"""Scheduler service - runs check rounds over every active monitor.

Round model:
- One round loads all active monitors and checks each of them in its own
  task. Every task is bounded by the probe timeout, so a round takes about
  as long as its slowest probe, not the sum of all probes.
- Tasks are isolated: a failure while recording one monitor never stops the
  others. The round waits for every task to resolve and only then reports
  the failures (``RoundError``).
- The per-monitor ``check_interval`` is stored but not used to skip
  monitors; every active monitor is checked on every round.
- Snapshot updates for a monitor are serialized through a per-monitor lock,
  so overlapping rounds in this process cannot lose an update.

The periodic trigger (``SchedulerService``) owns the only timer and just
calls ``RoundScheduler.run_round``.
"""
import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..exceptions import MonitorInactiveError, MonitorNotFoundError, RoundError
from ..models import STATUS_ERROR
from .aggregator import AggregateSnapshot, CheckResult, advance
from .metrics_sink import GraphiteSink, metrics_sink
from .probe import ProbeOutcome, ProbeService, probe_service
from .store import CheckStore, MonitorTarget, check_store

logger = logging.getLogger(__name__)


def build_metrics(result: CheckResult) -> Dict[str, float]:
    """Metrics forwarded to the sink for one check."""
    metrics: Dict[str, float] = {"status": 1 if result.is_up else 0}
    if result.response_time_ms is not None:
        metrics["response_time"] = result.response_time_ms
    if result.status_code is not None:
        metrics["status_code"] = result.status_code
    if result.error_message is not None:
        metrics["error"] = 1
    return metrics


class RoundScheduler:
    """Fans probes out over monitors and records each result."""

    def __init__(
        self,
        store: Optional[CheckStore] = None,
        probe: Optional[ProbeService] = None,
        sink: Optional[GraphiteSink] = None,
        max_concurrent_checks: Optional[int] = None,
    ):
        self.store = store or check_store
        self.probe = probe or probe_service
        self.sink = sink or metrics_sink
        if max_concurrent_checks is None:
            max_concurrent_checks = settings.max_concurrent_checks
        self.max_concurrent_checks = max_concurrent_checks
        self._locks: Dict[int, asyncio.Lock] = {}
        self._lock_users: Dict[int, int] = {}

    async def run_round(self) -> None:
        """Check every active monitor once.

        Raises:
            RoundError: after all monitors resolved, if any of them could
                not be recorded.
        """
        monitors = await self.store.list_active_monitors()
        logger.info(f"Starting uptime checks for {len(monitors)} monitors")
        if not monitors:
            return

        semaphore = None
        if self.max_concurrent_checks > 0:
            semaphore = asyncio.Semaphore(self.max_concurrent_checks)

        async def check_with_limit(monitor: MonitorTarget) -> CheckResult:
            if semaphore is None:
                return await self.check_monitor(monitor)
            async with semaphore:
                return await self.check_monitor(monitor)

        outcomes = await asyncio.gather(
            *[check_with_limit(m) for m in monitors],
            return_exceptions=True,
        )

        failures: Dict[int, BaseException] = {}
        for monitor, outcome in zip(monitors, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Error recording check for monitor {monitor.id} ({monitor.name}): {outcome!r}")
                failures[monitor.id] = outcome

        logger.info(
            f"Completed uptime checks for {len(monitors)} monitors "
            f"({len(monitors) - len(failures)} recorded, {len(failures)} failed)"
        )
        if failures:
            raise RoundError(failures, total=len(monitors))

    async def run_single(self, monitor_id: int) -> CheckResult:
        """Instant check of one monitor, rejected before probing if it is not active."""
        monitor = await self.store.get_monitor(monitor_id)
        if monitor is None:
            raise MonitorNotFoundError(monitor_id)
        if not monitor.is_active:
            raise MonitorInactiveError(monitor_id)
        return await self.check_monitor(monitor)

    async def check_monitor(self, monitor: MonitorTarget) -> CheckResult:
        """Probe, record and forward one monitor's check."""
        outcome = await self._probe(monitor)
        result = CheckResult(
            monitor_id=monitor.id,
            status=outcome.status,
            checked_at=datetime.utcnow(),
            response_time_ms=outcome.response_time_ms,
            status_code=outcome.status_code,
            error_message=outcome.error_message,
        )

        await self.record(result)

        if outcome.error_message:
            logger.debug(f"{monitor.name}: {result.status} ({outcome.error_message})")
        else:
            logger.debug(f"{monitor.name}: {result.status} ({result.response_time_ms}ms, {result.status_code})")

        try:
            await self.sink.forward(monitor.name, build_metrics(result))
        except Exception as e:
            logger.warning(f"Metrics forwarding failed for {monitor.name}: {e!r}")
        return result

    async def _probe(self, monitor: MonitorTarget) -> ProbeOutcome:
        try:
            return await self.probe.probe(monitor.url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Probe for monitor {monitor.id} raised: {e!r}")
            return ProbeOutcome(status=STATUS_ERROR, error_message=str(e) or e.__class__.__name__)

    async def record(self, result: CheckResult) -> Optional[AggregateSnapshot]:
        """Append the result and advance the monitor's snapshot in one transaction.

        If the monitor was deleted while its check was in flight, the result
        is still kept in history but no snapshot is written; returns None.
        """
        monitor_id = result.monitor_id
        lock = self._locks.setdefault(monitor_id, asyncio.Lock())
        self._lock_users[monitor_id] = self._lock_users.get(monitor_id, 0) + 1
        try:
            async with lock:
                async with self.store.transaction() as tx:
                    await tx.append_check_result(result)
                    if await tx.get_monitor(monitor_id) is None:
                        logger.info(f"Monitor {monitor_id} was deleted during its check, skipping stats update")
                        return None
                    previous = await tx.get_aggregate(monitor_id)
                    snapshot = advance(previous, result)
                    await tx.upsert_aggregate(monitor_id, snapshot)
            return snapshot
        finally:
            # Drop the lock once nobody is waiting on it
            self._lock_users[monitor_id] -= 1
            if self._lock_users[monitor_id] == 0:
                del self._lock_users[monitor_id]
                del self._locks[monitor_id]


class SchedulerService:
    """Periodic trigger calling ``run_round`` on a fixed cadence."""

    def __init__(self, round_scheduler: Optional[RoundScheduler] = None):
        self.round_scheduler = round_scheduler or RoundScheduler()
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self, interval_seconds: Optional[int] = None):
        """Start the scheduler."""
        if self._running:
            return

        interval = interval_seconds or settings.round_interval_seconds
        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._run_round,
            trigger=IntervalTrigger(seconds=interval),
            id="uptime_round",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=interval,
        )
        self.scheduler.start()
        self._running = True
        logger.info(f"Scheduler started (interval={interval}s)")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._running

    async def _run_round(self):
        try:
            await self.round_scheduler.run_round()
        except RoundError as e:
            logger.error(f"Round finished with failures: {e}")
        except Exception as e:
            logger.error(f"Error running round: {e!r}")


# Global instances
round_scheduler = RoundScheduler()
scheduler_service = SchedulerService(round_scheduler)
