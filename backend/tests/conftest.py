from __future__ import annotations

import asyncio
import os
import tempfile
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Dict, List, Optional, Union

# Point the engine at a throwaway SQLite file before the package is imported
os.environ["DATA_PATH"] = tempfile.mkdtemp(prefix="uptime-monitor-tests-")
os.environ.pop("DATABASE_URL", None)
os.environ.pop("GRAPHITE_HOST", None)
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest
import pytest_asyncio

from uptime_monitor.database import Base, engine
from uptime_monitor.services.aggregator import AggregateSnapshot, CheckResult
from uptime_monitor.services.probe import ProbeOutcome
from uptime_monitor.services.store import MonitorTarget


@pytest_asyncio.fixture
async def db():
    """Fresh schema for every test; pooled connections are dropped afterwards."""
    from uptime_monitor import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


ProbeBehaviour = Union[ProbeOutcome, Callable[[], Awaitable[ProbeOutcome]], Exception]


class FakeProbe:
    """Probe double keyed by URL; tracks calls and peak concurrency."""

    def __init__(self, behaviours: Optional[Dict[str, ProbeBehaviour]] = None, default: Optional[ProbeOutcome] = None):
        self.behaviours = behaviours or {}
        self.default = default or ProbeOutcome(status="UP", response_time_ms=42, status_code=200)
        self.calls: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def probe(self, url: str) -> ProbeOutcome:
        self.calls.append(url)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            behaviour = self.behaviours.get(url, self.default)
            if isinstance(behaviour, Exception):
                raise behaviour
            if callable(behaviour):
                return await behaviour()
            await asyncio.sleep(0)
            return behaviour
        finally:
            self.in_flight -= 1


class FakeStore:
    """In-memory implementation of the store contract."""

    def __init__(self, monitors: List[MonitorTarget], fail_append_for=(), write_delay: float = 0):
        self.monitors = {m.id: m for m in monitors}
        self.checks: List[CheckResult] = []
        self.aggregates: Dict[int, AggregateSnapshot] = {}
        self.fail_append_for = set(fail_append_for)
        self.write_delay = write_delay
        self.committed = 0

    @asynccontextmanager
    async def transaction(self):
        yield self
        self.committed += 1

    async def list_active_monitors(self) -> List[MonitorTarget]:
        return [m for m in self.monitors.values() if m.is_active]

    async def get_monitor(self, monitor_id: int) -> Optional[MonitorTarget]:
        return self.monitors.get(monitor_id)

    async def get_aggregate(self, monitor_id: int) -> Optional[AggregateSnapshot]:
        snapshot = self.aggregates.get(monitor_id)
        if self.write_delay:
            # Widen the read-modify-write window
            await asyncio.sleep(self.write_delay)
        return snapshot

    async def upsert_aggregate(self, monitor_id: int, snapshot: AggregateSnapshot) -> None:
        self.aggregates[monitor_id] = snapshot

    async def append_check_result(self, result: CheckResult) -> None:
        if result.monitor_id in self.fail_append_for:
            raise RuntimeError(f"storage unavailable for monitor {result.monitor_id}")
        self.checks.append(result)

    def checks_for(self, monitor_id: int) -> List[CheckResult]:
        return [c for c in self.checks if c.monitor_id == monitor_id]


class RecordingSink:
    def __init__(self):
        self.forwarded = []

    async def forward(self, monitor_name, metrics):
        self.forwarded.append((monitor_name, dict(metrics)))
        return True


class ExplodingSink:
    async def forward(self, monitor_name, metrics):
        raise ConnectionRefusedError("graphite unreachable")


def make_monitor(monitor_id: int, active: bool = True, url: Optional[str] = None) -> MonitorTarget:
    return MonitorTarget(
        id=monitor_id,
        name=f"Monitor {monitor_id}",
        url=url or f"https://service-{monitor_id}.example.com/health",
        is_active=active,
    )
