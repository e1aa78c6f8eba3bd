from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from conftest import ExplodingSink, FakeProbe, FakeStore, RecordingSink, make_monitor
from uptime_monitor.exceptions import MonitorInactiveError, MonitorNotFoundError, RoundError
from uptime_monitor.services.aggregator import CheckResult
from uptime_monitor.services.probe import ProbeOutcome, ProbeService
from uptime_monitor.services.scheduler import RoundScheduler, SchedulerService, build_metrics


def _scheduler(store, probe=None, sink=None, max_concurrent_checks=0) -> RoundScheduler:
    return RoundScheduler(
        store=store,
        probe=probe or FakeProbe(),
        sink=sink or RecordingSink(),
        max_concurrent_checks=max_concurrent_checks,
    )


@pytest.mark.asyncio
async def test_round_checks_every_active_monitor() -> None:
    store = FakeStore([make_monitor(1), make_monitor(2), make_monitor(3, active=False)])
    probe = FakeProbe()

    await _scheduler(store, probe).run_round()

    assert sorted(c.monitor_id for c in store.checks) == [1, 2]
    assert sorted(probe.calls) == sorted([store.monitors[1].url, store.monitors[2].url])
    assert set(store.aggregates) == {1, 2}
    assert store.aggregates[1].total_checks == 1


@pytest.mark.asyncio
async def test_round_with_no_active_monitors_does_nothing() -> None:
    store = FakeStore([make_monitor(1, active=False)])
    probe = FakeProbe()

    await _scheduler(store, probe).run_round()

    assert store.checks == []
    assert probe.calls == []


@pytest.mark.asyncio
async def test_hanging_probes_do_not_hold_back_other_monitors() -> None:
    monitors = [make_monitor(i, url=f"https://m{i}.example.com/") for i in range(1, 6)]
    hanging_hosts = {"m2.example.com", "m4.example.com"}

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host in hanging_hosts:
            await asyncio.sleep(30)
        return httpx.Response(200)

    probe = ProbeService(timeout=0.2, transport=httpx.MockTransport(handler))
    store = FakeStore(monitors)

    started = time.monotonic()
    await _scheduler(store, probe).run_round()
    elapsed = time.monotonic() - started

    assert len(store.checks) == 5
    by_id = {c.monitor_id: c for c in store.checks}
    for monitor_id in (1, 3, 5):
        assert by_id[monitor_id].status == "UP"
        assert by_id[monitor_id].status_code == 200
        assert by_id[monitor_id].response_time_ms < 200
    for monitor_id in (2, 4):
        assert by_id[monitor_id].status == "DOWN"
        assert by_id[monitor_id].status_code is None
        assert "timeout" in by_id[monitor_id].error_message.lower()
    # Bounded by the slowest probe, not by the sum of the timeouts
    assert elapsed < 0.4 + 1.0
    # Fast monitors were recorded before the slow ones timed out
    assert sorted(c.monitor_id for c in store.checks[:3]) == [1, 3, 5]


@pytest.mark.asyncio
async def test_probe_exception_is_recorded_as_error() -> None:
    monitor = make_monitor(1)
    store = FakeStore([monitor, make_monitor(2)])
    probe = FakeProbe({monitor.url: RuntimeError("probe crashed")})

    await _scheduler(store, probe).run_round()

    error = store.checks_for(1)[0]
    assert error.status == "ERROR"
    assert error.error_message == "probe crashed"
    assert error.response_time_ms is None
    assert store.checks_for(2)[0].status == "UP"


@pytest.mark.asyncio
async def test_storage_failure_is_isolated_and_reported_after_round() -> None:
    store = FakeStore([make_monitor(1), make_monitor(2), make_monitor(3)], fail_append_for={2})
    sink = RecordingSink()

    with pytest.raises(RoundError) as excinfo:
        await _scheduler(store, sink=sink).run_round()

    assert set(excinfo.value.failures) == {2}
    assert excinfo.value.total == 3
    assert isinstance(excinfo.value.failures[2], RuntimeError)
    assert sorted(c.monitor_id for c in store.checks) == [1, 3]
    assert 2 not in store.aggregates
    # Nothing is forwarded for a check that was not recorded
    assert sorted(name for name, _ in sink.forwarded) == ["Monitor 1", "Monitor 3"]


@pytest.mark.asyncio
async def test_unreachable_sink_does_not_block_recording() -> None:
    store = FakeStore([make_monitor(1), make_monitor(2)])

    await _scheduler(store, sink=ExplodingSink()).run_round()

    assert len(store.checks) == 2
    assert store.aggregates[1].total_checks == 1
    assert store.aggregates[2].total_checks == 1


@pytest.mark.asyncio
async def test_results_are_forwarded_to_sink() -> None:
    monitor = make_monitor(1)
    store = FakeStore([monitor])
    probe = FakeProbe({monitor.url: ProbeOutcome(status="DOWN", response_time_ms=15, status_code=503)})
    sink = RecordingSink()

    await _scheduler(store, probe, sink).run_round()

    assert sink.forwarded == [("Monitor 1", {"status": 0, "response_time": 15, "status_code": 503})]


@pytest.mark.asyncio
async def test_run_single_rejects_inactive_monitor_before_probing() -> None:
    monitor = make_monitor(7, active=False)
    store = FakeStore([monitor])
    probe = FakeProbe()

    with pytest.raises(MonitorInactiveError):
        await _scheduler(store, probe).run_single(7)

    assert probe.calls == []
    assert store.checks == []
    assert store.aggregates == {}


@pytest.mark.asyncio
async def test_run_single_rejects_unknown_monitor() -> None:
    store = FakeStore([])

    with pytest.raises(MonitorNotFoundError):
        await _scheduler(store).run_single(99)


@pytest.mark.asyncio
async def test_run_single_records_and_returns_result() -> None:
    monitor = make_monitor(3)
    store = FakeStore([monitor])
    probe = FakeProbe({monitor.url: ProbeOutcome(status="UP", response_time_ms=80, status_code=204)})

    result = await _scheduler(store, probe).run_single(3)

    assert result.status == "UP"
    assert result.status_code == 204
    assert store.checks == [result]
    assert store.aggregates[3].avg_response_time == 80


@pytest.mark.asyncio
async def test_overlapping_checks_of_one_monitor_lose_no_update() -> None:
    monitor = make_monitor(1)
    store = FakeStore([monitor], write_delay=0.01)
    scheduler = _scheduler(store)

    await asyncio.gather(*[scheduler.check_monitor(monitor) for _ in range(5)])

    assert len(store.checks) == 5
    assert store.aggregates[1].total_checks == 5
    assert store.aggregates[1].successful_checks == 5
    assert scheduler._locks == {}


@pytest.mark.asyncio
async def test_concurrency_cap_limits_in_flight_probes() -> None:
    async def slow() -> ProbeOutcome:
        await asyncio.sleep(0.02)
        return ProbeOutcome(status="UP", response_time_ms=20, status_code=200)

    monitors = [make_monitor(i) for i in range(1, 7)]
    probe = FakeProbe({m.url: slow for m in monitors})
    store = FakeStore(monitors)

    await _scheduler(store, probe, max_concurrent_checks=2).run_round()

    assert len(store.checks) == 6
    assert probe.peak_in_flight == 2


@pytest.mark.asyncio
async def test_unbounded_round_runs_all_probes_at_once() -> None:
    async def slow() -> ProbeOutcome:
        await asyncio.sleep(0.02)
        return ProbeOutcome(status="UP", response_time_ms=20, status_code=200)

    monitors = [make_monitor(i) for i in range(1, 7)]
    probe = FakeProbe({m.url: slow for m in monitors})

    await _scheduler(FakeStore(monitors), probe).run_round()

    assert probe.peak_in_flight == 6


def test_build_metrics_for_failed_probe() -> None:
    result = CheckResult(
        monitor_id=1,
        status="DOWN",
        checked_at=None,
        response_time_ms=30000,
        error_message="Request timeout after 30s",
    )

    assert build_metrics(result) == {"status": 0, "response_time": 30000, "error": 1}


@pytest.mark.asyncio
async def test_scheduler_service_registers_round_job() -> None:
    service = SchedulerService(_scheduler(FakeStore([])))

    service.start(interval_seconds=60)
    try:
        assert service.running is True
        job = service.scheduler.get_job("uptime_round")
        assert job is not None
        assert job.trigger.interval.total_seconds() == 60
    finally:
        service.stop()

    assert service.running is False


@pytest.mark.asyncio
async def test_scheduler_service_job_logs_round_errors(caplog) -> None:
    store = FakeStore([make_monitor(1)], fail_append_for={1})
    service = SchedulerService(_scheduler(store))

    with caplog.at_level("ERROR"):
        await service._run_round()

    assert "Round finished with failures" in caplog.text


@pytest.mark.asyncio
async def test_check_of_deleted_monitor_skips_aggregate() -> None:
    monitor = make_monitor(1)
    store = FakeStore([monitor])

    async def delete_then_answer() -> ProbeOutcome:
        del store.monitors[1]
        return ProbeOutcome(status="DOWN", response_time_ms=15, status_code=503)

    scheduler = _scheduler(store, FakeProbe({monitor.url: delete_then_answer}))

    result = await scheduler.check_monitor(monitor)

    assert result.status == "DOWN"
    assert [c.monitor_id for c in store.checks] == [1]
    assert store.aggregates == {}
    assert scheduler._locks == {}
