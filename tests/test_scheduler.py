import threading
import time

from cbandwidth.endpoints import Endpoint
from cbandwidth.measurements.manager import MeasurementRunner
from cbandwidth.measurements.models import OutcomeStatus
from cbandwidth.scheduler import SweepScheduler
from conftest import IPERF_ERROR, FakeExecutor, RecordingDispatcher, build_config

ENDPOINTS = (
    Endpoint("10.0.0.1", "one"),
    Endpoint("10.0.0.2", "two"),
    Endpoint("10.0.0.3", "three"),
)


def _scheduler(executor, concurrency=1, interval=300, endpoints=ENDPOINTS, stop_event=None):
    config = build_config(endpoints=endpoints, concurrency=concurrency, interval=interval)
    runner = MeasurementRunner(config, executor, RecordingDispatcher())
    return SweepScheduler(config, runner, stop_event)


def test_sweep_visits_endpoints_in_order():
    executor = FakeExecutor()
    report = _scheduler(executor).run_sweep()

    assert executor.calls == [
        ("10.0.0.1", "download"), ("10.0.0.1", "upload"),
        ("10.0.0.2", "download"), ("10.0.0.2", "upload"),
        ("10.0.0.3", "download"), ("10.0.0.3", "upload"),
    ]
    assert len(report.outcomes) == 6
    assert report.failures == []


def test_failed_endpoint_does_not_stop_the_sweep():
    executor = FakeExecutor(outputs={
        ("10.0.0.1", "download"): IPERF_ERROR,
        ("10.0.0.1", "upload"): "abc",
    })
    report = _scheduler(executor).run_sweep()

    statuses = [o.status for o in report.outcomes]
    assert statuses[:2] == [OutcomeStatus.PROBE_FAILURE, OutcomeStatus.FORMAT_ERROR]
    assert statuses[2:] == [OutcomeStatus.OK] * 4


def test_concurrent_sweep_reports_in_endpoint_order():
    def slow_first(endpoint, direction):
        if endpoint.address == "10.0.0.1":
            time.sleep(0.2)

    executor = FakeExecutor(on_probe=slow_first)
    report = _scheduler(executor, concurrency=3).run_sweep()

    assert [o.endpoint.address for o in report.outcomes] == [
        "10.0.0.1", "10.0.0.1", "10.0.0.2", "10.0.0.2", "10.0.0.3", "10.0.0.3",
    ]
    assert [o.direction.value for o in report.outcomes] == ["download", "upload"] * 3


def test_stop_event_cancels_remaining_endpoints():
    stop_event = threading.Event()

    def stop_after_first(endpoint, direction):
        stop_event.set()

    executor = FakeExecutor(on_probe=stop_after_first)
    report = _scheduler(executor, stop_event=stop_event).run_sweep()

    assert executor.calls == [("10.0.0.1", "download")]
    assert report.cancelled
    assert [o.status for o in report.outcomes][1:] == [OutcomeStatus.CANCELLED] * 5


def test_empty_registry_produces_empty_report():
    report = _scheduler(FakeExecutor(), endpoints=()).run_sweep()
    assert report.outcomes == []


def test_background_scheduler_runs_first_sweep_and_shuts_down():
    executor = FakeExecutor()
    scheduler = _scheduler(executor, interval=3600)
    scheduler.start()
    try:
        deadline = time.time() + 5
        while scheduler.last_report is None and time.time() < deadline:
            time.sleep(0.05)
    finally:
        scheduler.shutdown()

    assert scheduler.last_report is not None
    assert len(executor.calls) == 6
    assert scheduler.stop_event.is_set()
    assert not scheduler.started


def test_run_forever_returns_when_stop_event_is_set():
    stop_event = threading.Event()
    scheduler = _scheduler(FakeExecutor(), interval=3600, stop_event=stop_event)

    thread = threading.Thread(target=scheduler.run_forever, daemon=True)
    thread.start()
    deadline = time.time() + 5
    while scheduler.last_report is None and time.time() < deadline:
        time.sleep(0.05)
    stop_event.set()
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert scheduler.last_report is not None


def test_stop_requested_before_start_is_honoured():
    stop_event = threading.Event()
    stop_event.set()
    executor = FakeExecutor()
    scheduler = _scheduler(executor, stop_event=stop_event)

    thread = threading.Thread(target=scheduler.run_forever, daemon=True)
    thread.start()
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert stop_event.is_set()
    assert not scheduler.started
    assert executor.calls == []
