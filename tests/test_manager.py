import logging

from cbandwidth.endpoints import Endpoint
from cbandwidth.measurements.manager import MeasurementRunner
from cbandwidth.measurements.models import Direction, OutcomeStatus
from cbandwidth.sinks import SinkHTTPError
from conftest import (
    IPERF_ERROR,
    IPERF_REPORT,
    NETPERF_ERROR,
    NETPERF_REPORT,
    FakeExecutor,
    RecordingDispatcher,
    build_config,
)

ENDPOINT = Endpoint("10.0.0.5", "host1")


def _runner(executor, dispatcher=None, config=None):
    return MeasurementRunner(
        config or build_config(),
        executor,
        dispatcher or RecordingDispatcher(),
        clock=lambda: 1700000000.4,
    )


def test_successful_measurement_is_sent():
    dispatcher = RecordingDispatcher()
    outcome = _runner(FakeExecutor(), dispatcher).measure(ENDPOINT, Direction.DOWNLOAD)

    assert outcome.status is OutcomeStatus.OK
    assert outcome.measurement.bits_per_second == 12345000
    assert [p.data for p in dispatcher.payloads] == [b"bandwidth.download.host1 12345000 1700000000\n"]


def test_failure_marker_skips_send_and_logs(caplog):
    dispatcher = RecordingDispatcher()
    executor = FakeExecutor(default=IPERF_REPORT + "\n" + IPERF_ERROR)
    with caplog.at_level(logging.ERROR):
        outcome = _runner(executor, dispatcher).measure(ENDPOINT, Direction.UPLOAD)

    assert outcome.status is OutcomeStatus.PROBE_FAILURE
    assert dispatcher.payloads == []
    assert "10.0.0.5:5201" in caplog.text


def test_execution_error_without_marker_is_probe_error():
    dispatcher = RecordingDispatcher()
    executor = FakeExecutor(default="", errors={("10.0.0.5", "download"): "iperf3 timed out after 35s"})
    outcome = _runner(executor, dispatcher).measure(ENDPOINT, Direction.DOWNLOAD)
    assert outcome.status is OutcomeStatus.PROBE_ERROR
    assert dispatcher.payloads == []


def test_format_error_skips_send(caplog):
    dispatcher = RecordingDispatcher()
    with caplog.at_level(logging.ERROR):
        outcome = _runner(FakeExecutor(default="abc"), dispatcher).measure(ENDPOINT, Direction.DOWNLOAD)
    assert outcome.status is OutcomeStatus.FORMAT_ERROR
    assert dispatcher.payloads == []
    assert "no valid integer" in caplog.text


def test_sink_error_is_reported_on_outcome():
    error = SinkHTTPError("unexpected status code: 500", "http://influx.example/write", status_code=500)
    outcome = _runner(FakeExecutor(), RecordingDispatcher(error=error)).measure(ENDPOINT, Direction.DOWNLOAD)
    assert outcome.status is OutcomeStatus.SINK_ERROR
    assert outcome.error == "unexpected status code: 500"
    assert outcome.measurement is not None


def test_iperf_endpoint_measures_download_then_upload():
    executor = FakeExecutor()
    outcomes = _runner(executor).measure_endpoint(ENDPOINT)
    assert executor.calls == [("10.0.0.5", "download"), ("10.0.0.5", "upload")]
    assert [o.direction for o in outcomes] == [Direction.DOWNLOAD, Direction.UPLOAD]


def test_download_failure_does_not_block_upload():
    executor = FakeExecutor(outputs={("10.0.0.5", "download"): IPERF_ERROR})
    outcomes = _runner(executor).measure_endpoint(ENDPOINT)
    assert [o.status for o in outcomes] == [OutcomeStatus.PROBE_FAILURE, OutcomeStatus.OK]


def test_netperf_endpoint_is_download_only_with_its_own_field():
    dispatcher = RecordingDispatcher()
    config = build_config(tool="netperf", sink_kind="influx")
    outcomes = _runner(FakeExecutor(default=NETPERF_REPORT), dispatcher, config).measure_endpoint(ENDPOINT)

    assert [o.direction for o in outcomes] == [Direction.DOWNLOAD]
    assert dispatcher.payloads[0].data == (
        b"bandwidth,testType=bandwidth.download,iperfDestination=host1,iperfSource=probe-host "
        b"iperfDownloadResultsBps=9387410"
    )


def test_netperf_marker_is_a_failure():
    config = build_config(tool="netperf")
    outcomes = _runner(FakeExecutor(default=NETPERF_ERROR), config=config).measure_endpoint(ENDPOINT)
    assert outcomes[0].status is OutcomeStatus.PROBE_FAILURE


def test_unexpected_exception_becomes_outcome():
    class ExplodingExecutor(FakeExecutor):
        def probe(self, endpoint, direction):
            raise RuntimeError("boom")

    outcomes = _runner(ExplodingExecutor()).measure_endpoint(ENDPOINT)
    assert [o.status for o in outcomes] == [OutcomeStatus.PROBE_ERROR, OutcomeStatus.PROBE_ERROR]
