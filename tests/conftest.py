"""Shared fixtures for the bandwidth monitor tests."""

from __future__ import annotations

import pytest

from cbandwidth.config import AppConfig, LoggingConfig, ProbeConfig, ScheduleConfig, SinkConfig
from cbandwidth.endpoints import Endpoint
from cbandwidth.measurements.models import ProbeResult

IPERF_REPORT = """\
Connecting to host 10.0.0.5, port 5201
[  5] local 10.0.0.2 port 50820 connected to 10.0.0.5 port 5201
[ ID] Interval           Transfer     Bitrate         Retr  Cwnd
[  5]   0.00-1.00   sec  11.2 MBytes  94017 Kbits/sec    0    427 KBytes
[  5]   1.00-2.00   sec  10.9 MBytes  91226 Kbits/sec    0    427 KBytes
- - - - - - - - - - - - - - - - - - - - - - - - -
[ ID] Interval           Transfer     Bitrate         Retr
[  5]   0.00-5.00   sec  54.6 MBytes  91620 Kbits/sec    0             sender
[  5]   0.00-5.04   sec  53.9 MBytes  12345 Kbits/sec                  receiver

iperf Done."""

IPERF_PARALLEL_REPORT = """\
[ ID] Interval           Transfer     Bitrate         Retr
[  5]   0.00-5.00   sec  27.3 MBytes  45810 Kbits/sec    0             sender
[  5]   0.00-5.04   sec  27.0 MBytes  44861 Kbits/sec                  receiver
[  7]   0.00-5.00   sec  27.3 MBytes  45810 Kbits/sec    0             sender
[  7]   0.00-5.04   sec  27.0 MBytes  44871 Kbits/sec                  receiver
[SUM]   0.00-5.00   sec  54.6 MBytes  91620 Kbits/sec    0             sender
[SUM]   0.00-5.04   sec  53.9 MBytes  89732 Kbits/sec                  receiver

iperf Done."""

IPERF_ERROR = "iperf3: error - unable to connect to server: Connection refused"

NETPERF_REPORT = "131072  16384  16384    5.00     9387.41   "

NETPERF_ERROR = (
    "establish control: are you sure there is a netserver listening on 10.0.0.5 at port 12865?\n"
    "establish_control could not establish the control connection from 0.0.0.0 port 0 "
    "address family AF_UNSPEC to 10.0.0.5 port 12865 address family AF_UNSPEC"
)


def build_config(
    endpoints=(Endpoint("10.0.0.5", "host1"),),
    tool="iperf3",
    sink_kind="graphite",
    concurrency=1,
    interval=300,
    **sink_kwargs,
) -> AppConfig:
    sink_values = {
        "kind": sink_kind,
        "graphite_address": "127.0.0.1",
        "graphite_port": 2003,
        "influx_url": "http://influx.example/write",
        "email": "ops@example.com",
        "token": "secret",
    }
    sink_values.update(sink_kwargs)
    return AppConfig(
        probe=ProbeConfig(tool=tool, use_container=False),
        schedule=ScheduleConfig(interval=interval, concurrency=concurrency),
        sink=SinkConfig(**sink_values),
        logging=LoggingConfig(),
        endpoints=tuple(endpoints),
        hostname="probe-host",
    )


@pytest.fixture
def app_config() -> AppConfig:
    return build_config()


class FakeExecutor:
    """Returns canned probe output keyed by (address, direction value)."""

    def __init__(self, outputs=None, default=IPERF_REPORT, errors=None, on_probe=None):
        self.outputs = outputs or {}
        self.errors = errors or {}
        self.default = default
        self.on_probe = on_probe
        self.calls = []

    def probe(self, endpoint, direction):
        key = (endpoint.address, direction.value)
        self.calls.append(key)
        if self.on_probe is not None:
            self.on_probe(endpoint, direction)
        return ProbeResult(
            endpoint=endpoint,
            direction=direction,
            raw_text=self.outputs.get(key, self.default),
            execution_error=self.errors.get(key),
        )


class RecordingDispatcher:
    def __init__(self, error=None):
        self.error = error
        self.payloads = []

    def send(self, payload):
        self.payloads.append(payload)
        return self.error
