"""Wire formatting of measurements for the supported TSDB sinks."""

from __future__ import annotations

from .config import SINK_GRAPHITE, SINK_INFLUX, SINK_LOG, AppConfig
from .measurements.models import Direction, Measurement, ProbeTool, SinkPayload

# Dashboards already key on these names, iperf3 and netperf differ on purpose.
INFLUX_FIELDS = {
    ProbeTool.IPERF3: "iperfResultsBps",
    ProbeTool.NETPERF: "iperfDownloadResultsBps",
}


def prefix_for(direction: Direction, config: AppConfig) -> str:
    if direction is Direction.UPLOAD:
        return config.sink.upload_prefix
    return config.sink.download_prefix


def graphite_line(measurement: Measurement, config: AppConfig) -> str:
    return "%s.%s %d %d\n" % (
        prefix_for(measurement.direction, config),
        measurement.endpoint_label,
        measurement.bits_per_second,
        measurement.observed_at,
    )


def influx_line(measurement: Measurement, config: AppConfig) -> str:
    return "%s,testType=%s,iperfDestination=%s,iperfSource=%s %s=%d" % (
        config.sink.measurement_name,
        prefix_for(measurement.direction, config),
        measurement.endpoint_label,
        config.hostname,
        INFLUX_FIELDS[measurement.tool],
        measurement.bits_per_second,
    )


def build_graphite(measurement: Measurement, config: AppConfig) -> SinkPayload:
    host, port = config.sink.graphite_target
    return SinkPayload(data=graphite_line(measurement, config).encode("utf-8"), target=f"{host}:{port}")


def build_influx(measurement: Measurement, config: AppConfig) -> SinkPayload:
    return SinkPayload(data=influx_line(measurement, config).encode("utf-8"), target=config.sink.influx_url)


def build(measurement: Measurement, sink_kind: str, config: AppConfig) -> SinkPayload:
    if sink_kind == SINK_INFLUX:
        return build_influx(measurement, config)
    if sink_kind == SINK_GRAPHITE:
        return build_graphite(measurement, config)
    if sink_kind == SINK_LOG:
        return SinkPayload(data=graphite_line(measurement, config).encode("utf-8"), target=SINK_LOG)
    raise ValueError(f"Unknown sink kind {sink_kind!r}")
