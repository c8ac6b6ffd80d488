"""Configuration loading helpers for the bandwidth monitor."""

from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .endpoints import Endpoint, build_registry
from .errors import ConfigError

LOGGER = logging.getLogger(__name__)

DEFAULT_IPERF_IMAGE = "quay.io/networkstatic/iperf3"
DEFAULT_NETPERF_IMAGE = "quay.io/networkstatic/netperf"
DEFAULT_IPERF_PORT = 5201
DEFAULT_NETPERF_PORT = 12865
DEFAULT_CARBON_PORT = 2003

SINK_GRAPHITE = "graphite"
SINK_INFLUX = "influx"
SINK_LOG = "log"

ENV_PREFIX = "CBANDWIDTH_"

# Override key -> CBANDWIDTH_* environment variable suffix.
ENV_VARS = {
    "config_path": "CONFIG",
    "image": "PERF_IMAGE",
    "perf_servers": "PERF_SERVERS",
    "tsdb_type": "TSDB_TYPE",
    "grafana_address": "GRAFANA_ADDRESS",
    "grafana_port": "GRAFANA_PORT",
    "influx_url": "INFLUX_ADDRESS",
    "test_interval": "POLL_INTERVAL",
    "test_length": "POLL_LENGTH",
    "parallel_connections": "IPERF_PARALLEL",
    "perf_server_port": "PERF_SERVER_PORT",
    "download_prefix": "DOWNLOAD_PREFIX",
    "upload_prefix": "UPLOAD_PREFIX",
    "kentik_email": "KENTIK_EMAIL",
    "kentik_token": "KENTIK_TOKEN",
    "netperf": "NETPERF",
    "no_container": "NOCONTAINER",
    "debug": "DEBUG",
    "concurrency": "CONCURRENCY",
    "probe_timeout": "PROBE_TIMEOUT",
}

BOOLEAN_KEYS = {"netperf", "no_container", "debug"}

SECTIONS = ("endpoints", "probe", "schedule", "sink", "logging")

# Flat keys of the cloud-bandwidth configuration.yaml -> (section, key).
LEGACY_KEYS = {
    "iperf-servers": ("endpoints", None),
    "server-port": ("probe", "port"),
    "test-length": ("probe", "test_length"),
    "test-interval": ("schedule", "interval"),
    "grafana-address": ("sink", "graphite_address"),
    "grafana-port": ("sink", "graphite_port"),
    "influx-url": ("sink", "influx_url"),
    "tsdb-download-prefix": ("sink", "download_prefix"),
    "tsdb-upload-prefix": ("sink", "upload_prefix"),
    "measurement-name": ("sink", "measurement_name"),
}


@dataclass(frozen=True)
class ProbeConfig:
    tool: str = "iperf3"
    port: int = DEFAULT_IPERF_PORT
    test_length: int = 5
    parallel_connections: int = 1
    use_container: bool = True
    image: str = DEFAULT_IPERF_IMAGE
    binary: Optional[str] = None
    timeout: Optional[float] = None

    @property
    def effective_timeout(self) -> float:
        if self.timeout is not None:
            return self.timeout
        return float(self.test_length + 30)


@dataclass(frozen=True)
class ScheduleConfig:
    interval: int = 300
    concurrency: int = 1


@dataclass(frozen=True)
class SinkConfig:
    kind: str = SINK_GRAPHITE
    graphite_address: str = ""
    graphite_port: int = DEFAULT_CARBON_PORT
    influx_url: str = ""
    email: str = ""
    token: str = ""
    download_prefix: str = "bandwidth.download"
    upload_prefix: str = "bandwidth.upload"
    measurement_name: str = "bandwidth"
    request_timeout: float = 10.0

    @property
    def graphite_target(self) -> Tuple[str, int]:
        return self.graphite_address, self.graphite_port


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    logs_dir: Optional[Path] = None


@dataclass(frozen=True)
class AppConfig:
    probe: ProbeConfig
    schedule: ScheduleConfig
    sink: SinkConfig
    logging: LoggingConfig
    endpoints: Tuple[Endpoint, ...] = field(default_factory=tuple)
    hostname: str = ""

    def describe(self) -> List[str]:
        """Human-readable configuration lines with secrets masked."""
        token = "****" if self.sink.token else ""
        lines = [
            f"Hostname = {self.hostname}",
            f"[Config] Probe Tool = {self.probe.tool}",
            f"[Config] Perf Server Port = {self.probe.port}",
            f"[Config] Containerized = {self.probe.use_container} ({self.probe.image})",
            f"[Config] Test Interval = {self.schedule.interval}sec",
            f"[Config] Test Length = {self.probe.test_length}sec",
            f"[Config] Probe Timeout = {self.probe.effective_timeout}sec",
            f"[Config] Concurrency = {self.schedule.concurrency}",
            f"[Config] Sink = {self.sink.kind}",
            f"[Config] Grafana Server = {self.sink.graphite_address}:{self.sink.graphite_port}",
            f"[Config] Influx URL = {self.sink.influx_url}",
            f"[Config] KentikEmail = {self.sink.email}",
            f"[Config] KentikToken = {token}",
            f"[Config] TSDB download prefix = {self.sink.download_prefix}",
            f"[Config] TSDB upload prefix = {self.sink.upload_prefix}",
        ]
        for endpoint in self.endpoints:
            lines.append(f"[Config] Perf Server = {endpoint.address} [{endpoint.label}]")
        return lines


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load raw configuration values from a YAML file.

    A missing file is not fatal: the monitor can run purely from command
    line flags and environment variables.
    """

    source_path = Path(path) if path else Path.cwd() / "configuration.yaml"
    if not source_path.exists():
        LOGGER.info("no configuration file found at %s, defaulting to command line arguments", source_path)
        return {}

    with source_path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid configuration file {source_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {source_path} must contain a mapping")
    return data


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect overrides from ``CBANDWIDTH_*`` environment variables."""

    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for key, suffix in ENV_VARS.items():
        value = environ.get(ENV_PREFIX + suffix)
        if value is None or value == "":
            continue
        if key in BOOLEAN_KEYS:
            overrides[key] = _as_bool(value)
        else:
            overrides[key] = value
    return overrides


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_int(name: str, value: Any) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if number <= 0:
        raise ConfigError(f"{name} must be positive, got {number}")
    return number


def _as_float(name: str, value: Any) -> float:
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc
    if number <= 0:
        raise ConfigError(f"{name} must be positive, got {number}")
    return number


def _pick(overrides: Mapping[str, Any], key: str, section: Mapping[str, Any], section_key: str, default: Any) -> Any:
    value = overrides.get(key)
    if value is not None and value != "":
        return value
    value = section.get(section_key)
    if value is not None and value != "":
        return value
    return default


def _resolve_probe(data: Mapping[str, Any], overrides: Mapping[str, Any]) -> ProbeConfig:
    section = data.get("probe", {}) or {}

    tool = "netperf" if overrides.get("netperf") else str(section.get("tool", "iperf3")).lower()
    if tool not in ("iperf3", "netperf"):
        raise ConfigError(f"Unsupported probe tool {tool!r}; expected 'iperf3' or 'netperf'")

    port = _as_int("perf-server-port", _pick(overrides, "perf_server_port", section, "port", DEFAULT_IPERF_PORT))
    image = str(_pick(overrides, "image", section, "image", DEFAULT_IPERF_IMAGE))
    if tool == "netperf":
        if port == DEFAULT_IPERF_PORT:
            port = DEFAULT_NETPERF_PORT
        if image == DEFAULT_IPERF_IMAGE:
            image = DEFAULT_NETPERF_IMAGE

    use_container = _as_bool(section.get("container", True))
    if overrides.get("no_container"):
        use_container = False

    timeout = _pick(overrides, "probe_timeout", section, "timeout", None)

    return ProbeConfig(
        tool=tool,
        port=port,
        test_length=_as_int("test-length", _pick(overrides, "test_length", section, "test_length", 5)),
        parallel_connections=_as_int(
            "parallel-connections",
            _pick(overrides, "parallel_connections", section, "parallel_connections", 1),
        ),
        use_container=use_container,
        image=image,
        binary=section.get("binary"),
        timeout=_as_float("probe-timeout", timeout) if timeout is not None else None,
    )


def _resolve_sink(data: Mapping[str, Any], overrides: Mapping[str, Any]) -> SinkConfig:
    section = data.get("sink", {}) or {}

    kind = str(_pick(overrides, "tsdb_type", section, "kind", SINK_GRAPHITE)).lower()
    if kind not in (SINK_GRAPHITE, SINK_INFLUX):
        raise ConfigError(f"Unsupported tsdb type {kind!r}; expected 'graphite' or 'influx'")

    influx_url = str(_pick(overrides, "influx_url", section, "influx_url", ""))
    graphite_address = str(_pick(overrides, "grafana_address", section, "graphite_address", ""))

    if kind == SINK_INFLUX:
        if not influx_url:
            raise ConfigError("tsdb type indicated as 'influx' but no Influx URL was passed")
        LOGGER.info("Influx selected: %s", influx_url)
    elif not graphite_address:
        LOGGER.warning(
            "No Grafana server was passed to the app, tests will still run, "
            "but will not be able to write to a grafana server"
        )
        kind = SINK_LOG

    return SinkConfig(
        kind=kind,
        graphite_address=graphite_address,
        graphite_port=_as_int(
            "grafana-port", _pick(overrides, "grafana_port", section, "graphite_port", DEFAULT_CARBON_PORT)
        ),
        influx_url=influx_url,
        email=str(_pick(overrides, "kentik_email", section, "email", "")),
        token=str(_pick(overrides, "kentik_token", section, "token", "")),
        download_prefix=str(_pick(overrides, "download_prefix", section, "download_prefix", "bandwidth.download")),
        upload_prefix=str(_pick(overrides, "upload_prefix", section, "upload_prefix", "bandwidth.upload")),
        measurement_name=str(section.get("measurement_name") or "bandwidth"),
        request_timeout=_as_float("request-timeout", section.get("request_timeout", 10.0)),
    )


def _apply_legacy_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Fold flat cloud-bandwidth keys into their sections.

    A value already set inside a section wins over its flat alias.
    Unknown top-level keys are rejected.
    """

    unknown = sorted(str(key) for key in data if key not in SECTIONS and key not in LEGACY_KEYS)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

    merged: Dict[str, Any] = {key: data[key] for key in SECTIONS if key in data}
    for flat_key, (section, key) in LEGACY_KEYS.items():
        if flat_key not in data:
            continue
        value = data[flat_key]
        if section == "endpoints":
            merged["endpoints"] = list(merged.get("endpoints") or []) + list(value or [])
            continue
        target = dict(merged.get(section) or {})
        target.setdefault(key, value)
        merged[section] = target
    return merged


def resolve_config(
    data: Optional[Mapping[str, Any]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    hostname: Optional[str] = None,
) -> AppConfig:
    """Merge file values with command line/environment overrides.

    Precedence is defaults < configuration file < overrides. The result
    is immutable and is the only configuration the rest of the program
    reads.
    """

    data = _apply_legacy_keys(data or {})
    overrides = overrides or {}

    schedule_section = data.get("schedule", {}) or {}
    logging_section = data.get("logging", {}) or {}

    schedule = ScheduleConfig(
        interval=_as_int("test-interval", _pick(overrides, "test_interval", schedule_section, "interval", 300)),
        concurrency=_as_int("concurrency", _pick(overrides, "concurrency", schedule_section, "concurrency", 1)),
    )

    level = "DEBUG" if overrides.get("debug") else str(logging_section.get("level", "INFO"))
    logs_dir = logging_section.get("logs_dir")
    logging_config = LoggingConfig(level=level, logs_dir=Path(logs_dir) if logs_dir else None)

    endpoints = build_registry(data.get("endpoints") or [], overrides.get("perf_servers") or "")

    if hostname is None:
        try:
            hostname = socket.gethostname()
        except OSError as exc:
            LOGGER.error("Unable to determine local hostname: %s", exc)
            hostname = ""

    return AppConfig(
        probe=_resolve_probe(data, overrides),
        schedule=schedule,
        sink=_resolve_sink(data, overrides),
        logging=logging_config,
        endpoints=tuple(endpoints),
        hostname=hostname,
    )
