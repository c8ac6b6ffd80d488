"""Shared dataclasses for measurements."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from ..endpoints import Endpoint


class ProbeTool(str, Enum):
    IPERF3 = "iperf3"
    NETPERF = "netperf"

    @property
    def directions(self) -> "tuple[Direction, ...]":
        # netperf TCP_STREAM only measures one way.
        if self is ProbeTool.NETPERF:
            return (Direction.DOWNLOAD,)
        return (Direction.DOWNLOAD, Direction.UPLOAD)


class Direction(str, Enum):
    DOWNLOAD = "download"
    UPLOAD = "upload"


class OutcomeStatus(str, Enum):
    OK = "ok"
    PROBE_ERROR = "probe_error"
    PROBE_FAILURE = "probe_failure"
    FORMAT_ERROR = "format_error"
    SINK_ERROR = "sink_error"
    CANCELLED = "cancelled"


@dataclass
class ProbeResult:
    endpoint: Endpoint
    direction: Direction
    raw_text: str
    execution_error: Optional[str] = None


@dataclass
class ParsedThroughput:
    token: Optional[str]
    kilobits_per_second: Optional[Decimal] = None
    failure: Optional[str] = None
    format_error: Optional[str] = None


@dataclass(frozen=True)
class Measurement:
    endpoint_label: str
    direction: Direction
    bits_per_second: int
    observed_at: int
    tool: ProbeTool = ProbeTool.IPERF3


@dataclass(frozen=True)
class SinkPayload:
    data: bytes
    target: str


@dataclass
class MeasurementOutcome:
    endpoint: Endpoint
    direction: Direction
    status: OutcomeStatus
    measurement: Optional[Measurement] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK


@dataclass
class SweepReport:
    started_at: float
    finished_at: float = 0.0
    outcomes: List[MeasurementOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failures(self) -> List[MeasurementOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def duration(self) -> float:
        return max(self.finished_at - self.started_at, 0.0)
