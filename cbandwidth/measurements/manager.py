"""Measurement pipeline: probe, parse, normalize, format and send."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

from ..config import AppConfig
from ..endpoints import Endpoint
from ..records import build
from ..sinks import SinkDispatcher
from .models import (
    Direction,
    Measurement,
    MeasurementOutcome,
    OutcomeStatus,
    ProbeTool,
)
from .parser import normalize, parse
from .probe import ProbeExecutor

LOGGER = logging.getLogger(__name__)


class MeasurementRunner:
    """Measures one endpoint/direction at a time; failures become outcomes."""

    def __init__(
        self,
        config: AppConfig,
        executor: ProbeExecutor,
        dispatcher: SinkDispatcher,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.executor = executor
        self.dispatcher = dispatcher
        self.tool = ProbeTool(config.probe.tool)
        self.clock = clock

    def _failed(
        self, endpoint: Endpoint, direction: Direction, status: OutcomeStatus, error: str
    ) -> MeasurementOutcome:
        return MeasurementOutcome(endpoint=endpoint, direction=direction, status=status, error=error)

    def measure(self, endpoint: Endpoint, direction: Direction) -> MeasurementOutcome:
        port = self.config.probe.port
        result = self.executor.probe(endpoint, direction)
        parsed = parse(result.raw_text, self.tool)

        if parsed.failure:
            LOGGER.error("Error testing %s to the target server at %s:%s", direction.value, endpoint.address, port)
            LOGGER.error("Verify %s is running and reachable at %s:%s", self._server_name, endpoint.address, port)
            LOGGER.error("%s %s", result.execution_error or "", result.raw_text)
            return self._failed(endpoint, direction, OutcomeStatus.PROBE_FAILURE, parsed.failure)

        if result.execution_error:
            LOGGER.error(
                "%s test to %s:%s [%s] failed: %s",
                direction.value.capitalize(),
                endpoint.address,
                port,
                endpoint.label,
                result.execution_error,
            )
            LOGGER.debug("Probe output: %s", result.raw_text)
            return self._failed(endpoint, direction, OutcomeStatus.PROBE_ERROR, result.execution_error)

        if parsed.format_error or parsed.kilobits_per_second is None:
            error = parsed.format_error or "no throughput value"
            LOGGER.error(
                "no valid integer returned from the %s test to %s [%s], please run with --debug for details: %s",
                self.tool.value,
                endpoint.address,
                direction.value,
                error,
            )
            LOGGER.debug("Probe output: %s", result.raw_text)
            return self._failed(endpoint, direction, OutcomeStatus.FORMAT_ERROR, error)

        measurement = Measurement(
            endpoint_label=endpoint.label,
            direction=direction,
            bits_per_second=normalize(parsed.kilobits_per_second),
            observed_at=int(self.clock()),
            tool=self.tool,
        )
        LOGGER.info(
            "%s results for endpoint %s [%s] -> %d bps",
            direction.value.capitalize(),
            endpoint.address,
            endpoint.label,
            measurement.bits_per_second,
        )

        payload = build(measurement, self.config.sink.kind, self.config)
        error = self.dispatcher.send(payload)
        if error is not None:
            return MeasurementOutcome(
                endpoint=endpoint,
                direction=direction,
                status=OutcomeStatus.SINK_ERROR,
                measurement=measurement,
                error=str(error),
            )
        return MeasurementOutcome(
            endpoint=endpoint, direction=direction, status=OutcomeStatus.OK, measurement=measurement
        )

    @property
    def _server_name(self) -> str:
        return "netserver" if self.tool is ProbeTool.NETPERF else "iperf"

    def measure_endpoint(
        self, endpoint: Endpoint, stop_event: Optional[threading.Event] = None
    ) -> List[MeasurementOutcome]:
        """Run every direction the tool supports, download first."""

        outcomes = []
        for direction in self.tool.directions:
            if stop_event is not None and stop_event.is_set():
                outcomes.append(self._failed(endpoint, direction, OutcomeStatus.CANCELLED, "sweep cancelled"))
                continue
            try:
                outcomes.append(self.measure(endpoint, direction))
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.exception("Unexpected failure measuring %s [%s]: %s", endpoint.address, direction.value, exc)
                outcomes.append(self._failed(endpoint, direction, OutcomeStatus.PROBE_ERROR, str(exc)))
        return outcomes
