"""Background sweep scheduling."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from .config import AppConfig
from .endpoints import Endpoint
from .measurements.manager import MeasurementRunner
from .measurements.models import MeasurementOutcome, SweepReport

LOGGER = logging.getLogger(__name__)


class SweepScheduler:
    """Runs a sweep over every endpoint, then waits ``interval`` seconds.

    Endpoints are measured on a bounded worker pool; outcomes are
    reported in endpoint order regardless of completion order. Setting
    ``stop_event`` stops new endpoints from starting and cancels the
    wait before the next sweep.
    """

    def __init__(
        self,
        config: AppConfig,
        runner: MeasurementRunner,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.config = config
        self.runner = runner
        self.stop_event = stop_event or threading.Event()
        self.scheduler = BackgroundScheduler(timezone="UTC")
        self.started = False
        self.last_report: Optional[SweepReport] = None
        self._sweeps = 0
        self._shut_down = False

    def _measure_endpoint(self, endpoint: Endpoint) -> List[MeasurementOutcome]:
        return self.runner.measure_endpoint(endpoint, self.stop_event)

    def run_sweep(self) -> SweepReport:
        endpoints = list(self.config.endpoints)
        report = SweepReport(started_at=time.time())
        if not endpoints:
            LOGGER.warning("No perf servers configured, nothing to measure")
            report.finished_at = time.time()
            return report

        workers = max(1, min(self.config.schedule.concurrency, len(endpoints)))
        LOGGER.info("Starting sweep of %d endpoint(s) with %d worker(s)", len(endpoints), workers)

        results: Dict[int, List[MeasurementOutcome]] = {}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe") as pool:
            futures = {pool.submit(self._measure_endpoint, endpoint): index for index, endpoint in enumerate(endpoints)}
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        for index in range(len(endpoints)):
            report.outcomes.extend(results[index])
        report.finished_at = time.time()
        report.cancelled = self.stop_event.is_set()

        LOGGER.info(
            "Sweep finished in %.1fs: %d ok, %d failed%s",
            report.duration,
            len(report.outcomes) - len(report.failures),
            len(report.failures),
            " (cancelled)" if report.cancelled else "",
        )
        self.last_report = report
        return report

    def _schedule_next(self, delay: float) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay)
        # One-shot jobs chained after each sweep: the interval is measured
        # from the end of a sweep, not from its start.
        self.scheduler.add_job(
            self._run_cycle,
            trigger=DateTrigger(run_date=run_date),
            misfire_grace_time=None,
            name=f"bandwidth-sweep-{self._sweeps + 1}",
        )

    def _run_cycle(self) -> None:
        if self.stop_event.is_set():
            return
        self._sweeps += 1
        try:
            self.run_sweep()
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Sweep failed: %s", exc)
        if self.stop_event.is_set() or not self.started:
            return
        interval = self.config.schedule.interval
        LOGGER.info("Next sweep in %s seconds", interval)
        self._schedule_next(interval)

    def start(self) -> None:
        if self.started:
            LOGGER.warning("Scheduler already started, ignoring duplicate start request")
            return
        if self.stop_event.is_set():
            # Only a previous shutdown() of this scheduler may be undone here.
            if not self._shut_down:
                LOGGER.info("Stop requested before the scheduler started, not starting")
                return
            self.stop_event.clear()
        self._shut_down = False
        self.scheduler.start()
        self.started = True
        self._schedule_next(0)
        LOGGER.info("Scheduler started with interval %s seconds", self.config.schedule.interval)

    def shutdown(self, wait: bool = True) -> None:
        self.stop_event.set()
        self._shut_down = True
        if self.started:
            self.started = False
            self.scheduler.shutdown(wait=wait)
            LOGGER.info("Scheduler stopped")

    def run_forever(self) -> None:
        """Block until the stop event is set or the process is interrupted."""

        self.start()
        if not self.started:
            return
        try:
            while not self.stop_event.wait(1.0):
                pass
        except KeyboardInterrupt:
            LOGGER.info("Interrupted, shutting down")
        finally:
            self.shutdown()
