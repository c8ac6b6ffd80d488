"""Application bootstrap helpers."""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Optional

from .config import AppConfig, env_overrides, load_config, resolve_config
from .logging_setup import configure_logging
from .measurements.manager import MeasurementRunner
from .measurements.probe import ProbeExecutor, resolve_launcher
from .scheduler import SweepScheduler
from .sinks import SinkDispatcher, create_sink

LOGGER = logging.getLogger(__name__)


class ApplicationContext:
    """Holds the wired components for one run."""

    def __init__(self, config: AppConfig, stop_event: Optional[threading.Event] = None):
        self.config = config
        self.launcher = resolve_launcher(config.probe)
        LOGGER.debug("[Config] Perf Binary = %s", " ".join(self.launcher))
        self.executor = ProbeExecutor(config.probe, self.launcher)
        self.dispatcher = SinkDispatcher(create_sink(config.sink))
        self.runner = MeasurementRunner(config, self.executor, self.dispatcher)
        self.scheduler = SweepScheduler(config, self.runner, stop_event)

    def run_forever(self) -> None:
        self.scheduler.run_forever()

    def run_once(self):
        return self.scheduler.run_sweep()


def bootstrap(
    overrides: Optional[Mapping[str, Any]] = None,
    stop_event: Optional[threading.Event] = None,
) -> ApplicationContext:
    """Resolve configuration, set up logging and wire dependencies.

    ``overrides`` are command line values; ``CBANDWIDTH_*`` environment
    variables fill in whatever the command line left unset. Raises
    ``ConfigError`` or ``StartupError`` instead of exiting.
    """

    merged = dict(env_overrides())
    merged.update({key: value for key, value in (overrides or {}).items() if value is not None})

    data = load_config(merged.get("config_path") or "configuration.yaml")
    config = resolve_config(data, merged)
    configure_logging(config)

    LOGGER.debug("Configuration as follows:")
    for line in config.describe():
        LOGGER.debug(line)

    return ApplicationContext(config, stop_event)
