"""Probe tool invocation (iperf3 / netperf, direct or containerized)."""

from __future__ import annotations

import logging
import subprocess
from typing import List, Sequence

from ..config import ProbeConfig
from ..endpoints import Endpoint
from ..errors import StartupError
from .models import Direction, ProbeResult, ProbeTool

LOGGER = logging.getLogger(__name__)

CONTAINER_RUNTIMES = ("docker", "podman")
NETPERF_TEST = "TCP_STREAM"


def detect_container_runtime() -> str:
    """Return the first container runtime that answers ``--version``."""

    for runtime in CONTAINER_RUNTIMES:
        try:
            subprocess.run(
                [runtime, "--version"],
                capture_output=True,
                text=True,
                check=True,
                timeout=10,
            )
        except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired) as exc:
            LOGGER.debug("Container runtime %s unavailable: %s", runtime, exc)
            continue
        return runtime
    raise StartupError(
        'docker or podman is required for container mode, use the flag "--nocontainer" to not use containers'
    )


def resolve_launcher(config: ProbeConfig) -> List[str]:
    """Return the argv prefix used to start the probe tool."""

    if not config.use_container:
        return [config.binary or config.tool]
    runtime = detect_container_runtime()
    return [runtime, "run", "-i", "--rm", config.image]


def build_command(
    launcher: Sequence[str],
    tool: ProbeTool,
    endpoint: Endpoint,
    direction: Direction,
    config: ProbeConfig,
) -> List[str]:
    command = list(launcher)
    if tool is ProbeTool.NETPERF:
        if direction is not Direction.DOWNLOAD:
            raise ValueError("netperf only supports download measurements")
        command += [
            "-P", "0",
            "-t", NETPERF_TEST,
            "-f", "k",
            "-l", str(config.test_length),
            "-p", str(config.port),
            "-H", endpoint.address,
        ]
        return command

    command += ["-P", str(config.parallel_connections)]
    if direction is Direction.UPLOAD:
        command.append("-R")
    command += [
        "-t", str(config.test_length),
        "-f", "k",
        "-p", str(config.port),
        "-c", endpoint.address,
    ]
    return command


class ProbeExecutor:
    """Runs one probe and captures its combined output."""

    def __init__(self, config: ProbeConfig, launcher: Sequence[str]):
        self.config = config
        self.tool = ProbeTool(config.tool)
        self.launcher = list(launcher)

    def probe(self, endpoint: Endpoint, direction: Direction) -> ProbeResult:
        command = build_command(self.launcher, self.tool, endpoint, direction, self.config)
        LOGGER.debug("[CMD] Running Command -> %s", " ".join(command))

        try:
            # stderr is merged, netperf does not report failures cleanly on it.
            completed = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                check=False,
                timeout=self.config.effective_timeout,
            )
        except subprocess.TimeoutExpired as exc:
            output = exc.output.decode(errors="replace") if isinstance(exc.output, bytes) else (exc.output or "")
            return ProbeResult(
                endpoint=endpoint,
                direction=direction,
                raw_text=output.strip(),
                execution_error=f"{self.tool.value} timed out after {self.config.effective_timeout:g}s",
            )
        except OSError as exc:
            return ProbeResult(
                endpoint=endpoint,
                direction=direction,
                raw_text="",
                execution_error=f"unable to start {command[0]}: {exc}",
            )

        output = (completed.stdout or "").strip()
        error = None
        if completed.returncode != 0:
            error = f"{command[0]} exited with status {completed.returncode}"
        return ProbeResult(endpoint=endpoint, direction=direction, raw_text=output, execution_error=error)
