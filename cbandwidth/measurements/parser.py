"""Parsing of probe tool reports into throughput values.

Each tool is run with ``-f k`` so its report carries kilobits/second.
A report is accepted only when it matches the tool's known summary
layout; failure markers in the output win over anything that looks
numeric.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from .models import ParsedThroughput, ProbeTool

LOGGER = logging.getLogger(__name__)

FAILURE_MARKERS = {
    ProbeTool.IPERF3: "error",
    # netperf prints "are you sure there is a netserver listening" on failure.
    ProbeTool.NETPERF: "sure",
}

# [  5]   0.00-5.04   sec  53843 KBytes  87516 Kbits/sec                  receiver
# [SUM]   0.00-5.04   sec   107 MBytes   178342 Kbits/sec                  receiver
IPERF_SUMMARY = re.compile(
    r"^\[\s*(?P<stream>SUM|\d+)\]\s+\S+\s+sec\s+\S+\s+\S+\s+(?P<rate>\S+)\s+Kbits/sec\b.*\breceiver\s*$"
)

# 131072  16384  16384    5.00     9387.41
NETPERF_SUMMARY = re.compile(
    r"^\s*\d+\s+\d+\s+\d+\s+\d+(?:\.\d+)?\s+(?P<rate>\S+)\s*$"
)

NUMERIC_TOKEN = re.compile(r"^-?\d+(?:\.\d+)?$")


class ThroughputFormatError(ValueError):
    """Raised when a throughput token is not a number."""


def parse_kilobits(token: str) -> Decimal:
    """Validate ``token`` and return it as an exact decimal.

    iperf3 also prints fractional Kbits/sec at low rates, not only netperf.
    """

    text = (token or "").strip()
    if not NUMERIC_TOKEN.match(text):
        raise ThroughputFormatError(f"no valid number returned from the perf test: {token!r}")
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise ThroughputFormatError(f"no valid number returned from the perf test: {token!r}") from exc


def normalize(kilobits: Decimal) -> int:
    """Convert kilobits/second into bits/second.

    Negative and zero values are passed through unchanged.
    """

    return int(kilobits * 1000)


def convert_kbits_to_bits(token: str) -> int:
    return normalize(parse_kilobits(token))


def find_failure_marker(raw_text: str, tool: ProbeTool) -> Optional[str]:
    marker = FAILURE_MARKERS[tool]
    return marker if marker in raw_text else None


def extract_iperf_token(raw_text: str) -> Optional[str]:
    stream_token = None
    for line in raw_text.splitlines():
        match = IPERF_SUMMARY.match(line.strip())
        if not match:
            continue
        if match.group("stream") == "SUM":
            return match.group("rate")
        stream_token = match.group("rate")
    return stream_token


def extract_netperf_token(raw_text: str) -> Optional[str]:
    lines = [line for line in raw_text.splitlines() if line.strip()]
    if not lines:
        return None
    match = NETPERF_SUMMARY.match(lines[-1])
    return match.group("rate") if match else None


EXTRACTORS = {
    ProbeTool.IPERF3: extract_iperf_token,
    ProbeTool.NETPERF: extract_netperf_token,
}


def parse(raw_text: str, tool: ProbeTool) -> ParsedThroughput:
    marker = find_failure_marker(raw_text, tool)
    if marker is not None:
        return ParsedThroughput(token=None, failure=f"{tool.value} reported a failure ({marker!r} in output)")

    token = EXTRACTORS[tool](raw_text)
    if token is None:
        return ParsedThroughput(token=None, format_error=f"no {tool.value} summary line found in output")

    try:
        kilobits = parse_kilobits(token)
    except ThroughputFormatError as exc:
        return ParsedThroughput(token=token, format_error=str(exc))

    if kilobits <= 0:
        LOGGER.warning("%s reported a non-positive throughput of %s Kbits/sec", tool.value, token)
    return ParsedThroughput(token=token, kilobits_per_second=kilobits)
