"""Metric sinks: graphite plaintext over TCP and Influx line protocol over HTTP."""

from __future__ import annotations

import logging
import socket
from typing import Dict, Optional

import requests

from .config import SINK_GRAPHITE, SINK_INFLUX, SinkConfig
from .measurements.models import SinkPayload

LOGGER = logging.getLogger(__name__)


class SinkError(Exception):
    """A measurement could not be delivered; it is not retried."""

    def __init__(self, message: str, target: str = ""):
        super().__init__(message)
        self.target = target


class SinkConnectionError(SinkError):
    pass


class SinkWriteError(SinkError):
    pass


class SinkHTTPError(SinkError):
    def __init__(self, message: str, target: str = "", status_code: Optional[int] = None, body: str = ""):
        super().__init__(message, target)
        self.status_code = status_code
        self.body = body


class GraphiteSink:
    """Opens one TCP connection per payload."""

    def __init__(self, address: str, port: int, timeout: float = 10.0):
        self.address = address
        self.port = port
        self.timeout = timeout

    @property
    def target(self) -> str:
        return f"{self.address}:{self.port}"

    def write(self, payload: SinkPayload) -> None:
        try:
            conn = socket.create_connection((self.address, self.port), timeout=self.timeout)
        except OSError as exc:
            raise SinkConnectionError(
                f"Could not connect to the graphite server -> [{self.target}]: {exc}", self.target
            ) from exc

        with conn:
            try:
                conn.sendall(payload.data)
            except OSError as exc:
                raise SinkWriteError(
                    f"Error writing to the graphite server at -> [{self.target}]: {exc}", self.target
                ) from exc


class InfluxSink:
    """POSTs Influx line protocol with Kentik credential headers."""

    def __init__(
        self,
        url: str,
        email: str = "",
        token: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.email = email
        self.token = token
        self.timeout = timeout
        self.session = session

    @property
    def target(self) -> str:
        return self.url

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/influx",
            "X-CH-Auth-Email": self.email,
            "X-CH-Auth-API-Token": self.token,
        }

    def write(self, payload: SinkPayload) -> None:
        # One request per write, connections are never reused across measurements.
        post = self.session.post if self.session is not None else requests.post
        try:
            response = post(
                self.url,
                data=payload.data,
                headers=self.headers(),
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise SinkConnectionError(
                f"Could not connect to the Influx endpoint -> [{self.url}]: {exc}", self.url
            ) from exc
        except requests.RequestException as exc:
            raise SinkHTTPError(f"Error constructing request for {self.url}: {exc}", self.url) from exc

        with response:
            # The body is always read before the connection is released.
            try:
                body = response.text
            except requests.RequestException as exc:
                raise SinkHTTPError(
                    f"Error reading response from {self.url}: {exc}",
                    self.url,
                    status_code=response.status_code,
                ) from exc
            LOGGER.debug("Influx response %s: %s", response.status_code, body)
            if response.status_code != 200:
                raise SinkHTTPError(
                    f"unexpected status code: {response.status_code}",
                    self.url,
                    status_code=response.status_code,
                    body=body,
                )


class LogSink:
    """Used when no TSDB was configured; measurements are only logged."""

    target = "log"

    def write(self, payload: SinkPayload) -> None:
        LOGGER.info("No TSDB configured, dropping: %s", payload.data.decode("utf-8").strip())


def create_sink(config: SinkConfig):
    if config.kind == SINK_INFLUX:
        return InfluxSink(config.influx_url, config.email, config.token, timeout=config.request_timeout)
    if config.kind == SINK_GRAPHITE:
        return GraphiteSink(config.graphite_address, config.graphite_port, timeout=config.request_timeout)
    return LogSink()


class SinkDispatcher:
    """Sends payloads to the configured sink and reports, never raises, failures."""

    def __init__(self, sink):
        self.sink = sink

    def send(self, payload: SinkPayload) -> Optional[SinkError]:
        LOGGER.debug("Sending the following msg to the tsdb at %s: %s", self.sink.target, payload.data)
        try:
            self.sink.write(payload)
        except SinkHTTPError as exc:
            LOGGER.error("%s (url: %s)", exc, exc.target)
            if exc.body:
                LOGGER.error("Body: %s", exc.body)
            return exc
        except SinkError as exc:
            LOGGER.error("%s", exc)
            LOGGER.error("Verify the tsdb server is running and reachable at %s", exc.target)
            return exc
        return None
