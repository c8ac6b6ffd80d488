"""Perf server endpoint parsing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from .errors import ConfigError


@dataclass(frozen=True)
class Endpoint:
    """A perf server destination and the label used in metric names."""

    address: str
    label: str


def parse_endpoint(spec: str, label: Optional[str] = None) -> Endpoint:
    """Parse ``address`` or ``address:label`` into an :class:`Endpoint`.

    An explicit ``label`` argument (the value side of a YAML mapping)
    wins over one embedded in ``spec``.
    """

    tokens = [token.strip() for token in str(spec).split(":")]
    if len(tokens) > 2:
        raise ConfigError(f"Invalid perf server {spec!r}: expected 'address' or 'address:label'")

    address = tokens[0]
    if not address:
        raise ConfigError(f"Invalid perf server {spec!r}: address cannot be empty")

    embedded = tokens[1] if len(tokens) == 2 else ""
    chosen = (str(label).strip() if label is not None else "") or embedded
    return Endpoint(address=address, label=chosen or address)


def parse_endpoint_list(raw: str) -> List[Endpoint]:
    """Parse a comma separated ``--perf-servers`` value."""

    return [parse_endpoint(item) for item in raw.split(",") if item.strip()]


def build_registry(file_entries: Iterable[Any], cli_list: str = "") -> List[Endpoint]:
    """Build the ordered endpoint list.

    File entries come first, followed by command line entries. A file
    entry is either a string or a mapping of ``address: label`` pairs.
    """

    endpoints: List[Endpoint] = []
    for entry in file_entries:
        if isinstance(entry, dict):
            for address, label in entry.items():
                endpoints.append(parse_endpoint(str(address), label))
        elif isinstance(entry, str):
            endpoints.append(parse_endpoint(entry))
        else:
            raise ConfigError(f"Invalid perf server entry {entry!r}")

    if cli_list:
        endpoints.extend(parse_endpoint_list(cli_list))
    return endpoints
