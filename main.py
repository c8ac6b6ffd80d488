"""Entry point for running the bandwidth monitor."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from cbandwidth import bootstrap
from cbandwidth.errors import ConfigError, StartupError


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cloud-bandwidth",
        description="measure endpoint bandwidth and record the results to a tsdb",
    )
    parser.add_argument("--configuration", dest="config_path", default=None,
                        help="Path to the configuration file (default: configuration.yaml)")
    parser.add_argument("--image", default=None, help="Custom repo to an iperf3/netperf image")
    parser.add_argument("--perf-servers", default=None,
                        help="Comma separated perf servers, each an address or address:label "
                             "ex. --perf-servers=192.168.1.100,172.16.100.20:host2")
    parser.add_argument("--tsdbtype", dest="tsdb_type", default=None,
                        help="type of tsdb to use, 'influx' overrides the default graphite output")
    parser.add_argument("--grafana-address", default=None, help="address of the grafana/carbon server")
    parser.add_argument("--grafana-port", default=None, help="port of the grafana/carbon server")
    parser.add_argument("--influx-url", default=None, help="address of the influx server")
    parser.add_argument("--test-interval", default=None, help="the time in seconds between performance polls")
    parser.add_argument("--test-length", default=None, help="the length of time the perf test runs for in seconds")
    parser.add_argument("--parallel-connections", default=None,
                        help="iperf only, number of simultaneous connections to make to the server")
    parser.add_argument("--perf-server-port", default=None,
                        help="perf server port (iperf default is 5201 and netperf default is 12865)")
    parser.add_argument("--tsdb-download-prefix", dest="download_prefix", default=None,
                        help="the download prefix of the stored tsdb data")
    parser.add_argument("--tsdb-upload-prefix", dest="upload_prefix", default=None,
                        help="the upload prefix of the stored tsdb data, not applicable for netperf")
    parser.add_argument("--kentik-email", default=None, help="email address used for Kentik Portal login")
    parser.add_argument("--kentik-token", default=None, help="API token used for Kentik Portal login")
    parser.add_argument("--netperf", action="store_true", default=None,
                        help="use netperf and netserver instead of iperf")
    parser.add_argument("--nocontainer", dest="no_container", action="store_true", default=None,
                        help="run the perf binary on the host instead of in docker or podman")
    parser.add_argument("--concurrency", default=None, help="number of endpoints measured at the same time")
    parser.add_argument("--probe-timeout", default=None, help="seconds before a single probe is abandoned")
    parser.add_argument("--once", action="store_true", help="run a single sweep and exit")
    parser.add_argument("--debug", action="store_true", default=None,
                        help="log every probe command and tsdb payload")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    overrides = {key: value for key, value in vars(args).items() if key != "once"}
    try:
        context = bootstrap(overrides)
    except (ConfigError, StartupError) as exc:
        logging.getLogger("cbandwidth").error("%s", exc)
        return 1

    if args.once:
        report = context.run_once()
        return 1 if report.failures else 0

    context.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
