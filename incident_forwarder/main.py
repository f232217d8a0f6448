#!/usr/bin/env python3
"""Incident Log Forwarder entry point."""

import argparse
import logging
import signal
import sys
import threading

from incident_forwarder.config import ConfigError, load_config, load_yaml_config
from incident_forwarder.forwarder import IncidentForwarder
from incident_forwarder.metrics import LogAlertHandler, MetricsReporter, MetricsService
from incident_forwarder.ticket_client import TicketClient
from incident_forwarder.watcher import LogWatcher

logger = logging.getLogger(__name__)


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Tail an event log and open a ticket for every incident line",
    )
    parser.add_argument(
        "--config", default=None,
        help="Path to YAML config file",
    )
    parser.add_argument(
        "--log-file", dest="log_file", default=None,
        help="Event log to watch (default: /app/Scripts/events.log)",
    )
    parser.add_argument(
        "--base-url", dest="base_url", default=None,
        help="Ticketing API base URL",
    )
    parser.add_argument(
        "--poll-interval", dest="poll_interval", type=float, default=None,
        help="Seconds between file polls (default: 0.5)",
    )
    parser.add_argument(
        "--log-level", dest="log_level", default=None,
        help="Logging level (default: INFO)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_cli_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [FORWARDER] %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(args, load_yaml_config(args.config))
        config.validate()
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    logging.getLogger().setLevel(config.log_level)
    logger.info("Config: log_file=%s, base_url=%s, poll_interval=%.2fs",
                config.log_file, config.base_url, config.poll_interval)

    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    metrics = MetricsService(
        failure_threshold=config.failure_threshold,
        failure_rate_threshold=config.failure_rate_threshold,
    )
    metrics.add_handler(LogAlertHandler())

    client = TicketClient(
        config.base_url,
        config.app_token,
        config.user_token,
        timeout=config.request_timeout,
        resource=config.ticket_resource,
    )
    forwarder = IncidentForwarder(client, config.ticket_defaults, metrics)
    watcher = LogWatcher(config.log_file, forwarder, shutdown_event,
                         poll_interval=config.poll_interval, metrics=metrics)

    reporter = None
    if config.metrics_interval > 0:
        reporter = MetricsReporter(metrics, config.metrics_interval, shutdown_event)
        reporter.start()

    try:
        watcher.run()
    finally:
        shutdown_event.set()
        if reporter:
            reporter.stop()
        client.close()

    totals = metrics.totals()
    logger.info("Stats: %d ticket requests, %d failures, %d rejected lines",
                totals["requests"], totals["exceptions"], totals["rejected_lines"])
    logger.info("Incident Log Forwarder stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
