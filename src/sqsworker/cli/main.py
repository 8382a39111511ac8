"""Command line entrypoint for the ``sqs-worker`` daemon."""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from sqsworker import __version__
from sqsworker.main.config import load_settings, set_settings
from sqsworker.main.exceptions import ConfigurationError
from sqsworker.main.logging import configure_logging, get_logger
from sqsworker.worker.handlers import load_handler
from sqsworker.worker.poller import PollLoop

logger = get_logger(__name__)

OVERRIDE_FIELDS = (
    "queue_url",
    "endpoint_url",
    "region",
    "max_children",
    "max_sleep_period",
    "poll_interval",
    "visibility_timeout",
    "retry_visibility_timeout",
    "redis_server",
    "redis_port",
    "worker",
    "log_level",
    "log_path",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqs-worker",
        description="Poll an SQS queue and run a handler for each message in its own process.",
    )
    parser.add_argument("-C", "--config", dest="config_file", help="JSON configuration file")
    parser.add_argument("-q", "--queue-url", help="Queue url")
    parser.add_argument("-u", "--endpoint-url", help="SQS endpoint override (e.g. LocalStack)")
    parser.add_argument("--region", help="AWS region")
    parser.add_argument("-m", "--max-children", type=int, help="Maximum concurrent workers (default 5)")
    parser.add_argument(
        "-M",
        "--max-sleep-period",
        type=float,
        help="Maximum sleep between empty polls in seconds (default 30)",
    )
    parser.add_argument(
        "-P",
        "--poll-interval",
        type=float,
        help="Sleep increment between empty polls in seconds (default 2)",
    )
    parser.add_argument(
        "-V",
        "--visibility-timeout",
        type=int,
        help="Visibility timeout requested on receive (default 60)",
    )
    parser.add_argument(
        "--retry-visibility-timeout",
        type=int,
        help="Visibility timeout for deferred messages and claim TTL (default: visibility timeout)",
    )
    parser.add_argument("-R", "--redis-server", help="Redis host for duplicate suppression")
    parser.add_argument("-p", "--redis-port", type=int, help="Redis port (default 6379)")
    parser.add_argument("-w", "--worker", help="Handler path, e.g. 'myapp.jobs:Handler'")
    parser.add_argument("-l", "--log-level", help="debug, info, warn, error")
    parser.add_argument("-L", "--log-path", help="Also write logs to this file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the daemon.

    Returns:
        int: 0 after a normal stop, 1 on a configuration error.
    """
    args = build_parser().parse_args(argv)
    overrides = {name: getattr(args, name) for name in OVERRIDE_FIELDS}

    configure_logging(args.log_level, args.log_path)

    try:
        settings = load_settings(args.config_file, overrides)
        load_handler(settings.worker, settings)
        configure_logging(settings.log_level, settings.log_path)
        loop = PollLoop(
            settings,
            settings_loader=lambda: load_settings(args.config_file, overrides),
        )
    except ConfigurationError as exc:
        logger.error("Configuration error", extra={"error": exc.message, "code": exc.code})
        return 1

    set_settings(settings)
    loop.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
