"""Command-line entry point for the consul-sync daemon."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys

from . import __version__
from .config import AppConfig, load_config
from .daemon import COMMIT, Daemon
from .exceptions import ConfigError, ConsulSyncError
from .logging_config import configure_logging

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="consul-sync",
        description="Mirror Consul services into Kubernetes Services, EndpointSlices and HTTPRoutes",
    )
    parser.add_argument("-c", "--config", metavar="PATH", help="YAML configuration file")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Run one full sync and exit")
    mode.add_argument("--validate", action="store_true", help="Check the configuration and exit")
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        type=str.upper,
        help="Override logging.level from the configuration",
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    return parser


def _load(args: argparse.Namespace) -> AppConfig | None:
    if not args.config:
        print("consul-sync: -c/--config is required", file=sys.stderr)
        return None
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"consul-sync: invalid configuration: {exc}", file=sys.stderr)
        return None
    if args.log_level:
        config = dataclasses.replace(
            config, logging=dataclasses.replace(config.logging, level=args.log_level),
        )
    return config


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.version:
        print(f"consul-sync {__version__} (commit: {COMMIT})")
        return 0

    config = _load(args)
    if config is None:
        return 1
    configure_logging(config.logging)

    if args.validate:
        logger.info("Configuration %s is valid", args.config)
        return 0

    try:
        daemon = Daemon(config)
        if args.once:
            return 0 if daemon.run_once() else 1
        daemon.run()
    except ConsulSyncError as exc:
        logger.error("consul-sync failed: %s", exc)
        return 1
    except KeyboardInterrupt:
        return 0
    return 0
