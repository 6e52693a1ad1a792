"""Command-line entry point for the relay server."""

import argparse
import asyncio
import logging
import sys

from phonerelay.config import Config
from phonerelay.server import RelayServer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phonerelay",
        description="WebSocket relay between a provider phone and its consumers",
    )
    parser.add_argument("port", nargs="?", type=int, help="Port to listen on (default: 8080)")
    parser.add_argument("--host", help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument(
        "--heartbeat-interval",
        type=float,
        help="Seconds between liveness sweeps (default: 30)",
    )
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    return parser


def load_config(args: argparse.Namespace) -> Config:
    """Build configuration from the environment, then command-line overrides.

    Raises:
        ValueError: If a setting is malformed or the log level is unknown
    """
    config = Config.from_env()
    if args.port is not None:
        config.server.port = args.port
    if args.host is not None:
        config.server.host = args.host
    if args.heartbeat_interval is not None:
        config.liveness.heartbeat_interval_seconds = args.heartbeat_interval
    if args.log_level is not None:
        config.logging.level = args.log_level.upper()
    if not isinstance(logging.getLevelName(config.logging.level), int):
        raise ValueError(f"unknown log level: {config.logging.level}")
    return config


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(level=config.logging.level, format=config.logging.format)

    server = RelayServer(config=config)
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Relay server stopped by user")
    except OSError as e:
        logger.error(f"Cannot start relay server: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
