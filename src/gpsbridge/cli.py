"""Command-line interface for the GPS tracking bridge."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from gpsbridge import __version__
from gpsbridge.bridge import TrackingBridge
from gpsbridge.config import Config

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        verbose: Enable debug logging if True
    """
    level = logging.DEBUG if verbose else logging.INFO
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    logging.basicConfig(level=level, format=format_str)


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        args: Command-line arguments (defaults to sys.argv)

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="gpsbridge",
        description="GPS tracking bridge - forwards gpsd fixes to a UDP tracking server",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        help="Path to configuration file (YAML)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose/debug logging",
    )

    parser.add_argument(
        "--gpsd-host",
        type=str,
        default=None,
        help="gpsd host address (overrides config)",
    )

    parser.add_argument(
        "--gpsd-port",
        type=int,
        default=None,
        help="gpsd TCP port (overrides config)",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Tracking server host (overrides config)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Tracking server UDP port (overrides config)",
    )

    parser.add_argument(
        "--device-id",
        type=str,
        default=None,
        help="Device identifier, at most 22 bytes (overrides config)",
    )

    parser.add_argument(
        "--fifo",
        type=str,
        default=None,
        help="Rendezvous FIFO path for position queries (overrides config)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(args)


def load_config(args: argparse.Namespace) -> Config:
    """Load configuration from file and apply CLI overrides.

    Args:
        args: Parsed command-line arguments

    Returns:
        Configuration object
    """
    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: Configuration file not found: {config_path}", file=sys.stderr)
            sys.exit(1)
        config = Config.from_yaml(config_path)
    else:
        default_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path.home() / ".config" / "gpsbridge" / "config.yaml",
        ]
        config = None
        for path in default_paths:
            if path.exists():
                config = Config.from_yaml(path)
                break
        if config is None:
            config = Config.default()

    if args.gpsd_host:
        config.gpsd.host = args.gpsd_host
    if args.gpsd_port:
        config.gpsd.port = args.gpsd_port
    if args.host:
        config.destination.host = args.host
    if args.port:
        config.destination.port = args.port
    if args.device_id is not None:
        config.reporting.device_id = args.device_id
    if args.fifo:
        config.position_query.fifo_path = args.fifo

    return config


async def run_bridge(config: Config) -> None:
    """Run the bridge with the given configuration.

    Configuration errors and failures to create the socket or the FIFO are
    fatal: they are logged as critical and the process exits with status 1.

    Args:
        config: Bridge configuration
    """
    try:
        bridge = TrackingBridge(config=config)
    except ValueError as e:
        logger.critical(f"Invalid configuration: {e}")
        sys.exit(1)

    try:
        await bridge.start()
    except OSError as e:
        logger.critical(f"Cannot start bridge: {e}")
        sys.exit(1)


def main(args: list[str] | None = None) -> None:
    """Main entry point for the CLI.

    Args:
        args: Command-line arguments (defaults to sys.argv)
    """
    parsed_args = parse_args(args)
    setup_logging(verbose=parsed_args.verbose)

    config = load_config(parsed_args)

    try:
        asyncio.run(run_bridge(config))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
