"""Entry point for Hub2Watch: python -m hub2watch."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .app import Hub2WatchApp
from .ble.parsers.hub2 import decode
from .config import load_config
from .formatting import format_reading
from .models import AppConfig

DEFAULT_CONFIG_PATH = Path("config.yaml")


def setup_logging(verbose: bool, quiet: bool = False) -> None:
    """Configure logging."""
    if quiet:
        level = logging.WARNING
    else:
        level = logging.DEBUG if verbose else logging.INFO
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    # Reduce noise from libraries
    logging.getLogger("bleak").setLevel(logging.WARNING)


def positive_float(value: str) -> float:
    """argparse type for strictly positive seconds."""
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value}")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return result


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="hub2watch",
        description="SwitchBot Hub2 BLE advertisement decoder and sampler",
    )

    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH} if present)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only log warnings and errors",
    )

    parser.add_argument(
        "--decode",
        metavar="HEX",
        default=None,
        help="Decode a single manufacturer-data buffer given as hex and exit",
    )

    parser.add_argument(
        "-i", "--interval",
        type=positive_float,
        default=None,
        metavar="SECONDS",
        help="Time between scan window starts (default: 15)",
    )

    parser.add_argument(
        "-d", "--duration",
        type=positive_float,
        default=None,
        metavar="SECONDS",
        help="Length of each scan window (default: 3)",
    )

    parser.add_argument(
        "--run-for",
        type=positive_float,
        default=None,
        metavar="SECONDS",
        help="Stop sampling after this many seconds (default: run until Ctrl-C)",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print readings as JSON lines",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AppConfig:
    """Load the configuration file and apply command line overrides."""
    if args.config is not None:
        config = load_config(args.config.resolve())
    elif DEFAULT_CONFIG_PATH.exists():
        config = load_config(DEFAULT_CONFIG_PATH.resolve())
    else:
        config = AppConfig()

    if args.interval is not None:
        config.scan.interval = args.interval
    if args.duration is not None:
        config.scan.scan_duration = args.duration
    return config


def decode_hex(hex_str: str, as_json: bool = False) -> int:
    """Decode one buffer and print it. Returns the process exit code."""
    logger = logging.getLogger(__name__)

    try:
        buffer = bytes.fromhex(hex_str.strip())
    except ValueError:
        logger.error("Not a hex string: %s", hex_str)
        return 1

    reading = decode(buffer)
    if reading is None:
        logger.error("Could not decode buffer: %s", buffer.hex())
        return 1

    if as_json:
        print(json.dumps(reading.to_dict()))
    else:
        print(format_reading(reading))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.verbose, quiet=args.quiet)

    logger = logging.getLogger(__name__)

    if args.decode is not None:
        return decode_hex(args.decode, as_json=args.json)

    try:
        config = build_config(args)
    except FileNotFoundError as e:
        logger.error("%s", e)
        return 1

    # Run the application
    try:
        app = Hub2WatchApp(config, json_output=args.json, run_for=args.run_for)
        asyncio.run(app.run())
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
