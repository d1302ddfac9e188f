from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from ..protocols import FTMS_VARIANTS
from ._decode import DECODERS, decode
from ._monitor import monitor, set_resistance
from ._scan import scan

LOGGER = logging.getLogger(__name__)


def _add_scan_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--timeout", type=float, default=10.0, help="Scan timeout in seconds (default: 10.0)"
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="List every advertising device, not only known trainer services",
    )


def _add_connection_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--address", help="BLE address of the trainer (default: ask)")
    _add_scan_options(parser)
    _add_ftms_variant_option(parser)


def _add_ftms_variant_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--ftms-variant",
        choices=sorted(FTMS_VARIANTS),
        default="mobi",
        help="FTMS firmware interpretation (default: mobi)",
    )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the cross trainer tool."""
    parser = argparse.ArgumentParser(
        prog="crosstrainer",
        description="Elliptical Trainer BLE Command-Line Interface",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Discovery
  crosstrainer scan                               # Trainers advertising a known service
  crosstrainer scan --all                         # Every advertising device

  # Monitoring
  crosstrainer monitor                            # Pick a trainer and show live values
  crosstrainer monitor --address AA:BB:CC:DD:EE:FF
  crosstrainer monitor --resistance 12            # Set level 12, then monitor
  crosstrainer monitor --ftms-variant standard    # FTMS firmware using 0.01 km/h

  # Resistance
  crosstrainer resistance 14 --address AA:BB:CC:DD:EE:FF

  # Offline decoding of captured notifications
  crosstrainer decode ftms "08 03 00 96 00 3c 00 78 00 64"
  crosstrainer decode v2 3200500012003400780096 --json
  crosstrainer decode huantong 200101230000000000000000
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute", required=True)

    # Scan command
    scan_parser = subparsers.add_parser("scan", help="Scan for elliptical trainers")
    _add_scan_options(scan_parser)
    scan_parser.set_defaults(func=scan)

    # Monitor command
    monitor_parser = subparsers.add_parser("monitor", help="Show live workout values")
    _add_connection_options(monitor_parser)
    monitor_parser.add_argument(
        "--resistance", type=int, help="Resistance level to set after connecting"
    )
    monitor_parser.add_argument(
        "--interval",
        type=float,
        default=1.0,
        help="Link check interval in seconds (default: 1.0)",
    )
    monitor_parser.set_defaults(func=monitor)

    # Resistance command
    resistance_parser = subparsers.add_parser("resistance", help="Set the resistance level")
    resistance_parser.add_argument("level", type=int, help="Target resistance level")
    _add_connection_options(resistance_parser)
    resistance_parser.set_defaults(func=set_resistance)

    # Decode command
    decode_parser = subparsers.add_parser("decode", help="Decode a captured frame offline")
    decode_parser.add_argument("protocol", choices=list(DECODERS), help="Frame protocol")
    decode_parser.add_argument("frame", help="Frame bytes as hex")
    decode_parser.add_argument("--json", action="store_true", help="Output as JSON")
    _add_ftms_variant_option(decode_parser)
    decode_parser.set_defaults(func=decode)

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the crosstrainer CLI."""
    args = _parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(args.func(args))
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(0)
    except Exception as e:
        LOGGER.error("Error: %s", e, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
