"""Connection commands for crosstrainer CLI."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

from ..client import ConnectionEvent, ManagerConfig, TrainerManager, WorkoutSession
from ..exceptions import CommandError, ConnectError, NotConnectedError
from ..protocols import FTMS_VARIANTS, WorkoutSample
from ._scan import cli_chooser

LOGGER = logging.getLogger(__name__)

COLUMNS = (
    ("speed_kph", "km/h"),
    ("cadence_rpm", "rpm"),
    ("power_w", "W"),
    ("resistance_level", "Level"),
    ("distance_m", "m"),
    ("energy_kcal", "kcal"),
    ("heart_rate_bpm", "bpm"),
)


def manager_config(args: argparse.Namespace) -> ManagerConfig:
    """Build the manager configuration from common connection options."""
    return ManagerConfig(
        scan_timeout=args.timeout,
        accept_all_devices=args.all,
        ftms_variant=FTMS_VARIANTS[args.ftms_variant],
    )


def _format_value(value: object) -> str:
    if value is None:
        return f"{'-':>8}"
    if isinstance(value, float):
        return f"{value:>8.1f}"
    return f"{value!s:>8}"


def format_row(sample: WorkoutSample) -> str:
    """Format the columns of ``sample`` for the monitor table."""
    return " | ".join(_format_value(getattr(sample, field)) for field, _ in COLUMNS)


def _print_diagnostics(manager: TrainerManager) -> None:
    entries = manager.diagnostics()
    if not entries:
        return
    print("\nDiagnostic log:")
    for entry in entries:
        print(f"  {entry}")


def _on_event(event: ConnectionEvent, data: dict[str, Any]) -> None:
    if event is ConnectionEvent.DISCONNECT_PASSIVE:
        print("\n✗ Device disconnected")
    LOGGER.debug("Event %s %s", event.value, data)


async def _connect(manager: TrainerManager) -> str:
    print("Connecting...")
    try:
        protocol = await manager.connect()
    except ConnectError as e:
        print(f"\n✗ Connection failed: {e}")
        _print_diagnostics(manager)
        sys.exit(1)
    print(f"✓ Connected using {protocol}\n")
    return protocol


async def monitor(args: argparse.Namespace) -> None:
    """Print merged workout values as they arrive."""
    manager = TrainerManager(
        manager_config(args), chooser=cli_chooser(args.address), on_event=_on_event
    )
    session = WorkoutSession()

    def _show(sample: WorkoutSample) -> None:
        session.update(sample)
        print(format_row(session.snapshot()))

    await _connect(manager)
    try:
        if args.resistance is not None:
            await manager.set_resistance(args.resistance)
            print(f"✓ Resistance set to {args.resistance}\n")

        print("Monitoring (Ctrl+C to stop)...\n")
        print(" | ".join(f"{unit:>8}" for _, unit in COLUMNS))
        print("-" * (11 * len(COLUMNS)))
        await manager.start_telemetry(_show)

        while manager.is_connected():
            await asyncio.sleep(args.interval)
    except (CommandError, NotConnectedError) as e:
        print(f"\n✗ Error: {e}")
        sys.exit(1)
    finally:
        await manager.disconnect()

    print(f"\n{session.samples_received} sample(s) received")


async def set_resistance(args: argparse.Namespace) -> None:
    """Connect, set the resistance level and disconnect."""
    manager = TrainerManager(manager_config(args), chooser=cli_chooser(args.address))
    protocol = await _connect(manager)
    try:
        await manager.set_resistance(args.level)
        print(f"✓ Resistance set to {args.level} ({protocol})")
    except (CommandError, NotConnectedError) as e:
        print(f"\n✗ Failed to set resistance: {e}")
        _print_diagnostics(manager)
        sys.exit(1)
    finally:
        await manager.disconnect()
