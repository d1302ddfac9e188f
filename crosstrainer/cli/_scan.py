"""Discovery commands for crosstrainer CLI."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable, Sequence

from .._scanner import DeviceChooser, TrainerDevice, choose_address, discover_trainers
from ..exceptions import TransportUnavailableError


def _describe(device: TrainerDevice) -> str:
    rssi = f", RSSI {device.rssi} dBm" if device.rssi is not None else ""
    return f"{device.name or 'Unknown Device'} [{device.address}{rssi}]"


def prompt_for_device(
    devices: Sequence[TrainerDevice], read: Callable[[str], str] = input
) -> TrainerDevice | None:
    """Pick a device from ``devices``, asking the user when there is a choice.

    A single result is chosen without asking. Empty input, an invalid index
    or end of input cancels the selection.
    """
    if not devices:
        return None
    if len(devices) == 1:
        return devices[0]

    print(f"\nFound {len(devices)} trainers:\n")
    for i, device in enumerate(devices, 1):
        print(f"{i}. {_describe(device)}")
    try:
        answer = read("\nSelect a device (Enter to cancel): ").strip()
    except EOFError:
        return None
    if not answer:
        return None
    try:
        index = int(answer)
    except ValueError:
        print(f"✗ Not a number: {answer}")
        return None
    if not 1 <= index <= len(devices):
        print(f"✗ No device #{index}")
        return None
    return devices[index - 1]


def cli_chooser(address: str | None) -> DeviceChooser:
    """Chooser for the CLI: by ``--address`` when given, interactive otherwise."""
    if address:
        return choose_address(address)
    return prompt_for_device


async def scan(args: argparse.Namespace) -> None:
    """List trainers advertising a supported service."""
    mode = "all devices" if args.all else "supported trainers"
    print(f"Scanning for {mode} (timeout: {args.timeout}s)...")
    try:
        devices = await discover_trainers(args.timeout, accept_all=args.all)
    except TransportUnavailableError as e:
        print(f"\n✗ {e}")
        sys.exit(1)

    if not devices:
        print("\n✗ No trainers found")
        if not args.all:
            print("  Some machines do not advertise their services; retry with --all.")
        sys.exit(1)

    print(f"\n✓ Found {len(devices)} device(s):\n")
    for i, device in enumerate(devices, 1):
        print(f"{i}. {device.name or 'Unknown Device'}")
        print(f"   Address: {device.address}")
        if device.rssi is not None:
            print(f"   RSSI: {device.rssi} dBm")
        if device.service_uuids:
            print(f"   Services: {', '.join(device.service_uuids)}")
        print()
