"""Offline frame decoding for crosstrainer CLI."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable

from ..exceptions import DecodeError
from ..protocols import (
    FTMS_VARIANTS,
    WorkoutSample,
    decode_cross_trainer_data,
    decode_huantong_data,
    decode_v1_control,
    decode_v1_data,
    decode_v2_data,
)

Decoder = Callable[[bytes, argparse.Namespace], "WorkoutSample | None"]

DECODERS: dict[str, Decoder] = {
    "ftms": lambda frame, args: decode_cross_trainer_data(
        frame, FTMS_VARIANTS[args.ftms_variant]
    ),
    "v2": lambda frame, _: decode_v2_data(frame),
    "v1": lambda frame, _: decode_v1_data(frame),
    "v1-control": lambda frame, _: decode_v1_control(frame),
    "huantong": lambda frame, _: decode_huantong_data(frame),
}


def parse_hex(text: str) -> bytes:
    """Parse a frame written as hex, allowing spaces, colons and dashes."""
    cleaned = "".join(ch for ch in text if ch not in " :-")
    if cleaned.lower().startswith("0x"):
        cleaned = cleaned[2:]
    return bytes.fromhex(cleaned)


async def decode(args: argparse.Namespace) -> None:
    """Decode a captured notification frame."""
    try:
        frame = parse_hex(args.frame)
    except ValueError:
        print(f"✗ Invalid hex frame: {args.frame}")
        sys.exit(1)

    try:
        sample = DECODERS[args.protocol](frame, args)
    except DecodeError as e:
        print(f"✗ Frame dropped: {e}")
        sys.exit(1)

    if sample is None:
        print("✗ Frame ignored by decoder (wrong header or length)")
        sys.exit(1)

    values = sample.as_dict()
    if args.json:
        print(json.dumps(values, indent=2))
    elif not values:
        print("(no fields)")
    else:
        for key, value in values.items():
            print(f"{key}: {value}")
