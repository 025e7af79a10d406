"""Inspect how 16-bit values are laid out in network byte order."""

from __future__ import annotations

import argparse
import struct

SAMPLE_VALUE = 0x1234


def network_first_byte(value: int) -> int:
    """Return the first byte in memory of ``value`` converted to network order."""
    try:
        return struct.pack("!H", value)[0]
    except struct.error as exc:
        raise ValueError(f"value out of 16-bit range: {value!r}") from exc


def describe_network_order(value: int = SAMPLE_VALUE) -> str | None:
    """Say whether network order stores ``value`` little- or big-endian.

    Returns None when the first byte matches neither half of the value.
    """
    first = network_first_byte(value)
    if first == value & 0xFF:
        return "It's little"
    if first == (value >> 8) & 0xFF:
        return "It's big"
    return None


def main(argv: list[str] | None = None) -> int:
    """Print the byte order that network conversion produces."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "value",
        nargs="?",
        type=lambda text: int(text, 0),
        default=SAMPLE_VALUE,
        help="16-bit value to inspect (default 0x1234)",
    )
    parser.add_argument(
        "--where",
        action="store_true",
        help="also print the current function name and source file",
    )
    args = parser.parse_args(argv)
    try:
        description = describe_network_order(args.value)
    except ValueError as exc:
        parser.error(str(exc))
    if description is not None:
        print(description)
    if args.where:
        print(main.__name__)
        print(__file__)
    return 0