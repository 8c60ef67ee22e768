# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Conversions between 0x-prefixed hex strings and raw bytes. Every wire format the relay accepts
carries its binary data through here.
"""

import string
import unittest

from .errors import MalformedHexError

HEX_DIGITS = frozenset(string.hexdigits)


def to_bytes(value: str) -> bytes:
    """
    Decodes a hex string, with or without a leading 0x (or 0X), in either case.

    :raises MalformedHexError: on an odd number of digits or a non-hex character.
    """
    if not isinstance(value, str):
        raise MalformedHexError(f"Expected a hex string, found {type(value).__name__}")

    digits = value[2:] if value[0:2] in ("0x", "0X") else value
    if len(digits) % 2 != 0:
        raise MalformedHexError(f"Odd number of hex digits: {len(digits)}")
    # bytes.fromhex tolerates whitespace, the wire formats do not.
    if not HEX_DIGITS.issuperset(digits):
        raise MalformedHexError(f"Invalid hex string: {value!r}")
    return bytes.fromhex(digits)


def from_bytes(value: bytes) -> str:
    return f"0x{value.hex()}"


class Test(unittest.TestCase):
    def test_prefixed_and_bare(self):
        self.assertEqual(to_bytes("0x0a1B"), b"\x0a\x1b")
        self.assertEqual(to_bytes("0X0A1b"), b"\x0a\x1b")
        self.assertEqual(to_bytes("0a1b"), b"\x0a\x1b")

    def test_empty(self):
        self.assertEqual(to_bytes("0x"), b"")
        self.assertEqual(to_bytes(""), b"")

    def test_encode_is_lowercase_and_prefixed(self):
        self.assertEqual(from_bytes(b"\xab\xcd\x00"), "0xabcd00")
        self.assertEqual(from_bytes(b""), "0x")

    def test_round_trip(self):
        data = bytes(range(256))
        self.assertEqual(to_bytes(from_bytes(data)), data)

    def test_odd_length(self):
        with self.assertRaises(MalformedHexError):
            to_bytes("0xabc")
        with self.assertRaises(MalformedHexError):
            to_bytes("1")

    def test_invalid_characters(self):
        for value in ["0xzz", "0x0g", "0x 0a", "0x0a\n", "0x0x", "xyz0"]:
            with self.assertRaises(MalformedHexError, msg=value):
                to_bytes(value)

    def test_non_string(self):
        with self.assertRaises(MalformedHexError):
            to_bytes(b"0a")  # type: ignore[arg-type]
        with self.assertRaises(MalformedHexError):
            to_bytes(10)  # type: ignore[arg-type]
