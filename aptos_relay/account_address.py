# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import hashlib
import typing
import unittest

from . import authenticator_v2, ed25519, hex_string
from .bcs import Deserializer, Serializer
from .errors import DecodeError


class AuthKeyScheme:
    Ed25519: bytes = b"\x00"
    MultiEd25519: bytes = b"\x01"
    SingleKey: bytes = b"\x02"
    MultiKey: bytes = b"\x03"


class AccountAddress:
    address: bytes
    LENGTH: int = 32

    def __init__(self, address: bytes):
        self.address = address

        if len(address) != AccountAddress.LENGTH:
            raise DecodeError(
                f"Expected address of length {AccountAddress.LENGTH}, found {len(address)}"
            )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AccountAddress):
            return NotImplemented
        return self.address == other.address

    def __hash__(self) -> int:
        return hash(self.address)

    def __str__(self):
        """
        Represent an account address in a way that is compliant with the v1 address
        standard (AIP-40): special addresses 0x0 to 0xf in SHORT form, all others in
        LONG form, always prefixed with 0x.
        """
        suffix = self.address.hex()
        if self.is_special():
            suffix = suffix.lstrip("0") or "0"
        return f"0x{suffix}"

    def __repr__(self):
        return self.__str__()

    def is_special(self):
        """An address is special if the first 31 bytes are zero and the last byte is below 16."""
        return all(b == 0 for b in self.address[:-1]) and self.address[-1] < 0b10000

    @staticmethod
    def from_str(address: str) -> AccountAddress:
        """
        Creates an instance of AccountAddress from a hex string, with or without a leading 0x.
        Short forms are padded with leading zeroes, so 0x1 and 0xa1 are both accepted. An odd
        number of digits is fine here since the padding restores whole bytes.

        :raises MalformedHexError: if the string holds a non-hex character.
        :raises DecodeError: if the string is empty or longer than 64 hex digits.
        """
        if not isinstance(address, str):
            raise DecodeError(f"Expected an address string, found {type(address).__name__}")

        addr = address[2:] if address[0:2] in ("0x", "0X") else address

        if len(addr) < 1:
            raise DecodeError(
                "Hex string is too short, must be 1 to 64 chars long, excluding the "
                "leading 0x."
            )

        if len(addr) > AccountAddress.LENGTH * 2:
            raise DecodeError(
                "Hex string is too long, must be 1 to 64 chars long, excluding the "
                "leading 0x."
            )

        addr = addr.rjust(AccountAddress.LENGTH * 2, "0")
        return AccountAddress(hex_string.to_bytes(addr))

    @staticmethod
    def from_key(
        key: typing.Union[ed25519.PublicKey, authenticator_v2.AnyPublicKey]
    ) -> AccountAddress:
        """The authentication key, and so the initial address, of a single signer account."""
        hasher = hashlib.sha3_256()
        if isinstance(key, ed25519.PublicKey):
            hasher.update(key.key)
            hasher.update(AuthKeyScheme.Ed25519)
        elif isinstance(key, authenticator_v2.AnyPublicKey):
            hasher.update(key.to_crypto_bytes())
            hasher.update(AuthKeyScheme.SingleKey)
        else:
            raise TypeError(f"Unsupported key type: {type(key).__name__}")
        return AccountAddress(hasher.digest())

    @staticmethod
    def deserialize(deserializer: Deserializer) -> AccountAddress:
        return AccountAddress(deserializer.fixed_bytes(AccountAddress.LENGTH))

    def serialize(self, serializer: Serializer):
        serializer.fixed_bytes(self.address)


class Test(unittest.TestCase):
    def test_short_and_long_forms(self):
        short = AccountAddress.from_str("0x1")
        long = AccountAddress.from_str(
            "0x0000000000000000000000000000000000000000000000000000000000000001"
        )
        self.assertEqual(short, long)
        self.assertEqual(str(short), "0x1")
        self.assertEqual(AccountAddress.from_str("a1").address[-1], 0xA1)
        self.assertEqual(
            str(AccountAddress.from_str("0xA1")),
            "0x00000000000000000000000000000000000000000000000000000000000000a1",
        )

    def test_invalid(self):
        for value in ["0x", "", "0x" + "1" * 65]:
            with self.assertRaises(DecodeError, msg=value):
                AccountAddress.from_str(value)
        with self.assertRaises(DecodeError):
            AccountAddress.from_str("0xzz")
        with self.assertRaises(DecodeError):
            AccountAddress(b"\x00" * 20)

    def test_from_key(self):
        private_key = ed25519.PrivateKey.from_str(
            "005120c5882b0d492b3d2dc60a8a4510ec2051825413878453137305ba2d644b"
        )
        expected = AccountAddress.from_str(
            "0x15b67a673979c7c5dfc8d9c9f94d02da35062a19dd9d218087bd9076589219c6"
        )
        self.assertEqual(AccountAddress.from_key(private_key.public_key()), expected)

    def test_serialization(self):
        address = AccountAddress.from_str("0xb0b")
        ser = Serializer()
        address.serialize(ser)
        self.assertEqual(len(ser.output()), AccountAddress.LENGTH)
        self.assertEqual(AccountAddress.deserialize(Deserializer(ser.output())), address)
