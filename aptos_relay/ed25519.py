# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Ed25519 keys and signatures. The relay only carries public keys and signatures as raw bytes; the
network verifies them on submission. Private keys exist for the sender role.
"""

from __future__ import annotations

import unittest

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from . import hex_string
from .bcs import Deserializer, Serializer
from .errors import DecodeError


class PrivateKey:
    LENGTH: int = 32

    key: SigningKey

    def __init__(self, key: SigningKey):
        self.key = key

    def __eq__(self, other: object):
        if not isinstance(other, PrivateKey):
            return NotImplemented
        return self.key == other.key

    def __str__(self):
        return self.hex()

    @staticmethod
    def from_str(value: str) -> PrivateKey:
        return PrivateKey(SigningKey(hex_string.to_bytes(value)))

    def hex(self) -> str:
        return hex_string.from_bytes(self.key.encode())

    def public_key(self) -> PublicKey:
        return PublicKey(self.key.verify_key.encode())

    @staticmethod
    def random() -> PrivateKey:
        return PrivateKey(SigningKey.generate())

    def sign(self, data: bytes) -> Signature:
        return Signature(self.key.sign(data).signature)


class PublicKey:
    LENGTH: int = 32

    key: bytes

    def __init__(self, key: bytes):
        if len(key) != PublicKey.LENGTH:
            raise DecodeError(
                f"Expected public key of length {PublicKey.LENGTH}, found {len(key)}"
            )
        self.key = key

    def __eq__(self, other: object):
        if not isinstance(other, PublicKey):
            return NotImplemented
        return self.key == other.key

    def __str__(self) -> str:
        return hex_string.from_bytes(self.key)

    def __repr__(self) -> str:
        return self.__str__()

    def verify(self, data: bytes, signature: Signature) -> bool:
        try:
            VerifyKey(self.key).verify(data, signature.signature)
        except BadSignatureError:
            return False
        return True

    @staticmethod
    def deserialize(deserializer: Deserializer) -> PublicKey:
        return PublicKey(deserializer.to_bytes())

    def serialize(self, serializer: Serializer):
        serializer.to_bytes(self.key)


class Signature:
    LENGTH: int = 64

    signature: bytes

    def __init__(self, signature: bytes):
        if len(signature) != Signature.LENGTH:
            raise DecodeError(
                f"Expected signature of length {Signature.LENGTH}, found {len(signature)}"
            )
        self.signature = signature

    def __eq__(self, other: object):
        if not isinstance(other, Signature):
            return NotImplemented
        return self.signature == other.signature

    def __str__(self) -> str:
        return hex_string.from_bytes(self.signature)

    def __repr__(self) -> str:
        return self.__str__()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Signature:
        return Signature(deserializer.to_bytes())

    def serialize(self, serializer: Serializer):
        serializer.to_bytes(self.signature)


class Test(unittest.TestCase):
    def test_sign_and_verify(self):
        in_value = b"test_message"

        private_key = PrivateKey.random()
        public_key = private_key.public_key()

        signature = private_key.sign(in_value)
        self.assertTrue(public_key.verify(in_value, signature))
        self.assertFalse(public_key.verify(b"other_message", signature))

    def test_public_key_serialization(self):
        public_key = PrivateKey.random().public_key()

        ser = Serializer()
        public_key.serialize(ser)
        self.assertEqual(ser.output()[0], PublicKey.LENGTH)
        ser_public_key = PublicKey.deserialize(Deserializer(ser.output()))
        self.assertEqual(public_key, ser_public_key)

    def test_signature_serialization(self):
        signature = PrivateKey.random().sign(b"another_message")

        ser = Serializer()
        signature.serialize(ser)
        ser_signature = Signature.deserialize(Deserializer(ser.output()))
        self.assertEqual(signature, ser_signature)

    def test_length_mismatch(self):
        with self.assertRaises(DecodeError):
            PublicKey(b"\x01" * 31)
        with self.assertRaises(DecodeError):
            Signature(b"\x01" * 65)

        ser = Serializer()
        ser.to_bytes(b"\x01" * 33)
        with self.assertRaises(DecodeError):
            PublicKey.deserialize(Deserializer(ser.output()))
