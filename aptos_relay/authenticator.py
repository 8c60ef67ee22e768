# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Transaction authenticators in the legacy (v1) layout: a SignedTransaction is followed directly by
an Authenticator whose variant selects the signature scheme. The relay supports a single Ed25519
signer only; every other variant is rejected while decoding.
"""

from __future__ import annotations

import unittest

from . import ed25519
from .bcs import Deserializer, Serializer
from .errors import UnknownTagError


class Authenticator:
    """The legacy `TransactionAuthenticator` enum, restricted to its Ed25519 variant."""

    ED25519: int = 0
    MULTI_ED25519: int = 1
    MULTI_AGENT: int = 2
    FEE_PAYER: int = 3
    SINGLE_SENDER: int = 4

    variant: int
    authenticator: Ed25519Authenticator

    def __init__(self, authenticator: Ed25519Authenticator):
        if not isinstance(authenticator, Ed25519Authenticator):
            raise TypeError(
                f"Only Ed25519 signers are relayed, found {type(authenticator).__name__}"
            )
        self.variant = Authenticator.ED25519
        self.authenticator = authenticator

    @staticmethod
    def ed25519(key: ed25519.PrivateKey, message: bytes) -> Authenticator:
        return Authenticator(Ed25519Authenticator(key.public_key(), key.sign(message)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Authenticator):
            return NotImplemented
        return self.authenticator == other.authenticator

    def __repr__(self) -> str:
        return f"Authenticator({self.authenticator})"

    def __str__(self) -> str:
        return str(self.authenticator)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Authenticator:
        variant = deserializer.uleb128()
        if variant != Authenticator.ED25519:
            raise UnknownTagError("TransactionAuthenticator", variant)
        return Authenticator(deserializer.struct(Ed25519Authenticator))

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        self.authenticator.serialize(serializer)


class Ed25519Authenticator:
    public_key: ed25519.PublicKey
    signature: ed25519.Signature

    def __init__(self, public_key: ed25519.PublicKey, signature: ed25519.Signature):
        self.public_key = public_key
        self.signature = signature

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ed25519Authenticator):
            return NotImplemented
        return (self.public_key, self.signature) == (other.public_key, other.signature)

    def __str__(self) -> str:
        return f"ed25519 key={self.public_key} sig={self.signature}"

    def verify(self, message: bytes) -> bool:
        return self.public_key.verify(message, self.signature)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Ed25519Authenticator:
        public_key = ed25519.PublicKey.deserialize(deserializer)
        return Ed25519Authenticator(public_key, ed25519.Signature.deserialize(deserializer))

    def serialize(self, serializer: Serializer):
        self.public_key.serialize(serializer)
        self.signature.serialize(serializer)


class Test(unittest.TestCase):
    message = b"APTOS::RawTransaction"

    def setUp(self):
        self.key = ed25519.PrivateKey.from_str(
            "9bf49a6a0755f953811fce125f2683d50429c3bb49e074147e0089a52eae155f"
        )

    def encoded(self, authenticator: Authenticator) -> bytes:
        ser = Serializer()
        authenticator.serialize(ser)
        return ser.output()

    def test_layout(self):
        authenticator = Authenticator.ed25519(self.key, self.message)
        data = self.encoded(authenticator)

        # tag, then length-prefixed 32-byte key and 64-byte signature
        self.assertEqual(len(data), 1 + 1 + 32 + 1 + 64)
        self.assertEqual(data[0], Authenticator.ED25519)
        self.assertEqual(data[1], ed25519.PublicKey.LENGTH)
        self.assertEqual(data[2:34], self.key.public_key().key)
        self.assertEqual(data[34], ed25519.Signature.LENGTH)
        self.assertEqual(Authenticator.deserialize(Deserializer(data)), authenticator)

    def test_verify(self):
        authenticator = Authenticator.ed25519(self.key, self.message)
        self.assertTrue(authenticator.authenticator.verify(self.message))
        self.assertFalse(authenticator.authenticator.verify(b"tampered"))

    def test_other_variants_are_rejected(self):
        data = bytearray(self.encoded(Authenticator.ed25519(self.key, self.message)))
        for variant in [
            Authenticator.MULTI_ED25519,
            Authenticator.MULTI_AGENT,
            Authenticator.FEE_PAYER,
            Authenticator.SINGLE_SENDER,
            0x7F,
        ]:
            data[0] = variant
            with self.assertRaises(UnknownTagError) as ctx:
                Authenticator.deserialize(Deserializer(bytes(data)))
            self.assertEqual(ctx.exception.union, "TransactionAuthenticator")
            self.assertEqual(ctx.exception.tag, variant)

    def test_construction_requires_ed25519(self):
        with self.assertRaises(TypeError):
            Authenticator(self.key.public_key())
