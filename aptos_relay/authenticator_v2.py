# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Account authenticators in the current (v2) layout. Clients submit a RawTransaction immediately
followed by an AccountAuthenticator; the relay wraps that authenticator in a single-sender
TransactionAuthenticator for submission. Only single-key Ed25519 signers are supported.
"""

from __future__ import annotations

import typing

from . import ed25519
from .bcs import Deserializer, Serializer
from .errors import UnknownTagError


class AccountAuthenticator:
    ED25519: int = 0
    MULTI_ED25519: int = 1
    SINGLE_KEY: int = 2
    MULTI_KEY: int = 3
    NO_ACCOUNT_AUTHENTICATOR: int = 4

    variant: int
    authenticator: typing.Any

    def __init__(self, authenticator: typing.Any):
        if isinstance(authenticator, SingleKeyAuthenticator):
            self.variant = AccountAuthenticator.SINGLE_KEY
        else:
            raise TypeError(f"Unsupported authenticator: {type(authenticator).__name__}")
        self.authenticator = authenticator

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AccountAuthenticator):
            return NotImplemented
        return (
            self.variant == other.variant and self.authenticator == other.authenticator
        )

    def __repr__(self) -> str:
        return self.__str__()

    def __str__(self) -> str:
        return self.authenticator.__str__()

    def verify(self, data: bytes) -> bool:
        return self.authenticator.verify(data)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> AccountAuthenticator:
        variant = deserializer.uleb128()

        if variant == AccountAuthenticator.SINGLE_KEY:
            authenticator = SingleKeyAuthenticator.deserialize(deserializer)
        else:
            raise UnknownTagError("AccountAuthenticator", variant)

        return AccountAuthenticator(authenticator)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        serializer.struct(self.authenticator)


class SingleKeyAuthenticator:
    public_key: AnyPublicKey
    signature: AnySignature

    def __init__(self, public_key: AnyPublicKey, signature: AnySignature):
        self.public_key = public_key
        self.signature = signature

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SingleKeyAuthenticator):
            return NotImplemented
        return self.public_key == other.public_key and self.signature == other.signature

    def __str__(self) -> str:
        return f"PublicKey: {self.public_key}, Signature: {self.signature}"

    def verify(self, data: bytes) -> bool:
        return self.public_key.public_key.verify(data, self.signature.signature)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> SingleKeyAuthenticator:
        public_key = deserializer.struct(AnyPublicKey)
        signature = deserializer.struct(AnySignature)
        return SingleKeyAuthenticator(public_key, signature)

    def serialize(self, serializer: Serializer):
        serializer.struct(self.public_key)
        serializer.struct(self.signature)


class AnyPublicKey:
    ED25519: int = 0
    SECP256K1_ECDSA: int = 1
    SECP256R1_ECDSA: int = 2
    KEYLESS: int = 3

    variant: int
    public_key: ed25519.PublicKey

    def __init__(self, public_key: ed25519.PublicKey):
        self.variant = AnyPublicKey.ED25519
        self.public_key = public_key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AnyPublicKey):
            return NotImplemented
        return self.variant == other.variant and self.public_key == other.public_key

    def __str__(self) -> str:
        return self.public_key.__str__()

    def to_crypto_bytes(self) -> bytes:
        ser = Serializer()
        self.serialize(ser)
        return ser.output()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> AnyPublicKey:
        variant = deserializer.uleb128()

        if variant == AnyPublicKey.ED25519:
            return AnyPublicKey(deserializer.struct(ed25519.PublicKey))
        raise UnknownTagError("AnyPublicKey", variant)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        serializer.struct(self.public_key)


class AnySignature:
    ED25519: int = 0
    SECP256K1_ECDSA: int = 1
    WEBAUTHN: int = 2
    KEYLESS: int = 3

    variant: int
    signature: ed25519.Signature

    def __init__(self, signature: ed25519.Signature):
        self.variant = AnySignature.ED25519
        self.signature = signature

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AnySignature):
            return NotImplemented
        return self.variant == other.variant and self.signature == other.signature

    def __str__(self) -> str:
        return self.signature.__str__()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> AnySignature:
        variant = deserializer.uleb128()

        if variant == AnySignature.ED25519:
            return AnySignature(deserializer.struct(ed25519.Signature))
        raise UnknownTagError("AnySignature", variant)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        serializer.struct(self.signature)


class TransactionAuthenticator:
    """The authenticator appended to a v2 RawTransaction when it is submitted to the network."""

    ED25519: int = 0
    MULTI_ED25519: int = 1
    MULTI_AGENT: int = 2
    FEE_PAYER: int = 3
    SINGLE_SENDER: int = 4

    variant: int
    sender: AccountAuthenticator

    def __init__(self, sender: AccountAuthenticator):
        self.variant = TransactionAuthenticator.SINGLE_SENDER
        self.sender = sender

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransactionAuthenticator):
            return NotImplemented
        return self.variant == other.variant and self.sender == other.sender

    def __str__(self) -> str:
        return f"SingleSender: {self.sender}"

    @staticmethod
    def deserialize(deserializer: Deserializer) -> TransactionAuthenticator:
        variant = deserializer.uleb128()

        if variant == TransactionAuthenticator.SINGLE_SENDER:
            return TransactionAuthenticator(deserializer.struct(AccountAuthenticator))
        raise UnknownTagError("TransactionAuthenticator", variant)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        serializer.struct(self.sender)
