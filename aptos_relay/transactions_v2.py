# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Current (v2) Aptos transactions. Clients send a RawTransaction followed by an AccountAuthenticator
in one buffer, with no length prefix between them. These types are separate from the legacy ones in
`transactions` and are never converted to or from them.
"""

from __future__ import annotations

import hashlib
import typing
import unittest
from typing import List, Tuple

from . import ed25519, hex_string
from .account_address import AccountAddress
from .authenticator_v2 import (
    AccountAuthenticator,
    AnyPublicKey,
    AnySignature,
    SingleKeyAuthenticator,
    TransactionAuthenticator,
)
from .bcs import Deserializer, Serializer
from .errors import DecodeError, TruncatedInputError, UnknownTagError
from .type_tag import MAX_TYPE_TAG_NESTING, TypeTag


class RawTransaction:
    sender: AccountAddress
    sequence_number: int
    payload: TransactionPayload
    max_gas_amount: int
    gas_unit_price: int
    expiration_timestamps_secs: int
    chain_id: int

    def __init__(
        self,
        sender: AccountAddress,
        sequence_number: int,
        payload: TransactionPayload,
        max_gas_amount: int,
        gas_unit_price: int,
        expiration_timestamps_secs: int,
        chain_id: int,
    ):
        self.sender = sender
        self.sequence_number = sequence_number
        self.payload = payload
        self.max_gas_amount = max_gas_amount
        self.gas_unit_price = gas_unit_price
        self.expiration_timestamps_secs = expiration_timestamps_secs
        self.chain_id = chain_id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RawTransaction):
            return NotImplemented
        return self.encode() == other.encode()

    def __str__(self):
        return f"{self.sender}#{self.sequence_number} {self.payload} chain={self.chain_id}"

    def encode(self) -> bytes:
        ser = Serializer()
        self.serialize(ser)
        return ser.output()

    def keyed(self) -> bytes:
        return hashlib.sha3_256(b"APTOS::RawTransaction").digest() + self.encode()

    def sign(self, key: ed25519.PrivateKey) -> AccountAuthenticator:
        signature = key.sign(self.keyed())
        return AccountAuthenticator(
            SingleKeyAuthenticator(
                AnyPublicKey(key.public_key()), AnySignature(signature)
            )
        )

    @staticmethod
    def deserialize(deserializer: Deserializer) -> RawTransaction:
        return RawTransaction(
            AccountAddress.deserialize(deserializer),
            deserializer.u64(),
            TransactionPayload.deserialize(deserializer),
            deserializer.u64(),
            deserializer.u64(),
            deserializer.u64(),
            deserializer.u8(),
        )

    def serialize(self, serializer: Serializer):
        self.sender.serialize(serializer)
        serializer.u64(self.sequence_number)
        self.payload.serialize(serializer)
        serializer.u64(self.max_gas_amount)
        serializer.u64(self.gas_unit_price)
        serializer.u64(self.expiration_timestamps_secs)
        serializer.u8(self.chain_id)


class TransactionPayload:
    SCRIPT: int = 0
    MODULE_BUNDLE: int = 1
    ENTRY_FUNCTION: int = 2
    MULTISIG: int = 3

    variant: int
    value: EntryFunction

    def __init__(self, payload: EntryFunction):
        if not isinstance(payload, EntryFunction):
            raise TypeError(f"Unsupported payload: {type(payload).__name__}")
        self.variant = TransactionPayload.ENTRY_FUNCTION
        self.value = payload

    def __eq__(self, other: object) -> bool:
        return isinstance(other, TransactionPayload) and self.value == other.value

    def __str__(self) -> str:
        return str(self.value)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> TransactionPayload:
        variant = deserializer.uleb128()

        if variant == TransactionPayload.ENTRY_FUNCTION:
            return TransactionPayload(EntryFunction.deserialize(deserializer))
        raise UnknownTagError("TransactionPayload", variant)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        self.value.serialize(serializer)


class EntryFunction:
    module: ModuleId
    function: str
    type_args: List[TypeTag]
    args: List[bytes]

    def __init__(
        self,
        module: ModuleId,
        function: str,
        type_args: List[TypeTag],
        args: List[bytes],
    ):
        self.module = module
        self.function = function
        self.type_args = type_args
        self.args = args

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EntryFunction):
            return NotImplemented
        return vars(self) == vars(other)

    def __str__(self):
        args = [hex_string.from_bytes(arg) for arg in self.args]
        return f"{self.module}::{self.function}::<{self.type_args}>({args})"

    @staticmethod
    def build(
        function: str, type_args: List[TypeTag], args: List[bytes]
    ) -> EntryFunction:
        """Builds a call from a fully qualified name such as 0x1::aptos_account::transfer."""
        split = function.split("::")
        if len(split) != 3:
            raise DecodeError(
                f"Expected <address>::<module>::<function>, found {function!r}"
            )
        module = ModuleId(AccountAddress.from_str(split[0]), split[1])
        return EntryFunction(module, split[2], type_args, args)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> EntryFunction:
        module = ModuleId.deserialize(deserializer)
        function = deserializer.str()
        type_args = deserializer.sequence(TypeTag.deserialize)
        args = deserializer.sequence(Deserializer.to_bytes)
        return EntryFunction(module, function, type_args, args)

    def serialize(self, serializer: Serializer):
        self.module.serialize(serializer)
        serializer.str(self.function)
        serializer.sequence(self.type_args, Serializer.struct)
        serializer.sequence(self.args, Serializer.to_bytes)


class ModuleId:
    address: AccountAddress
    name: str

    def __init__(self, address: AccountAddress, name: str):
        self.address = address
        self.name = name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModuleId):
            return NotImplemented
        return self.address == other.address and self.name == other.name

    def __str__(self) -> str:
        return f"{self.address}::{self.name}"

    @staticmethod
    def deserialize(deserializer: Deserializer) -> ModuleId:
        addr = AccountAddress.deserialize(deserializer)
        name = deserializer.str()
        return ModuleId(addr, name)

    def serialize(self, serializer: Serializer):
        self.address.serialize(serializer)
        serializer.str(self.name)


class SignedTransaction:
    """What the network receives: the raw transaction under a single-sender authenticator."""

    raw_transaction: RawTransaction
    authenticator: TransactionAuthenticator

    def __init__(
        self,
        raw_transaction: RawTransaction,
        authenticator: typing.Union[AccountAuthenticator, TransactionAuthenticator],
    ):
        self.raw_transaction = raw_transaction
        if isinstance(authenticator, AccountAuthenticator):
            authenticator = TransactionAuthenticator(authenticator)
        self.authenticator = authenticator

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SignedTransaction):
            return NotImplemented
        return (
            self.raw_transaction == other.raw_transaction
            and self.authenticator == other.authenticator
        )

    def __str__(self) -> str:
        return f"Transaction: {self.raw_transaction}Authenticator: {self.authenticator}"

    def bytes(self) -> bytes:
        ser = Serializer()
        ser.struct(self)
        return ser.output()

    def verify(self) -> bool:
        return self.authenticator.sender.verify(self.raw_transaction.keyed())

    @staticmethod
    def deserialize(deserializer: Deserializer) -> SignedTransaction:
        raw_transaction = RawTransaction.deserialize(deserializer)
        authenticator = TransactionAuthenticator.deserialize(deserializer)
        return SignedTransaction(raw_transaction, authenticator)

    def serialize(self, serializer: Serializer):
        self.raw_transaction.serialize(serializer)
        self.authenticator.serialize(serializer)


def encode_submission(
    raw_transaction: RawTransaction, authenticator: AccountAuthenticator
) -> str:
    """The client side of `decode_submission`."""
    ser = Serializer()
    raw_transaction.serialize(ser)
    authenticator.serialize(ser)
    return hex_string.from_bytes(ser.output())


def decode_submission(value: str) -> Tuple[RawTransaction, AccountAuthenticator]:
    """
    Decodes a hex-encoded RawTransaction immediately followed by its AccountAuthenticator. The
    authenticator starts where the RawTransaction ends and must end where the buffer does.

    :raises MalformedHexError: if `value` is not valid hex.
    :raises TruncatedInputError: if the buffer ends mid-field.
    :raises UnknownTagError: for any payload other than an entry function call, or any
        authenticator other than a single Ed25519 key.
    :raises DecodeError: for malformed fields or trailing bytes.
    """
    deserializer = Deserializer(hex_string.to_bytes(value))
    raw_transaction = RawTransaction.deserialize(deserializer)
    authenticator = AccountAuthenticator.deserialize(deserializer)
    if deserializer.remaining() != 0:
        raise DecodeError(
            f"Unexpected {deserializer.remaining()} trailing bytes after AccountAuthenticator"
        )
    return (raw_transaction, authenticator)


class Test(unittest.TestCase):
    def setUp(self):
        self.private_key = ed25519.PrivateKey.from_str(
            "9bf49a6a0755f953811fce125f2683d50429c3bb49e074147e0089a52eae155f"
        )
        sender = AccountAddress.from_key(AnyPublicKey(self.private_key.public_key()))
        amount = Serializer()
        amount.u64(100)
        self.raw_transaction = RawTransaction(
            sender,
            3,
            TransactionPayload(
                EntryFunction.build(
                    "0x1::aptos_account::transfer",
                    [],
                    [AccountAddress.from_str("0x1").address, amount.output()],
                )
            ),
            200_000,
            100,
            1234567890,
            4,
        )
        self.authenticator = self.raw_transaction.sign(self.private_key)

    def legacy_bytes(self) -> str:
        from . import transactions

        raw_transaction = transactions.RawTransaction(
            self.raw_transaction.sender,
            3,
            transactions.TransactionPayload(
                transactions.EntryFunction.natural(
                    "0x1::aptos_account",
                    "transfer",
                    [],
                    [
                        transactions.TransactionArgument(
                            AccountAddress.from_str("0x1"), Serializer.struct
                        ),
                        transactions.TransactionArgument(100, Serializer.u64),
                    ],
                )
            ),
            200_000,
            100,
            1234567890,
            4,
        )
        signed_transaction = transactions.SignedTransaction(
            raw_transaction, raw_transaction.sign(self.private_key)
        )
        return hex_string.from_bytes(signed_transaction.bytes())

    def test_round_trip(self):
        encoded = encode_submission(self.raw_transaction, self.authenticator)
        raw_transaction, authenticator = decode_submission(encoded)

        self.assertEqual(raw_transaction, self.raw_transaction)
        self.assertEqual(authenticator, self.authenticator)
        self.assertTrue(authenticator.verify(raw_transaction.keyed()))

    def test_authenticator_layout(self):
        ser = Serializer()
        self.authenticator.serialize(ser)
        data = ser.output()
        # SingleKey, Ed25519 key of 32 bytes, Ed25519 signature of 64 bytes.
        self.assertEqual(data[0:3], b"\x02\x00\x20")
        self.assertEqual(data[35:37], b"\x00\x40")
        self.assertEqual(len(data), 3 + 32 + 2 + 64)

    def test_signed_transaction_wraps_single_sender(self):
        signed_transaction = SignedTransaction(self.raw_transaction, self.authenticator)
        self.assertTrue(signed_transaction.verify())

        ser = Serializer()
        self.raw_transaction.serialize(ser)
        raw_length = len(ser.output())
        data = signed_transaction.bytes()
        self.assertEqual(data[raw_length], TransactionAuthenticator.SINGLE_SENDER)
        self.assertEqual(
            SignedTransaction.deserialize(Deserializer(data)), signed_transaction
        )

    def test_legacy_bytes_are_rejected(self):
        with self.assertRaises(UnknownTagError) as ctx:
            decode_submission(self.legacy_bytes())
        self.assertEqual(ctx.exception.union, "AccountAuthenticator")
        self.assertEqual(ctx.exception.tag, AccountAuthenticator.ED25519)

    def test_rejected_by_legacy_decoder(self):
        from . import transactions

        encoded = encode_submission(self.raw_transaction, self.authenticator)
        with self.assertRaises(UnknownTagError) as ctx:
            transactions.SignedTransaction.from_hex(encoded)
        self.assertEqual(ctx.exception.union, "TransactionAuthenticator")

    def test_unknown_authenticator_tag(self):
        encoded = hex_string.to_bytes(
            encode_submission(self.raw_transaction, self.authenticator)
        )
        ser = Serializer()
        self.raw_transaction.serialize(ser)
        raw_length = len(ser.output())
        for variant in [AccountAuthenticator.ED25519, AccountAuthenticator.MULTI_KEY, 9]:
            data = bytearray(encoded)
            data[raw_length] = variant
            with self.assertRaises(UnknownTagError):
                decode_submission(hex_string.from_bytes(bytes(data)))

    def test_unknown_key_scheme(self):
        encoded = bytearray(
            hex_string.to_bytes(
                encode_submission(self.raw_transaction, self.authenticator)
            )
        )
        ser = Serializer()
        self.raw_transaction.serialize(ser)
        encoded[len(ser.output()) + 1] = AnyPublicKey.SECP256K1_ECDSA
        with self.assertRaises(UnknownTagError) as ctx:
            decode_submission(hex_string.from_bytes(bytes(encoded)))
        self.assertEqual(ctx.exception.union, "AnyPublicKey")

    def test_truncation_at_every_boundary(self):
        data = hex_string.to_bytes(
            encode_submission(self.raw_transaction, self.authenticator)
        )
        for length in range(len(data)):
            with self.assertRaises(TruncatedInputError, msg=f"length {length}"):
                decode_submission(hex_string.from_bytes(data[:length]))

    def test_trailing_bytes(self):
        encoded = encode_submission(self.raw_transaction, self.authenticator)
        with self.assertRaises(DecodeError):
            decode_submission(encoded + "ff")

    def test_deeply_nested_type_args(self):
        type_arg = TypeTag(TypeTag.U64)
        for _ in range(MAX_TYPE_TAG_NESTING):
            type_arg = TypeTag(TypeTag.VECTOR, type_arg)
        entry_function = self.raw_transaction.payload.value
        entry_function.type_args = [type_arg]

        encoded = encode_submission(
            self.raw_transaction, self.raw_transaction.sign(self.private_key)
        )
        with self.assertRaises(DecodeError):
            decode_submission(encoded)

        entry_function.type_args = [type_arg.value]
        encoded = encode_submission(
            self.raw_transaction, self.raw_transaction.sign(self.private_key)
        )
        raw_transaction, _ = decode_submission(encoded)
        self.assertEqual(raw_transaction.payload.value.type_args, [type_arg.value])

    def test_malformed_hex(self):
        encoded = encode_submission(self.raw_transaction, self.authenticator)
        with self.assertRaises(DecodeError):
            decode_submission(encoded[:-1])
        with self.assertRaises(DecodeError):
            decode_submission(encoded[:-2] + "g0")
