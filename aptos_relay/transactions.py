# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
This translates legacy (v1) Aptos transactions to and from BCS. A v1 SignedTransaction is a
RawTransaction followed by a transaction Authenticator, and is exactly what the REST API accepts
as `application/x.aptos.signed_transaction+bcs`.
"""

from __future__ import annotations

import hashlib
import unittest
from typing import Any, Callable, List

from . import ed25519, hex_string
from .account_address import AccountAddress
from .authenticator import Authenticator
from .bcs import Deserializer, Serializer
from .errors import DecodeError, TruncatedInputError, UnknownTagError
from .type_tag import StructTag, TypeTag

RAW_TRANSACTION_SALT = hashlib.sha3_256(b"APTOS::RawTransaction").digest()


class RawTransaction:
    """
    The signed body of a transaction. Fields are encoded in declaration order; `chain_id` is a
    single byte and every other integer is a little-endian u64.
    """

    sender: AccountAddress
    sequence_number: int
    payload: TransactionPayload
    max_gas_amount: int
    gas_unit_price: int
    # Seconds since the Unix epoch
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

    def _fields(self) -> tuple:
        return (
            self.sender,
            self.sequence_number,
            self.payload,
            self.max_gas_amount,
            self.gas_unit_price,
            self.expiration_timestamps_secs,
            self.chain_id,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RawTransaction):
            return NotImplemented
        return self._fields() == other._fields()

    def __str__(self):
        return (
            f"{self.sender}#{self.sequence_number} {self.payload} "
            f"gas={self.max_gas_amount}@{self.gas_unit_price} "
            f"expires={self.expiration_timestamps_secs} chain={self.chain_id}"
        )

    def keyed(self) -> bytes:
        """The signing message: the domain prehash followed by the BCS encoding."""
        ser = Serializer()
        self.serialize(ser)
        return RAW_TRANSACTION_SALT + ser.output()

    def sign(self, key: ed25519.PrivateKey) -> Authenticator:
        return Authenticator.ed25519(key, self.keyed())

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
        serializer.struct(self.sender)
        serializer.u64(self.sequence_number)
        serializer.struct(self.payload)
        for value in (
            self.max_gas_amount,
            self.gas_unit_price,
            self.expiration_timestamps_secs,
        ):
            serializer.u64(value)
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
            raise TypeError(
                f"Only entry functions are relayed, found {type(payload).__name__}"
            )
        self.variant = TransactionPayload.ENTRY_FUNCTION
        self.value = payload

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransactionPayload):
            return NotImplemented
        return self.value == other.value

    def __str__(self) -> str:
        return str(self.value)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> TransactionPayload:
        variant = deserializer.uleb128()
        if variant != TransactionPayload.ENTRY_FUNCTION:
            raise UnknownTagError("TransactionPayload", variant)
        return TransactionPayload(EntryFunction.deserialize(deserializer))

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        serializer.struct(self.value)


class EntryFunction:
    module: ModuleId
    function: str
    ty_args: List[TypeTag]
    # Each argument is already BCS encoded
    args: List[bytes]

    def __init__(
        self, module: ModuleId, function: str, ty_args: List[TypeTag], args: List[bytes]
    ):
        self.module = module
        self.function = function
        self.ty_args = ty_args
        self.args = args

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EntryFunction):
            return NotImplemented
        return (self.module, self.function, self.ty_args, self.args) == (
            other.module,
            other.function,
            other.ty_args,
            other.args,
        )

    def __str__(self):
        ty_args = ", ".join(str(ty_arg) for ty_arg in self.ty_args)
        args = ", ".join(hex_string.from_bytes(arg) for arg in self.args)
        return f"{self.module}::{self.function}<{ty_args}>({args})"

    @staticmethod
    def natural(
        module: str,
        function: str,
        ty_args: List[TypeTag],
        args: List[TransactionArgument],
    ) -> EntryFunction:
        """Builds a call from a module id such as 0x1::coin and not yet encoded arguments."""
        return EntryFunction(
            ModuleId.from_str(module), function, ty_args, [arg.encode() for arg in args]
        )

    @staticmethod
    def deserialize(deserializer: Deserializer) -> EntryFunction:
        return EntryFunction(
            ModuleId.deserialize(deserializer),
            deserializer.str(),
            deserializer.sequence(TypeTag.deserialize),
            deserializer.sequence(Deserializer.to_bytes),
        )

    def serialize(self, serializer: Serializer):
        serializer.struct(self.module)
        serializer.str(self.function)
        serializer.sequence(self.ty_args, Serializer.struct)
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
        return (self.address, self.name) == (other.address, other.name)

    def __str__(self) -> str:
        return f"{self.address}::{self.name}"

    @staticmethod
    def from_str(module_id: str) -> ModuleId:
        address, separator, name = module_id.partition("::")
        if not separator or not name or "::" in name:
            raise DecodeError(f"Expected <address>::<module>, found {module_id!r}")
        return ModuleId(AccountAddress.from_str(address), name)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> ModuleId:
        return ModuleId(AccountAddress.deserialize(deserializer), deserializer.str())

    def serialize(self, serializer: Serializer):
        serializer.struct(self.address)
        serializer.str(self.name)


class TransactionArgument:
    """A typed value paired with the serializer method that encodes it, e.g. Serializer.u64."""

    value: Any
    encoder: Callable[[Serializer, Any], None]

    def __init__(self, value: Any, encoder: Callable[[Serializer, Any], None]):
        self.value = value
        self.encoder = encoder

    def encode(self) -> bytes:
        ser = Serializer()
        self.encoder(ser, self.value)
        return ser.output()


class SignedTransaction:
    transaction: RawTransaction
    authenticator: Authenticator

    def __init__(self, transaction: RawTransaction, authenticator: Authenticator):
        self.transaction = transaction
        self.authenticator = authenticator

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SignedTransaction):
            return NotImplemented
        return (self.transaction, self.authenticator) == (
            other.transaction,
            other.authenticator,
        )

    def __str__(self) -> str:
        return f"{self.transaction} signed by {self.authenticator}"

    def bytes(self) -> bytes:
        ser = Serializer()
        ser.struct(self)
        return ser.output()

    def verify(self) -> bool:
        return self.authenticator.authenticator.verify(self.transaction.keyed())

    @staticmethod
    def from_hex(value: str) -> SignedTransaction:
        """
        Decodes a hex-encoded legacy SignedTransaction. The whole buffer must be consumed.

        :raises MalformedHexError: if `value` is not valid hex.
        :raises TruncatedInputError: if the buffer ends mid-field.
        :raises UnknownTagError: for any payload or authenticator other than an Ed25519 signed
            entry function call.
        :raises DecodeError: for malformed fields or trailing bytes.
        """
        deserializer = Deserializer(hex_string.to_bytes(value))
        signed_transaction = deserializer.struct(SignedTransaction)
        if deserializer.remaining() != 0:
            raise DecodeError(
                f"Unexpected {deserializer.remaining()} trailing bytes after SignedTransaction"
            )
        return signed_transaction

    @staticmethod
    def deserialize(deserializer: Deserializer) -> SignedTransaction:
        return SignedTransaction(
            RawTransaction.deserialize(deserializer),
            Authenticator.deserialize(deserializer),
        )

    def serialize(self, serializer: Serializer):
        serializer.struct(self.transaction)
        serializer.struct(self.authenticator)


class Test(unittest.TestCase):
    # Validated corpus, signed by 0x7dee...d2d6 with key 0x9bf4...155f
    sender_key_input = "9bf49a6a0755f953811fce125f2683d50429c3bb49e074147e0089a52eae155f"
    receiver_key_input = (
        "0564f879d27ae3c02ce82834acfa8c793a629f2ca0de6919610be82f411326be"
    )
    raw_transaction_input = "7deeccb1080854f499ec8b4c1b213b82c5e34b925cf6875fec02d4b77adbd2d60b0000000000000002000000000000000000000000000000000000000000000000000000000000000104636f696e087472616e73666572010700000000000000000000000000000000000000000000000000000000000000010a6170746f735f636f696e094170746f73436f696e0002202d133ddd281bb6205558357cc6ac75661817e9aaeac3afebc32842759cbf7fa9088813000000000000d0070000000000000100000000000000d20296490000000004"
    signed_transaction_input = "7deeccb1080854f499ec8b4c1b213b82c5e34b925cf6875fec02d4b77adbd2d60b0000000000000002000000000000000000000000000000000000000000000000000000000000000104636f696e087472616e73666572010700000000000000000000000000000000000000000000000000000000000000010a6170746f735f636f696e094170746f73436f696e0002202d133ddd281bb6205558357cc6ac75661817e9aaeac3afebc32842759cbf7fa9088813000000000000d0070000000000000100000000000000d202964900000000040020b9c6ee1630ef3e711144a648db06bbb2284f7274cfbee53ffcee503cc1a4920040f25b74ec60a38a1ed780fd2bef6ddb6eb4356e3ab39276c9176cdf0fcae2ab37d79b626abb43d926e91595b66503a4a3c90acbae36a28d405e308f3537af720b"

    def generate_corpus_transaction(self) -> SignedTransaction:
        sender_private_key = ed25519.PrivateKey.from_str(self.sender_key_input)
        sender_account_address = AccountAddress.from_key(
            sender_private_key.public_key()
        )
        receiver_account_address = AccountAddress.from_key(
            ed25519.PrivateKey.from_str(self.receiver_key_input).public_key()
        )

        transaction_arguments = [
            TransactionArgument(receiver_account_address, Serializer.struct),
            TransactionArgument(5000, Serializer.u64),
        ]

        payload = EntryFunction.natural(
            "0x1::coin",
            "transfer",
            [TypeTag(TypeTag.STRUCT, StructTag.from_str("0x1::aptos_coin::AptosCoin"))],
            transaction_arguments,
        )

        raw_transaction = RawTransaction(
            sender_account_address,
            11,
            TransactionPayload(payload),
            2000,
            1,
            1234567890,
            4,
        )
        return SignedTransaction(raw_transaction, raw_transaction.sign(sender_private_key))

    def test_entry_function_with_corpus(self):
        signed_transaction_generated = self.generate_corpus_transaction()
        self.assertTrue(signed_transaction_generated.verify())

        ser = Serializer()
        ser.struct(signed_transaction_generated.transaction)
        self.assertEqual(ser.output().hex(), self.raw_transaction_input)
        self.assertEqual(
            signed_transaction_generated.bytes().hex(), self.signed_transaction_input
        )

        signed_transaction = SignedTransaction.from_hex(self.signed_transaction_input)
        self.assertEqual(signed_transaction, signed_transaction_generated)
        self.assertTrue(signed_transaction.verify())

    def test_round_trip(self):
        signed_transaction = self.generate_corpus_transaction()
        signed_transaction.transaction.sequence_number = 2**64 - 1
        signed_transaction.transaction.chain_id = 255

        encoded = hex_string.from_bytes(signed_transaction.bytes())
        decoded = SignedTransaction.from_hex(encoded)

        self.assertEqual(decoded, signed_transaction)
        self.assertEqual(decoded.bytes(), signed_transaction.bytes())

    def test_truncation_at_every_boundary(self):
        data = hex_string.to_bytes(self.signed_transaction_input)
        for length in range(len(data)):
            with self.assertRaises(TruncatedInputError, msg=f"length {length}"):
                SignedTransaction.from_hex(hex_string.from_bytes(data[:length]))

    def test_trailing_bytes(self):
        with self.assertRaises(DecodeError):
            SignedTransaction.from_hex(self.signed_transaction_input + "00")

    def test_deeply_nested_type_args(self):
        data = hex_string.to_bytes(self.signed_transaction_input)
        # The single type argument starts after sender, sequence number, payload tag,
        # module address, "coin", "transfer" and the type argument count.
        ty_arg = 32 + 8 + 1 + 32 + 5 + 9 + 1
        self.assertEqual(data[ty_arg], TypeTag.STRUCT)

        nested = data[:ty_arg] + b"\x06" * 5000 + data[ty_arg:]
        with self.assertRaises(DecodeError):
            SignedTransaction.from_hex(hex_string.from_bytes(nested))

        nested = data[:ty_arg] + b"\x06" + data[ty_arg:]
        decoded = SignedTransaction.from_hex(hex_string.from_bytes(nested))
        self.assertEqual(
            str(decoded.transaction.payload.value.ty_args[0]),
            "vector<0x1::aptos_coin::AptosCoin>",
        )

    def test_malformed_hex(self):
        with self.assertRaises(DecodeError):
            SignedTransaction.from_hex(self.signed_transaction_input[:-1])
        with self.assertRaises(DecodeError):
            SignedTransaction.from_hex("0x" + "zz" * 10)

    def test_unsupported_payload(self):
        data = bytearray(hex_string.to_bytes(self.signed_transaction_input))
        # sender (32 bytes) and sequence number (8 bytes) precede the payload tag.
        data[40] = TransactionPayload.SCRIPT
        with self.assertRaises(UnknownTagError) as ctx:
            SignedTransaction.from_hex(hex_string.from_bytes(bytes(data)))
        self.assertEqual(ctx.exception.union, "TransactionPayload")

    def test_unsupported_authenticator(self):
        raw_transaction_length = len(self.raw_transaction_input) // 2
        data = bytearray(hex_string.to_bytes(self.signed_transaction_input))
        for variant in [Authenticator.MULTI_AGENT, Authenticator.SINGLE_SENDER, 0x7F]:
            data[raw_transaction_length] = variant
            with self.assertRaises(UnknownTagError) as ctx:
                SignedTransaction.from_hex(hex_string.from_bytes(bytes(data)))
            self.assertEqual(ctx.exception.tag, variant)
