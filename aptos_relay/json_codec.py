# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
The legacy JSON wire format: a v1 SignedTransaction written out field by field, including the
`value`/`address` wrapper objects of the client SDK that produced it. JSON has no 64-bit
integers, so big integers travel as strings of digits with an `n` suffix, e.g. "100n".

Only Ed25519 signed entry function calls can be expressed in this format, and type arguments are
never reconstructed from it: a transaction that needs them must be submitted as BCS.
"""

from __future__ import annotations

import json
import logging
import re
import unittest
from typing import Annotated, Any, List

from pydantic import BaseModel, Field, PlainSerializer, StrictStr, ValidationError

from . import ed25519, hex_string
from .account_address import AccountAddress
from .authenticator import Authenticator, Ed25519Authenticator
from .bcs import MAX_U8, MAX_U64, Serializer
from .errors import DecodeError, MalformedHexError
from .transactions import (
    EntryFunction,
    ModuleId,
    RawTransaction,
    SignedTransaction,
    TransactionArgument,
    TransactionPayload,
)

logger = logging.getLogger(__name__)

BIG_INT_PATTERN = re.compile(r"[0-9]+n")


def encode_big_int(value: int) -> str:
    return f"{value}n"


def decode_big_int(value: str) -> int:
    if not BIG_INT_PATTERN.fullmatch(value):
        raise DecodeError(f"Malformed big integer: {value!r}")
    return int(value[:-1])


def _revive(value: Any) -> Any:
    if isinstance(value, str) and BIG_INT_PATTERN.fullmatch(value):
        return decode_big_int(value)
    elif isinstance(value, dict):
        return {key: _revive(item) for key, item in value.items()}
    elif isinstance(value, list):
        return [_revive(item) for item in value]
    return value


def parse_json(text: str) -> Any:
    """Parses JSON, turning every string of the form <digits>n into an int."""
    try:
        return _revive(json.loads(text))
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON: {e}") from e
    except RecursionError as e:
        raise DecodeError("JSON nested too deeply") from e


def _encode_leaf(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return hex_string.from_bytes(bytes(value))
    raise TypeError(f"Cannot encode {type(value).__name__} as JSON")


def stringify(value: Any) -> str:
    """
    The inverse of `parse_json`. Models are dumped with their U64 fields as <digits>n; any bytes
    become 0x-prefixed hex.
    """
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    return json.dumps(value, default=_encode_leaf, indent=2)


U64 = Annotated[
    int,
    Field(strict=True, ge=0, le=MAX_U64),
    PlainSerializer(encode_big_int, return_type=str, when_used="json"),
]
U8 = Annotated[int, Field(strict=True, ge=0, le=MAX_U8)]


class AddressJson(BaseModel):
    address: StrictStr


class ValueJson(BaseModel):
    value: StrictStr


class ModuleIdJson(BaseModel):
    address: AddressJson
    name: ValueJson


class EntryFunctionJson(BaseModel):
    module_name: ModuleIdJson
    function_name: ValueJson
    ty_args: List[Any]
    args: List[StrictStr]


class PayloadJson(BaseModel):
    value: EntryFunctionJson


class ChainIdJson(BaseModel):
    value: U8


class RawTransactionJson(BaseModel):
    sender: AddressJson
    sequence_number: U64
    payload: PayloadJson
    max_gas_amount: U64
    gas_unit_price: U64
    expiration_timestamp_secs: U64
    chain_id: ChainIdJson


class AuthenticatorJson(BaseModel):
    public_key: ValueJson
    signature: ValueJson


class SignedTransactionJson(BaseModel):
    raw_txn: RawTransactionJson
    authenticator: AuthenticatorJson

    def to_signed_transaction(self) -> SignedTransaction:
        raw_txn = self.raw_txn
        entry_function = raw_txn.payload.value
        if entry_function.ty_args:
            logger.warning(
                "Dropping %d type arguments from JSON payload for %s",
                len(entry_function.ty_args),
                entry_function.function_name.value,
            )

        payload = EntryFunction(
            ModuleId(
                AccountAddress.from_str(entry_function.module_name.address.address),
                entry_function.module_name.name.value,
            ),
            entry_function.function_name.value,
            [],
            [hex_string.to_bytes(arg) for arg in entry_function.args],
        )
        raw_transaction = RawTransaction(
            AccountAddress.from_str(raw_txn.sender.address),
            raw_txn.sequence_number,
            TransactionPayload(payload),
            raw_txn.max_gas_amount,
            raw_txn.gas_unit_price,
            raw_txn.expiration_timestamp_secs,
            raw_txn.chain_id.value,
        )
        authenticator = Authenticator(
            Ed25519Authenticator(
                ed25519.PublicKey(
                    hex_string.to_bytes(self.authenticator.public_key.value)
                ),
                ed25519.Signature(
                    hex_string.to_bytes(self.authenticator.signature.value)
                ),
            )
        )
        return SignedTransaction(raw_transaction, authenticator)

    @staticmethod
    def from_signed_transaction(
        signed_transaction: SignedTransaction,
    ) -> SignedTransactionJson:
        raw_transaction = signed_transaction.transaction
        entry_function = raw_transaction.payload.value
        authenticator = signed_transaction.authenticator.authenticator
        return SignedTransactionJson(
            raw_txn=RawTransactionJson(
                sender=AddressJson(address=str(raw_transaction.sender)),
                sequence_number=raw_transaction.sequence_number,
                payload=PayloadJson(
                    value=EntryFunctionJson(
                        module_name=ModuleIdJson(
                            address=AddressJson(
                                address=str(entry_function.module.address)
                            ),
                            name=ValueJson(value=entry_function.module.name),
                        ),
                        function_name=ValueJson(value=entry_function.function),
                        ty_args=[str(ty_arg) for ty_arg in entry_function.ty_args],
                        args=[hex_string.from_bytes(arg) for arg in entry_function.args],
                    )
                ),
                max_gas_amount=raw_transaction.max_gas_amount,
                gas_unit_price=raw_transaction.gas_unit_price,
                expiration_timestamp_secs=raw_transaction.expiration_timestamps_secs,
                chain_id=ChainIdJson(value=raw_transaction.chain_id),
            ),
            authenticator=AuthenticatorJson(
                public_key=ValueJson(value=str(authenticator.public_key)),
                signature=ValueJson(value=str(authenticator.signature)),
            ),
        )


def decode_signed_transaction(payload: str) -> SignedTransaction:
    """
    Rebuilds a v1 SignedTransaction from its legacy JSON form.

    :raises DecodeError: if the JSON is invalid, a field is missing or mistyped, an integer is out
        of range, or a hex value is malformed (`MalformedHexError`).
    """
    try:
        wire = SignedTransactionJson.model_validate(parse_json(payload))
    except ValidationError as e:
        raise DecodeError(
            f"Invalid signed transaction: {e.error_count()} errors, "
            f"first at {'.'.join(str(loc) for loc in e.errors()[0]['loc'])}"
        ) from e
    return wire.to_signed_transaction()


def encode_signed_transaction(signed_transaction: SignedTransaction) -> str:
    return stringify(SignedTransactionJson.from_signed_transaction(signed_transaction))


class Test(unittest.TestCase):
    def setUp(self):
        self.private_key = ed25519.PrivateKey.from_str(
            "9bf49a6a0755f953811fce125f2683d50429c3bb49e074147e0089a52eae155f"
        )
        raw_transaction = RawTransaction(
            AccountAddress.from_str("0xa1"),
            3,
            TransactionPayload(
                EntryFunction.natural(
                    "0x1::aptos_account",
                    "transfer",
                    [],
                    [
                        TransactionArgument(
                            AccountAddress.from_str("0xb0b"), Serializer.struct
                        ),
                        TransactionArgument(100, Serializer.u64),
                    ],
                )
            ),
            200_000,
            100,
            MAX_U64,
            4,
        )
        self.signed_transaction = SignedTransaction(
            raw_transaction, raw_transaction.sign(self.private_key)
        )

    def wire(self) -> dict:
        return json.loads(encode_signed_transaction(self.signed_transaction))

    def test_big_int_boundaries(self):
        for value in [0, 1, 2**53 + 1, MAX_U64]:
            encoded = encode_big_int(value)
            self.assertEqual(encoded, f"{value}n")
            self.assertEqual(decode_big_int(encoded), value)
            self.assertEqual(parse_json(json.dumps({"v": encoded})), {"v": value})

    def test_stringify(self):
        self.assertEqual(
            json.loads(stringify({"key": b"\x01\xab", "n": 3})),
            {"key": "0x01ab", "n": 3},
        )
        self.assertEqual(json.loads(stringify(ChainIdJson(value=4))), {"value": 4})
        wire = SignedTransactionJson.from_signed_transaction(self.signed_transaction)
        self.assertEqual(
            parse_json(stringify(wire))["raw_txn"]["expiration_timestamp_secs"], MAX_U64
        )

    def test_big_int_only_matches_whole_string(self):
        self.assertEqual(
            parse_json('["12n", "n", "12", "0x12n", "12nn", " 12n", "12n\\n"]'),
            [12, "n", "12", "0x12n", "12nn", " 12n", "12n\n"],
        )
        with self.assertRaises(DecodeError):
            decode_big_int("-1n")

    def test_wire_shape(self):
        wire = self.wire()
        raw_txn = wire["raw_txn"]
        self.assertEqual(raw_txn["sender"]["address"], str(AccountAddress.from_str("0xa1")))
        self.assertEqual(raw_txn["sequence_number"], "3n")
        self.assertEqual(raw_txn["expiration_timestamp_secs"], f"{MAX_U64}n")
        self.assertEqual(raw_txn["chain_id"], {"value": 4})
        entry_function = raw_txn["payload"]["value"]
        self.assertEqual(entry_function["module_name"]["address"]["address"], "0x1")
        self.assertEqual(entry_function["module_name"]["name"]["value"], "aptos_account")
        self.assertEqual(entry_function["function_name"]["value"], "transfer")
        self.assertEqual(entry_function["args"][1], "0x6400000000000000")
        self.assertTrue(wire["authenticator"]["public_key"]["value"].startswith("0x"))

    def test_round_trip(self):
        encoded = encode_signed_transaction(self.signed_transaction)
        decoded = decode_signed_transaction(encoded)

        self.assertEqual(decoded, self.signed_transaction)
        self.assertEqual(decoded.bytes(), self.signed_transaction.bytes())
        self.assertTrue(decoded.verify())

    def test_native_integers(self):
        wire = self.wire()
        wire["raw_txn"]["sequence_number"] = 3
        decoded = decode_signed_transaction(json.dumps(wire))
        self.assertEqual(decoded.transaction.sequence_number, 3)

    def test_type_arguments_are_dropped(self):
        wire = self.wire()
        wire["raw_txn"]["payload"]["value"]["ty_args"] = ["0x1::aptos_coin::AptosCoin"]
        with self.assertLogs(logger, level="WARNING"):
            decoded = decode_signed_transaction(json.dumps(wire))
        self.assertEqual(decoded.transaction.payload.value.ty_args, [])

    def test_missing_field(self):
        wire = self.wire()
        del wire["raw_txn"]["gas_unit_price"]
        with self.assertRaises(DecodeError):
            decode_signed_transaction(json.dumps(wire))

    def test_mistyped_fields(self):
        mutations = [
            ("sequence_number", "3"),
            ("sequence_number", 3.5),
            ("sequence_number", True),
            ("sequence_number", -1),
            ("max_gas_amount", f"{MAX_U64 + 1}n"),
            ("chain_id", {"value": 256}),
            ("chain_id", 4),
            ("sender", {"address": 161}),
        ]
        for field, value in mutations:
            wire = self.wire()
            wire["raw_txn"][field] = value
            with self.assertRaises(DecodeError, msg=f"{field}={value!r}"):
                decode_signed_transaction(json.dumps(wire))

    def test_malformed_hex(self):
        for value in ["0xabc", "0xzz"]:
            wire = self.wire()
            wire["raw_txn"]["payload"]["value"]["args"][0] = value
            with self.assertRaises(MalformedHexError):
                decode_signed_transaction(json.dumps(wire))

            wire = self.wire()
            wire["authenticator"]["signature"]["value"] = value
            with self.assertRaises(MalformedHexError):
                decode_signed_transaction(json.dumps(wire))

    def test_invalid_json(self):
        for payload in ["", "{", "[]", "null", '"3n"']:
            with self.assertRaises(DecodeError, msg=payload):
                decode_signed_transaction(payload)

    def test_deeply_nested_json(self):
        with self.assertRaises(DecodeError):
            parse_json("[" * 100_000 + "]" * 100_000)

        wire = json.dumps(self.wire())
        nested = '"ty_args": ' + "[" * 100_000 + "]" * 100_000
        with self.assertRaises(DecodeError):
            decode_signed_transaction(wire.replace('"ty_args": []', nested))
