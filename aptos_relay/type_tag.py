# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import typing
import unittest
from typing import List

from .account_address import AccountAddress
from .bcs import Deserializer, Serializer
from .errors import DecodeError, UnknownTagError

# Matches the limit Move places on type arguments.
MAX_TYPE_TAG_NESTING = 8


class TypeTag:
    """TypeTag represents a primitive in Move."""

    BOOL: int = 0
    U8: int = 1
    U64: int = 2
    U128: int = 3
    ACCOUNT_ADDRESS: int = 4
    SIGNER: int = 5
    VECTOR: int = 6
    STRUCT: int = 7
    U16: int = 8
    U32: int = 9
    U256: int = 10

    variant: int
    value: typing.Any

    def __init__(self, variant: int, value: typing.Any = None):
        self.variant = variant
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypeTag):
            return NotImplemented
        return self.variant == other.variant and self.value == other.value

    def __str__(self):
        if self.variant == TypeTag.VECTOR:
            return f"vector<{self.value}>"
        elif self.variant == TypeTag.STRUCT:
            return self.value.__str__()
        return PRIMITIVE_NAMES[self.variant]

    def __repr__(self):
        return self.__str__()

    @staticmethod
    def deserialize(deserializer: Deserializer, depth: int = 0) -> TypeTag:
        if depth >= MAX_TYPE_TAG_NESTING:
            raise DecodeError(
                f"Type tag nested deeper than {MAX_TYPE_TAG_NESTING} levels"
            )

        variant = deserializer.uleb128()
        if variant in PRIMITIVE_NAMES:
            return TypeTag(variant)
        elif variant == TypeTag.VECTOR:
            return TypeTag(variant, TypeTag.deserialize(deserializer, depth + 1))
        elif variant == TypeTag.STRUCT:
            return TypeTag(variant, StructTag.deserialize(deserializer, depth + 1))
        raise UnknownTagError("TypeTag", variant)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        if self.value is not None:
            serializer.struct(self.value)


PRIMITIVE_NAMES = {
    TypeTag.BOOL: "bool",
    TypeTag.U8: "u8",
    TypeTag.U16: "u16",
    TypeTag.U32: "u32",
    TypeTag.U64: "u64",
    TypeTag.U128: "u128",
    TypeTag.U256: "u256",
    TypeTag.ACCOUNT_ADDRESS: "address",
    TypeTag.SIGNER: "signer",
}


class StructTag:
    address: AccountAddress
    module: str
    name: str
    type_args: List[TypeTag]

    def __init__(self, address, module, name, type_args):
        self.address = address
        self.module = module
        self.name = name
        self.type_args = type_args

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StructTag):
            return NotImplemented
        return (
            self.address == other.address
            and self.module == other.module
            and self.name == other.name
            and self.type_args == other.type_args
        )

    def __str__(self) -> str:
        value = f"{self.address}::{self.module}::{self.name}"
        if len(self.type_args) > 0:
            value += f"<{', '.join(str(type_arg) for type_arg in self.type_args)}>"
        return value

    @staticmethod
    def from_str(type_tag: str) -> StructTag:
        """Parses a non-generic struct name such as 0x1::aptos_coin::AptosCoin."""
        split = type_tag.split("::")
        if "<" in type_tag or len(split) != 3 or not all(split):
            raise DecodeError(f"Expected address::module::name, found {type_tag!r}")
        return StructTag(AccountAddress.from_str(split[0]), split[1], split[2], [])

    @staticmethod
    def deserialize(deserializer: Deserializer, depth: int = 0) -> StructTag:
        address = deserializer.struct(AccountAddress)
        module = deserializer.str()
        name = deserializer.str()
        type_args = deserializer.sequence(
            lambda inner: TypeTag.deserialize(inner, depth)
        )
        return StructTag(address, module, name, type_args)

    def serialize(self, serializer: Serializer):
        self.address.serialize(serializer)
        serializer.str(self.module)
        serializer.str(self.name)
        serializer.sequence(self.type_args, Serializer.struct)


class Test(unittest.TestCase):
    def test_struct_round_trip(self):
        coin = TypeTag(TypeTag.STRUCT, StructTag.from_str("0x1::aptos_coin::AptosCoin"))
        in_value = TypeTag(TypeTag.VECTOR, coin)

        ser = Serializer()
        in_value.serialize(ser)
        out_value = TypeTag.deserialize(Deserializer(ser.output()))

        self.assertEqual(in_value, out_value)
        self.assertEqual(str(out_value), "vector<0x1::aptos_coin::AptosCoin>")

    def test_struct_bytes(self):
        coin = TypeTag(TypeTag.STRUCT, StructTag.from_str("0x1::aptos_coin::AptosCoin"))
        ser = Serializer()
        coin.serialize(ser)
        self.assertEqual(
            ser.output().hex(),
            "07"
            "0000000000000000000000000000000000000000000000000000000000000001"
            "0a6170746f735f636f696e094170746f73436f696e00",
        )

    def test_unknown_variant(self):
        with self.assertRaises(UnknownTagError) as ctx:
            TypeTag.deserialize(Deserializer(b"\x2a"))
        self.assertEqual(ctx.exception.tag, 42)

    def test_nesting_limit(self):
        nested = b"\x06" * (MAX_TYPE_TAG_NESTING - 1) + b"\x02"
        out_value = TypeTag.deserialize(Deserializer(nested))
        self.assertEqual(str(out_value), "vector<" * 7 + "u64" + ">" * 7)

        with self.assertRaises(DecodeError):
            TypeTag.deserialize(Deserializer(b"\x06" * MAX_TYPE_TAG_NESTING + b"\x02"))
        with self.assertRaises(DecodeError):
            TypeTag.deserialize(Deserializer(b"\x06" * 5000 + b"\x02"))

    def test_nesting_counts_struct_type_args(self):
        ser = Serializer()
        AccountAddress.from_str("0x1").serialize(ser)
        ser.str("option")
        ser.str("Option")
        struct = ser.output()
        # Option<Option<...<u8>>> with one struct per level
        data = (b"\x07" + struct + b"\x01") * MAX_TYPE_TAG_NESTING + b"\x01"
        with self.assertRaises(DecodeError):
            TypeTag.deserialize(Deserializer(data))

        data = (b"\x07" + struct + b"\x01") * (MAX_TYPE_TAG_NESTING - 1) + b"\x01"
        self.assertEqual(TypeTag.deserialize(Deserializer(data)).variant, TypeTag.STRUCT)

    def test_struct_from_str_shape(self):
        for value in [
            "0x1::aptos_coin",
            "0x1::coin::Coin<0x1::aptos_coin::AptosCoin>",
            "::aptos_coin::AptosCoin",
        ]:
            with self.assertRaises(DecodeError, msg=value):
                StructTag.from_str(value)
