# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
This is a simple BCS serializer and deserializer. Learn more at https://github.com/diem/bcs

The deserializer is a cursor over a byte string: every read consumes exactly the bytes the field
occupies, and reading past the end raises TruncatedInputError rather than producing a default.
"""

from __future__ import annotations

import io
import typing
import unittest
from typing import List

from .errors import DecodeError, TruncatedInputError

MAX_U8 = 2**8 - 1
MAX_U16 = 2**16 - 1
MAX_U32 = 2**32 - 1
MAX_U64 = 2**64 - 1
MAX_U128 = 2**128 - 1
MAX_U256 = 2**256 - 1

# A u32 needs at most 5 groups of 7 bits.
MAX_ULEB128_BYTES = 5


class Deserializer:
    _input: io.BytesIO
    _length: int

    def __init__(self, data: bytes):
        self._length = len(data)
        self._input = io.BytesIO(data)

    def remaining(self) -> int:
        return self._length - self._input.tell()

    def bool(self) -> bool:
        value = self.u8()
        if value > 1:
            raise DecodeError(f"Unexpected boolean value: {value}")
        return value == 1

    def to_bytes(self) -> bytes:
        return self._read(self.uleb128())

    def fixed_bytes(self, length: int) -> bytes:
        return self._read(length)

    def sequence(
        self,
        value_decoder: typing.Callable[[Deserializer], typing.Any],
    ) -> List[typing.Any]:
        return [value_decoder(self) for _ in range(self.uleb128())]

    def str(self) -> str:
        try:
            return self.to_bytes().decode()
        except UnicodeDecodeError as e:
            raise DecodeError(f"Invalid UTF-8 string: {e}") from e

    def struct(self, struct: typing.Any) -> typing.Any:
        return struct.deserialize(self)

    def u8(self) -> int:
        return self._read_uint(8)

    def u16(self) -> int:
        return self._read_uint(16)

    def u32(self) -> int:
        return self._read_uint(32)

    def u64(self) -> int:
        return self._read_uint(64)

    def u128(self) -> int:
        return self._read_uint(128)

    def u256(self) -> int:
        return self._read_uint(256)

    def uleb128(self) -> int:
        value = 0
        for index in range(MAX_ULEB128_BYTES):
            byte = self.u8()
            value |= (byte & 0x7F) << (7 * index)
            if not byte & 0x80:
                if byte == 0 and index > 0:
                    raise DecodeError("Non-canonical uleb128 value")
                break
        else:
            raise DecodeError("Unterminated uleb128 value")

        if value > MAX_U32:
            raise DecodeError(f"Unexpectedly large uleb128 value: {value}")
        return value

    def _read(self, length: int) -> bytes:
        value = self._input.read(length)
        if len(value) < length:
            raise TruncatedInputError(
                f"Unexpected end of input. Requested: {length}, found: {len(value)}"
            )
        return value

    def _read_uint(self, bits: int) -> int:
        return int.from_bytes(self._read(bits // 8), "little")


class Serializer:
    _output: io.BytesIO

    def __init__(self):
        self._output = io.BytesIO()

    def output(self) -> bytes:
        return self._output.getvalue()

    def bool(self, value: bool):
        self.u8(1 if value else 0)

    def to_bytes(self, value: bytes):
        self.uleb128(len(value))
        self._output.write(value)

    def fixed_bytes(self, value: bytes):
        self._output.write(value)

    @staticmethod
    def sequence_serializer(
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        return lambda self, values: self.sequence(values, value_encoder)

    def sequence(
        self,
        values: typing.List[typing.Any],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        self.uleb128(len(values))
        for value in values:
            value_encoder(self, value)

    def str(self, value: str):
        self.to_bytes(value.encode())

    def struct(self, value: typing.Any):
        value.serialize(self)

    def u8(self, value: int):
        self._write_uint(value, 8)

    def u16(self, value: int):
        self._write_uint(value, 16)

    def u32(self, value: int):
        self._write_uint(value, 32)

    def u64(self, value: int):
        self._write_uint(value, 64)

    def u128(self, value: int):
        self._write_uint(value, 128)

    def u256(self, value: int):
        self._write_uint(value, 256)

    def uleb128(self, value: int):
        if not 0 <= value <= MAX_U32:
            raise ValueError(f"Cannot encode {value} into uleb128")

        # Seven bits per byte, high bit set on every byte but the last
        while value >= 0x80:
            self.u8((value & 0x7F) | 0x80)
            value >>= 7
        self.u8(value)

    def _write_uint(self, value: int, bits: int):
        if not 0 <= value < 1 << bits:
            raise ValueError(f"Cannot encode {value} into u{bits}")
        self._output.write(value.to_bytes(bits // 8, "little"))


class Test(unittest.TestCase):
    def test_bool_error(self):
        ser = Serializer()
        ser.u8(32)
        der = Deserializer(ser.output())
        with self.assertRaises(DecodeError):
            der.bool()

    def test_bytes(self):
        in_value = b"1234567890"

        ser = Serializer()
        ser.to_bytes(in_value)
        self.assertEqual(ser.output(), b"\x0a" + in_value)
        der = Deserializer(ser.output())
        out_value = der.to_bytes()

        self.assertEqual(in_value, out_value)
        self.assertEqual(der.remaining(), 0)

    def test_sequence_serializer(self):
        in_value = ["a", "abc", "def", "ghi"]

        ser = Serializer()
        seq_ser = Serializer.sequence_serializer(Serializer.str)
        seq_ser(ser, in_value)
        der = Deserializer(ser.output())
        out_value = der.sequence(Deserializer.str)

        self.assertEqual(in_value, out_value)

    def test_u64_is_little_endian(self):
        ser = Serializer()
        ser.u64(100)
        self.assertEqual(ser.output(), b"\x64" + b"\x00" * 7)

        ser = Serializer()
        ser.u64(MAX_U64)
        der = Deserializer(ser.output())
        self.assertEqual(der.u64(), MAX_U64)

    def test_unsigned_bounds(self):
        widths = [
            (Serializer.u8, Deserializer.u8, MAX_U8),
            (Serializer.u16, Deserializer.u16, MAX_U16),
            (Serializer.u32, Deserializer.u32, MAX_U32),
            (Serializer.u64, Deserializer.u64, MAX_U64),
            (Serializer.u128, Deserializer.u128, MAX_U128),
            (Serializer.u256, Deserializer.u256, MAX_U256),
        ]
        for write, read, maximum in widths:
            ser = Serializer()
            write(ser, maximum)
            self.assertEqual(read(Deserializer(ser.output())), maximum)
            with self.assertRaises(ValueError):
                write(Serializer(), maximum + 1)
            with self.assertRaises(ValueError):
                write(Serializer(), -1)

    def test_bool(self):
        ser = Serializer()
        ser.bool(True)
        ser.bool(False)
        der = Deserializer(ser.output())
        self.assertEqual((der.bool(), der.bool()), (True, False))

    def test_uleb128(self):
        for in_value in [0, 0x7F, 0x80, 300, 1111111115, MAX_U32]:
            ser = Serializer()
            ser.uleb128(in_value)
            der = Deserializer(ser.output())
            self.assertEqual(der.uleb128(), in_value)
            self.assertEqual(der.remaining(), 0)

    def test_uleb128_too_large(self):
        with self.assertRaises(DecodeError):
            Deserializer(b"\xff\xff\xff\xff\x7f").uleb128()
        with self.assertRaises(DecodeError):
            Deserializer(b"\xff\xff\xff\xff\xff\x01").uleb128()

    def test_uleb128_non_canonical(self):
        for data in [b"\x80\x00", b"\x82\x00", b"\x82\x80\x00", b"\xff\xff\xff\xff\x00"]:
            with self.assertRaises(DecodeError, msg=data.hex()):
                Deserializer(data).uleb128()
        self.assertEqual(Deserializer(b"\x00").uleb128(), 0)
        self.assertEqual(Deserializer(b"\x82\x01").uleb128(), 130)

    def test_truncated_reads(self):
        with self.assertRaises(TruncatedInputError):
            Deserializer(b"\x01\x02").u64()
        with self.assertRaises(TruncatedInputError):
            Deserializer(b"\x05abc").to_bytes()
        with self.assertRaises(TruncatedInputError):
            Deserializer(b"\x80").uleb128()
        with self.assertRaises(TruncatedInputError):
            Deserializer(b"").u8()

    def test_invalid_utf8(self):
        with self.assertRaises(DecodeError):
            Deserializer(b"\x02\xc3\x28").str()


if __name__ == "__main__":
    unittest.main()
