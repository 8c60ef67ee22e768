# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import unittest

from . import ed25519
from .account_address import AccountAddress
from .authenticator_v2 import AnyPublicKey


class Account:
    """
    Represents an account as well as the private, public key-pair for the Aptos blockchain. A
    single-key account derives its address from the wrapped public key and can only sign v2
    submissions; a legacy account signs v1 submissions.
    """

    account_address: AccountAddress
    private_key: ed25519.PrivateKey
    single_key: bool

    def __init__(
        self,
        account_address: AccountAddress,
        private_key: ed25519.PrivateKey,
        single_key: bool = False,
    ):
        self.account_address = account_address
        self.private_key = private_key
        self.single_key = single_key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Account):
            return NotImplemented
        return (
            self.account_address == other.account_address
            and self.private_key == other.private_key
            and self.single_key == other.single_key
        )

    def __str__(self) -> str:
        return str(self.account_address)

    @staticmethod
    def generate() -> Account:
        return Account.load_key(ed25519.PrivateKey.random().hex())

    @staticmethod
    def generate_single_key() -> Account:
        return Account.load_key(ed25519.PrivateKey.random().hex(), single_key=True)

    @staticmethod
    def load_key(key: str, single_key: bool = False) -> Account:
        private_key = ed25519.PrivateKey.from_str(key)
        if single_key:
            account_address = AccountAddress.from_key(
                AnyPublicKey(private_key.public_key())
            )
        else:
            account_address = AccountAddress.from_key(private_key.public_key())
        return Account(account_address, private_key, single_key)

    def address(self) -> AccountAddress:
        """Returns the address associated with the given account"""

        return self.account_address

    def sign(self, data: bytes) -> ed25519.Signature:
        return self.private_key.sign(data)

    def public_key(self) -> ed25519.PublicKey:
        """Returns the public key for the associated account"""

        return self.private_key.public_key()


class Test(unittest.TestCase):
    def test_key(self):
        message = b"test message"
        account = Account.generate()
        signature = account.sign(message)
        self.assertTrue(account.public_key().verify(message, signature))

    def test_address_derivation(self):
        key = "005120c5882b0d492b3d2dc60a8a4510ec2051825413878453137305ba2d644b"
        legacy = Account.load_key(key)
        single_key = Account.load_key(key, single_key=True)

        self.assertEqual(
            str(legacy.address()),
            "0x15b67a673979c7c5dfc8d9c9f94d02da35062a19dd9d218087bd9076589219c6",
        )
        self.assertNotEqual(legacy.address(), single_key.address())
        self.assertEqual(legacy.public_key(), single_key.public_key())
