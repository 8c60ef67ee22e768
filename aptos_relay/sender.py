# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
A client of the relay: builds a transfer, signs it, and posts it in each of the three wire
formats. `run` exercises a relay end to end against a funded devnet account.
"""

import json
import logging
import time
import unittest
import unittest.mock
from typing import Optional, Union

import httpx

from . import hex_string, json_codec, transactions, transactions_v2
from .account import Account
from .account_address import AccountAddress
from .async_client import ApiError, FaucetClient, RestClient
from .authenticator_v2 import AccountAuthenticator
from .bcs import Serializer
from .config import ClientConfig

logger = logging.getLogger(__name__)

FUNDING_AMOUNT = 100_000_000


class Sender:
    relay_url: str
    rest_client: RestClient
    faucet_client: Optional[FaucetClient]

    def __init__(
        self,
        relay_url: str,
        rest_client: RestClient,
        faucet_client: Optional[FaucetClient] = None,
    ):
        self.relay_url = relay_url.rstrip("/")
        self.rest_client = rest_client
        self.faucet_client = faucet_client

    async def build_transfer(
        self, account: Account, recipient: AccountAddress, amount: int
    ) -> Union[transactions.RawTransaction, transactions_v2.RawTransaction]:
        """
        Builds a 0x1::aptos_account::transfer from `account`, in the transaction family its key
        scheme can sign: v2 for single-key accounts, v1 otherwise.
        """
        ser = Serializer()
        ser.u64(amount)
        args = [recipient.address, ser.output()]
        sequence_number = await self.rest_client.account_sequence_number(
            account.address()
        )
        chain_id = await self.rest_client.chain_id()
        client_config = self.rest_client.client_config
        expiration = int(time.time()) + client_config.expiration_ttl

        if account.single_key:
            return transactions_v2.RawTransaction(
                account.address(),
                sequence_number,
                transactions_v2.TransactionPayload(
                    transactions_v2.EntryFunction.build(
                        "0x1::aptos_account::transfer", [], args
                    )
                ),
                client_config.max_gas_amount,
                client_config.gas_unit_price,
                expiration,
                chain_id,
            )
        return transactions.RawTransaction(
            account.address(),
            sequence_number,
            transactions.TransactionPayload(
                transactions.EntryFunction(
                    transactions.ModuleId.from_str("0x1::aptos_account"),
                    "transfer",
                    [],
                    args,
                )
            ),
            client_config.max_gas_amount,
            client_config.gas_unit_price,
            expiration,
            chain_id,
        )

    def sign_v1(
        self, account: Account, raw_transaction: transactions.RawTransaction
    ) -> transactions.SignedTransaction:
        return transactions.SignedTransaction(
            raw_transaction, raw_transaction.sign(account.private_key)
        )

    def sign_v2(
        self, account: Account, raw_transaction: transactions_v2.RawTransaction
    ) -> AccountAuthenticator:
        return raw_transaction.sign(account.private_key)

    async def send_json(self, signed_transaction: transactions.SignedTransaction):
        payload = json_codec.encode_signed_transaction(signed_transaction)
        logger.debug("Sending JSON: %s", payload)
        await self._post("v1/submit/json", {"payload": payload})

    async def send_bcs_v1(self, signed_transaction: transactions.SignedTransaction):
        data = hex_string.from_bytes(signed_transaction.bytes())
        logger.debug("Sending BCS: %s", data)
        await self._post("v1/submit/bcs", {"bytes": data})

    async def send_bcs_v2(
        self,
        raw_transaction: transactions_v2.RawTransaction,
        authenticator: AccountAuthenticator,
    ):
        data = transactions_v2.encode_submission(raw_transaction, authenticator)
        logger.debug("Sending BCS: %s", data)
        await self._post("v2/submit/bcs", {"bytes": data})

    async def run(self, amount: int):
        if self.faucet_client is None:
            raise ValueError("A faucet is required to fund the sending accounts")

        account = Account.generate()
        logger.info("=== V1 === %s", account)
        await self.faucet_client.fund_account(account.address(), FUNDING_AMOUNT)
        recipient = AccountAddress.from_str("0x1")

        raw_transaction = await self.build_transfer(account, recipient, amount)
        await self.send_bcs_v1(self.sign_v1(account, raw_transaction))
        logger.info("V1 BCS complete")

        raw_transaction = await self.build_transfer(account, recipient, amount)
        await self.send_json(self.sign_v1(account, raw_transaction))
        logger.info("V1 JSON complete")

        account = Account.generate_single_key()
        logger.info("=== V2 === %s", account)
        await self.faucet_client.fund_account(account.address(), FUNDING_AMOUNT)

        raw_transaction = await self.build_transfer(account, account.address(), amount)
        await self.send_bcs_v2(raw_transaction, self.sign_v2(account, raw_transaction))
        logger.info("V2 BCS complete")

    async def _post(self, endpoint: str, body: dict):
        response = await self.rest_client.client.post(
            f"{self.relay_url}/{endpoint}", json=body
        )
        if response.status_code >= 400:
            raise ApiError(f"{endpoint} - {response.status_code}", response.status_code)


class Test(unittest.IsolatedAsyncioTestCase):
    relay_url = "http://localhost:9898"

    async def asyncSetUp(self):
        self.requests = []
        self.status_code = 200

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(self.status_code)

        self.rest_client = RestClient(
            "https://fullnode.devnet.aptoslabs.com/v1",
            ClientConfig(),
            transport=httpx.MockTransport(handler),
        )
        self.sender = Sender(self.relay_url, self.rest_client)
        self.patchers = [
            unittest.mock.patch.object(
                RestClient, "account_sequence_number", return_value=7
            ),
            unittest.mock.patch.object(RestClient, "chain_id", return_value=4),
        ]
        for patcher in self.patchers:
            patcher.start()

    async def asyncTearDown(self):
        for patcher in self.patchers:
            patcher.stop()
        await self.rest_client.close()

    def posted(self, index: int = 0) -> dict:
        return json.loads(self.requests[index].content)

    async def test_build_transfer(self):
        account = Account.generate()
        recipient = AccountAddress.from_str("0xb0b")
        raw_transaction = await self.sender.build_transfer(account, recipient, 100)

        self.assertIsInstance(raw_transaction, transactions.RawTransaction)
        self.assertEqual(raw_transaction.sender, account.address())
        self.assertEqual(raw_transaction.sequence_number, 7)
        self.assertEqual(raw_transaction.chain_id, 4)
        entry_function = raw_transaction.payload.value
        self.assertEqual(str(entry_function.module), "0x1::aptos_account")
        self.assertEqual(entry_function.function, "transfer")
        self.assertEqual(
            entry_function.args,
            [recipient.address, (100).to_bytes(8, "little")],
        )

        single_key = Account.generate_single_key()
        raw_transaction = await self.sender.build_transfer(single_key, recipient, 100)
        self.assertIsInstance(raw_transaction, transactions_v2.RawTransaction)

    async def test_send_json(self):
        account = Account.generate()
        raw_transaction = await self.sender.build_transfer(
            account, AccountAddress.from_str("0x1"), 100
        )
        signed_transaction = self.sender.sign_v1(account, raw_transaction)
        await self.sender.send_json(signed_transaction)

        self.assertEqual(
            str(self.requests[0].url), f"{self.relay_url}/v1/submit/json"
        )
        decoded = json_codec.decode_signed_transaction(self.posted()["payload"])
        self.assertEqual(decoded, signed_transaction)

    async def test_send_bcs_v1(self):
        account = Account.generate()
        raw_transaction = await self.sender.build_transfer(
            account, AccountAddress.from_str("0x1"), 100
        )
        signed_transaction = self.sender.sign_v1(account, raw_transaction)
        await self.sender.send_bcs_v1(signed_transaction)

        self.assertEqual(str(self.requests[0].url), f"{self.relay_url}/v1/submit/bcs")
        decoded = transactions.SignedTransaction.from_hex(self.posted()["bytes"])
        self.assertEqual(decoded, signed_transaction)
        self.assertTrue(decoded.verify())

    async def test_send_bcs_v2(self):
        account = Account.generate_single_key()
        raw_transaction = await self.sender.build_transfer(
            account, account.address(), 100
        )
        authenticator = self.sender.sign_v2(account, raw_transaction)
        await self.sender.send_bcs_v2(raw_transaction, authenticator)

        self.assertEqual(str(self.requests[0].url), f"{self.relay_url}/v2/submit/bcs")
        decoded = transactions_v2.decode_submission(self.posted()["bytes"])
        self.assertEqual(decoded, (raw_transaction, authenticator))

    async def test_relay_rejects(self):
        self.status_code = 400
        account = Account.generate()
        raw_transaction = await self.sender.build_transfer(
            account, AccountAddress.from_str("0x1"), 100
        )
        with self.assertRaises(ApiError) as ctx:
            await self.sender.send_bcs_v1(self.sender.sign_v1(account, raw_transaction))
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_run_requires_faucet(self):
        with self.assertRaises(ValueError):
            await self.sender.run(100)
