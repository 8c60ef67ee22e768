# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Hands decoded transactions to the fullnode. Each submission is attempted exactly once and then
awaited until it is committed, it fails, or the deadline passes.
"""

import asyncio
import logging
import unittest
import unittest.mock
from typing import Any

import httpx

from . import ed25519, transactions, transactions_v2
from .account_address import AccountAddress
from .async_client import ApiError, RestClient
from .authenticator_v2 import AccountAuthenticator, AnyPublicKey
from .bcs import Serializer
from .errors import FinalityError, SubmissionError

logger = logging.getLogger(__name__)


class Submitter:
    rest_client: RestClient
    transaction_wait_in_seconds: float

    def __init__(self, rest_client: RestClient, transaction_wait_in_seconds: float):
        self.rest_client = rest_client
        self.transaction_wait_in_seconds = transaction_wait_in_seconds

    async def submit_v1(self, signed_transaction: transactions.SignedTransaction) -> str:
        return await self._submit(signed_transaction)

    async def submit_v2(
        self,
        raw_transaction: transactions_v2.RawTransaction,
        authenticator: AccountAuthenticator,
    ) -> str:
        return await self._submit(
            transactions_v2.SignedTransaction(raw_transaction, authenticator)
        )

    async def _submit(self, signed_transaction: Any) -> str:
        try:
            txn_hash = await self.rest_client.submit_bcs_transaction(signed_transaction)
        except ApiError as e:
            raise SubmissionError(str(e), e.status_code) from e
        except Exception as e:
            raise SubmissionError(f"{type(e).__name__}: {e}") from e
        logger.debug("Submitted %s", txn_hash)

        try:
            await asyncio.wait_for(
                self.rest_client.wait_for_transaction(txn_hash),
                self.transaction_wait_in_seconds,
            )
        except asyncio.TimeoutError as e:
            raise FinalityError(f"transaction {txn_hash} timed out", txn_hash) from e
        except (ApiError, httpx.HTTPError) as e:
            raise FinalityError(f"{e} - {txn_hash}", txn_hash) from e
        return txn_hash


class Test(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.private_key = ed25519.PrivateKey.from_str(
            "9bf49a6a0755f953811fce125f2683d50429c3bb49e074147e0089a52eae155f"
        )
        amount = Serializer()
        amount.u64(100)
        self.raw_transaction = transactions_v2.RawTransaction(
            AccountAddress.from_key(AnyPublicKey(self.private_key.public_key())),
            0,
            transactions_v2.TransactionPayload(
                transactions_v2.EntryFunction.build(
                    "0x1::aptos_account::transfer",
                    [],
                    [AccountAddress.from_str("0xb0b").address, amount.output()],
                )
            ),
            200_000,
            100,
            1234567890,
            4,
        )
        self.rest_client = unittest.mock.Mock(spec=RestClient)
        self.rest_client.submit_bcs_transaction = unittest.mock.AsyncMock(
            return_value="0xfeed"
        )
        self.rest_client.wait_for_transaction = unittest.mock.AsyncMock()
        self.submitter = Submitter(self.rest_client, 1)

    async def test_submit_v2_wraps_single_sender(self):
        authenticator = self.raw_transaction.sign(self.private_key)
        txn_hash = await self.submitter.submit_v2(self.raw_transaction, authenticator)

        self.assertEqual(txn_hash, "0xfeed")
        submitted = self.rest_client.submit_bcs_transaction.call_args.args[0]
        self.assertEqual(
            submitted.bytes(),
            transactions_v2.SignedTransaction(self.raw_transaction, authenticator).bytes(),
        )
        # TransactionAuthenticator::SingleSender precedes the account authenticator
        ser = Serializer()
        self.raw_transaction.serialize(ser)
        self.assertEqual(submitted.bytes()[len(ser.output())], 4)
        self.rest_client.wait_for_transaction.assert_awaited_once_with("0xfeed")

    async def test_submit_v1(self):
        raw_transaction = transactions.RawTransaction(
            AccountAddress.from_key(self.private_key.public_key()),
            0,
            transactions.TransactionPayload(
                transactions.EntryFunction.natural(
                    "0x1::aptos_account",
                    "transfer",
                    [],
                    [transactions.TransactionArgument(100, Serializer.u64)],
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

        self.assertEqual(await self.submitter.submit_v1(signed_transaction), "0xfeed")
        self.rest_client.submit_bcs_transaction.assert_awaited_once_with(
            signed_transaction
        )

    async def test_rejected_submission(self):
        self.rest_client.submit_bcs_transaction.side_effect = ApiError(
            "INVALID_SIGNATURE", 400
        )
        authenticator = self.raw_transaction.sign(self.private_key)
        with self.assertRaises(SubmissionError) as ctx:
            await self.submitter.submit_v2(self.raw_transaction, authenticator)
        self.assertEqual(ctx.exception.status_code, 400)
        self.rest_client.wait_for_transaction.assert_not_awaited()

    async def test_finality_timeout(self):
        async def never_committed(txn_hash: str):
            await asyncio.sleep(60)

        self.rest_client.wait_for_transaction.side_effect = never_committed
        self.submitter.transaction_wait_in_seconds = 0.01
        authenticator = self.raw_transaction.sign(self.private_key)
        with self.assertRaises(FinalityError) as ctx:
            await self.submitter.submit_v2(self.raw_transaction, authenticator)
        self.assertEqual(ctx.exception.txn_hash, "0xfeed")

    async def test_failed_transaction(self):
        self.rest_client.wait_for_transaction.side_effect = FinalityError(
            "Move abort - 0xfeed", "0xfeed"
        )
        authenticator = self.raw_transaction.sign(self.private_key)
        with self.assertRaises(FinalityError):
            await self.submitter.submit_v2(self.raw_transaction, authenticator)

    async def test_node_unreachable_while_waiting(self):
        for error in [
            httpx.ConnectError("node unreachable"),
            httpx.ReadTimeout("read timed out"),
        ]:
            self.rest_client.wait_for_transaction.side_effect = error
            authenticator = self.raw_transaction.sign(self.private_key)
            with self.assertRaises(FinalityError) as ctx:
                await self.submitter.submit_v2(self.raw_transaction, authenticator)
            self.assertEqual(ctx.exception.txn_hash, "0xfeed")
            self.assertIs(ctx.exception.__cause__, error)
