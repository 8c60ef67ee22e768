# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

import asyncio
import logging
import time
import unittest
import unittest.mock
from typing import Any, Dict, Optional

import httpx

from .account_address import AccountAddress
from .config import ClientConfig
from .errors import FinalityError
from .metadata import Metadata

logger = logging.getLogger(__name__)

BCS_SIGNED_TRANSACTION = "application/x.aptos.signed_transaction+bcs"


class RestClient:
    """A wrapper around the Aptos-core Rest API"""

    _chain_id: Optional[int]
    client: httpx.AsyncClient
    client_config: ClientConfig
    base_url: str

    def __init__(
        self,
        base_url: str,
        client_config: ClientConfig = ClientConfig(),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        # Default limits
        limits = httpx.Limits()
        # Default timeouts but do not set a pool timeout, since the idea is that jobs will wait as
        # long as progress is being made.
        timeout = httpx.Timeout(60.0, pool=None)
        # Default headers
        headers = {Metadata.APTOS_HEADER: Metadata.get_aptos_header_val()}
        self.client = httpx.AsyncClient(
            http2=client_config.http2,
            limits=limits,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )
        self.client_config = client_config
        self._chain_id = None

    async def close(self):
        await self.client.aclose()

    async def chain_id(self) -> int:
        if not self._chain_id:
            info = await self.info()
            self._chain_id = int(info["chain_id"])
        return self._chain_id

    #
    # Account accessors
    #

    async def account(self, account_address: AccountAddress) -> Dict[str, str]:
        """
        Fetch the authentication key and the sequence number for an account address.

        :param account_address: Address of the account, with or without a '0x' prefix.
        :return: The authentication key and sequence number for the specified address.
        """
        response = await self._get(endpoint=f"accounts/{account_address}")
        if response.status_code >= 400:
            raise ApiError(f"{response.text} - {account_address}", response.status_code)
        return response.json()

    async def account_sequence_number(self, account_address: AccountAddress) -> int:
        account_res = await self.account(account_address)
        return int(account_res["sequence_number"])

    #
    # Ledger accessors
    #

    async def info(self) -> Dict[str, str]:
        response = await self.client.get(self.base_url)
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        return response.json()

    #
    # Transactions
    #

    async def submit_bcs_transaction(self, signed_transaction: Any) -> str:
        """
        Submits an already signed transaction of either generation, anything with a `bytes()`
        method producing the canonical BCS encoding, and returns its hash.
        """
        headers = {"Content-Type": BCS_SIGNED_TRANSACTION}
        response = await self.client.post(
            f"{self.base_url}/transactions",
            headers=headers,
            content=signed_transaction.bytes(),
        )
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        return response.json()["hash"]

    async def transaction_pending(self, txn_hash: str) -> bool:
        response = await self._get(endpoint=f"transactions/by_hash/{txn_hash}")
        # A freshly submitted transaction may not be visible to the node yet
        if response.status_code == 404:
            return True
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        return response.json()["type"] == "pending_transaction"

    async def wait_for_transaction(self, txn_hash: str) -> None:
        """
        Waits up to the duration specified in client_config for a transaction to move past pending
        state, then requires that it executed successfully.

        :raises FinalityError: if the transaction stays pending past the deadline or was committed
            with a failed status.
        """

        deadline = time.monotonic() + self.client_config.transaction_wait_in_seconds
        while await self.transaction_pending(txn_hash):
            if time.monotonic() >= deadline:
                raise FinalityError(f"transaction {txn_hash} timed out", txn_hash)
            await asyncio.sleep(self.client_config.poll_interval_secs)

        transaction = await self.transaction_by_hash(txn_hash)
        if not transaction.get("success"):
            raise FinalityError(
                f"{transaction.get('vm_status', 'unknown status')} - {txn_hash}", txn_hash
            )

    async def transaction_by_hash(self, txn_hash: str) -> Dict[str, Any]:
        response = await self._get(endpoint=f"transactions/by_hash/{txn_hash}")
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        return response.json()

    async def _get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        # format params:
        params = {} if params is None else params
        params = {key: val for key, val in params.items() if val is not None}
        return await self.client.get(
            url=f"{self.base_url}/{endpoint}",
            params=params,
        )


class FaucetClient:
    """Faucet creates and funds accounts. This is a thin wrapper around that."""

    base_url: str
    rest_client: RestClient
    headers: Dict[str, str]

    def __init__(
        self, base_url: str, rest_client: RestClient, auth_token: Optional[str] = None
    ):
        self.base_url = base_url
        self.rest_client = rest_client
        self.headers = {}
        if auth_token:
            self.headers["Authorization"] = f"Bearer {auth_token}"

    async def close(self):
        await self.rest_client.close()

    async def fund_account(self, address: AccountAddress, amount: int):
        """This creates an account if it does not exist and mints the specified amount of
        coins into that account."""
        request = f"{self.base_url}/mint?amount={amount}&address={address}"
        response = await self.rest_client.client.post(request, headers=self.headers)
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        for txn_hash in response.json():
            await self.rest_client.wait_for_transaction(txn_hash)
        logger.info("Funded %s with %d", address, amount)


class ApiError(Exception):
    """The API returned a non-success status code, e.g., >= 400"""

    status_code: int

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class Test(unittest.IsolatedAsyncioTestCase):
    base_url = "https://fullnode.devnet.aptoslabs.com/v1"

    class FakeTransaction:
        def bytes(self) -> bytes:
            return b"\x01\x02\x03"

    def client_config(self) -> ClientConfig:
        client_config = ClientConfig()
        client_config.transaction_wait_in_seconds = 0
        client_config.poll_interval_secs = 0
        return client_config

    async def test_submit_bcs_transaction(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202, json={"hash": "0xfeed"})

        rest_client = RestClient(self.base_url, transport=httpx.MockTransport(handler))
        txn_hash = await rest_client.submit_bcs_transaction(self.FakeTransaction())
        await rest_client.close()

        self.assertEqual(txn_hash, "0xfeed")
        self.assertEqual(str(requests[0].url), f"{self.base_url}/transactions")
        self.assertEqual(requests[0].headers["Content-Type"], BCS_SIGNED_TRANSACTION)
        self.assertIn(Metadata.APTOS_HEADER, requests[0].headers)
        self.assertEqual(requests[0].content, b"\x01\x02\x03")

    async def test_submit_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"message": "SEQUENCE_NUMBER_TOO_OLD"})

        rest_client = RestClient(self.base_url, transport=httpx.MockTransport(handler))
        with self.assertRaises(ApiError) as ctx:
            await rest_client.submit_bcs_transaction(self.FakeTransaction())
        await rest_client.close()
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_wait_for_transaction(self):
        responses = [
            httpx.Response(404),
            httpx.Response(200, json={"type": "pending_transaction"}),
            httpx.Response(200, json={"type": "user_transaction", "success": True}),
            httpx.Response(200, json={"type": "user_transaction", "success": True}),
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        client_config = self.client_config()
        client_config.transaction_wait_in_seconds = 60
        rest_client = RestClient(
            self.base_url, client_config, transport=httpx.MockTransport(handler)
        )
        await rest_client.wait_for_transaction("0xfeed")
        await rest_client.close()
        self.assertEqual(responses, [])

    async def test_wait_for_failed_transaction(self):
        committed = {
            "type": "user_transaction",
            "success": False,
            "vm_status": "Move abort",
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=committed)

        rest_client = RestClient(
            self.base_url, self.client_config(), transport=httpx.MockTransport(handler)
        )
        with self.assertRaises(FinalityError) as ctx:
            await rest_client.wait_for_transaction("0xfeed")
        await rest_client.close()
        self.assertEqual(ctx.exception.txn_hash, "0xfeed")

    async def test_wait_times_out(self):
        rest_client = RestClient(self.base_url, self.client_config())
        with unittest.mock.patch.object(
            RestClient, "transaction_pending", return_value=True
        ):
            with self.assertRaises(FinalityError):
                await rest_client.wait_for_transaction("0xfeed")
        await rest_client.close()

    async def test_chain_id_is_cached(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"chain_id": 4})

        rest_client = RestClient(self.base_url, transport=httpx.MockTransport(handler))
        self.assertEqual(await rest_client.chain_id(), 4)
        self.assertEqual(await rest_client.chain_id(), 4)
        await rest_client.close()
        self.assertEqual(len(calls), 1)
