# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
The relay's HTTP surface. Every endpoint decodes its envelope, hands the transaction to the
submitter, and answers 200 with an empty body once the transaction is committed. Failures of any
kind are answered with an empty non-2xx response; their details are only logged.
"""

import json
import logging
import unittest
import unittest.mock
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field, StrictStr
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import ed25519, hex_string, json_codec, transactions, transactions_v2
from .account_address import AccountAddress
from .authenticator_v2 import AccountAuthenticator, AnyPublicKey
from .bcs import Serializer
from .errors import DecodeError, FinalityError, SubmissionError
from .submitter import Submitter

logger = logging.getLogger(__name__)


class JsonSubmission(BaseModel):
    payload: StrictStr


class BcsSubmission(BaseModel):
    data: StrictStr = Field(alias="bytes")


def _error_response(status_code: int):
    async def handler(request: Request, exc: Exception) -> Response:
        if status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        else:
            logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return Response(status_code=status_code)

    return handler


async def _http_error(request: Request, exc: StarletteHTTPException) -> Response:
    return Response(status_code=exc.status_code)


def create_app(submitter: Submitter, close_on_shutdown: bool = False) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if close_on_shutdown:
            await submitter.rest_client.close()

    app = FastAPI(title="Aptos Relay", lifespan=lifespan)

    app.add_exception_handler(RequestValidationError, _error_response(400))
    app.add_exception_handler(DecodeError, _error_response(400))
    app.add_exception_handler(SubmissionError, _error_response(502))
    app.add_exception_handler(FinalityError, _error_response(504))
    app.add_exception_handler(StarletteHTTPException, _http_error)

    @app.middleware("http")
    async def log_requests(request: Request, call_next) -> Response:
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error on %s", request.url.path)
            response = Response(status_code=500)
        logger.info("Req: %s Code: %s", request.url.path, response.status_code)
        return response

    @app.post("/v1/submit/json", response_class=Response)
    async def submit_json(submission: JsonSubmission) -> Response:
        logger.debug("Received JSON: %s", submission.payload)
        signed_transaction = json_codec.decode_signed_transaction(submission.payload)
        logger.debug("Decoded %s", signed_transaction)
        txn_hash = await submitter.submit_v1(signed_transaction)
        logger.info("Committed %s", txn_hash)
        return Response(status_code=200)

    @app.post("/v1/submit/bcs", response_class=Response)
    async def submit_bcs_v1(submission: BcsSubmission) -> Response:
        logger.debug("Received BCS: %s", submission.data)
        signed_transaction = transactions.SignedTransaction.from_hex(submission.data)
        logger.debug("Decoded %s", signed_transaction)
        txn_hash = await submitter.submit_v1(signed_transaction)
        logger.info("Committed %s", txn_hash)
        return Response(status_code=200)

    @app.post("/v2/submit/bcs", response_class=Response)
    async def submit_bcs_v2(submission: BcsSubmission) -> Response:
        logger.debug("Received BCS: %s", submission.data)
        raw_transaction, authenticator = transactions_v2.decode_submission(
            submission.data
        )
        logger.debug("Decoded %s with %s", raw_transaction, authenticator)
        txn_hash = await submitter.submit_v2(raw_transaction, authenticator)
        logger.info("Committed %s", txn_hash)
        return Response(status_code=200)

    return app


class Test(unittest.TestCase):
    class RecordingSubmitter:
        def __init__(self, error: Optional[Exception] = None):
            self.error = error
            self.submitted = []

        async def submit_v1(
            self, signed_transaction: transactions.SignedTransaction
        ) -> str:
            return self._record(signed_transaction.bytes())

        async def submit_v2(
            self,
            raw_transaction: transactions_v2.RawTransaction,
            authenticator: AccountAuthenticator,
        ) -> str:
            return self._record(
                transactions_v2.SignedTransaction(raw_transaction, authenticator).bytes()
            )

        def _record(self, data: bytes) -> str:
            if self.error:
                raise self.error
            self.submitted.append(data)
            return "0xfeed"

    def client_for(self, submitter):
        from fastapi.testclient import TestClient

        return TestClient(create_app(submitter))

    def setUp(self):
        self.private_key = ed25519.PrivateKey.from_str(
            "9bf49a6a0755f953811fce125f2683d50429c3bb49e074147e0089a52eae155f"
        )
        self.recipient = AccountAddress.from_str("0xb0b")
        amount = Serializer()
        amount.u64(100)
        self.args = [self.recipient.address, amount.output()]

        self.raw_transaction = transactions.RawTransaction(
            AccountAddress.from_str("0xa1"),
            3,
            transactions.TransactionPayload(
                transactions.EntryFunction(
                    transactions.ModuleId.from_str("0x1::aptos_account"),
                    "transfer",
                    [],
                    self.args,
                )
            ),
            200_000,
            100,
            1234567890,
            4,
        )
        self.signed_transaction = transactions.SignedTransaction(
            self.raw_transaction, self.raw_transaction.sign(self.private_key)
        )

        self.raw_transaction_v2 = transactions_v2.RawTransaction(
            AccountAddress.from_key(AnyPublicKey(self.private_key.public_key())),
            3,
            transactions_v2.TransactionPayload(
                transactions_v2.EntryFunction.build(
                    "0x1::aptos_account::transfer", [], self.args
                )
            ),
            200_000,
            100,
            1234567890,
            4,
        )
        self.authenticator_v2 = self.raw_transaction_v2.sign(self.private_key)

        self.submitter = self.RecordingSubmitter()
        self.client = self.client_for(self.submitter)

    def v2_bytes(self) -> str:
        return transactions_v2.encode_submission(
            self.raw_transaction_v2, self.authenticator_v2
        )

    def test_submit_json(self):
        payload = json_codec.encode_signed_transaction(self.signed_transaction)
        response = self.client.post("/v1/submit/json", json={"payload": payload})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"")
        self.assertEqual(len(self.submitter.submitted), 1)
        submitted = transactions.SignedTransaction.from_hex(
            hex_string.from_bytes(self.submitter.submitted[0])
        )
        self.assertEqual(submitted.transaction, self.raw_transaction)
        self.assertEqual(submitted, self.signed_transaction)

    def test_submit_bcs_v1(self):
        data = hex_string.from_bytes(self.signed_transaction.bytes())
        response = self.client.post("/v1/submit/bcs", json={"bytes": data})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"")
        self.assertEqual(self.submitter.submitted, [self.signed_transaction.bytes()])

    def test_submit_bcs_v2(self):
        response = self.client.post("/v2/submit/bcs", json={"bytes": self.v2_bytes()})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            self.submitter.submitted,
            [
                transactions_v2.SignedTransaction(
                    self.raw_transaction_v2, self.authenticator_v2
                ).bytes()
            ],
        )

    def test_bad_authenticator_tag(self):
        ser = Serializer()
        self.raw_transaction_v2.serialize(ser)
        data = bytearray(hex_string.to_bytes(self.v2_bytes()))
        data[len(ser.output())] = AccountAuthenticator.MULTI_KEY
        response = self.client.post(
            "/v2/submit/bcs", json={"bytes": hex_string.from_bytes(bytes(data))}
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.content, b"")
        self.assertEqual(self.submitter.submitted, [])

    def test_formats_are_not_interchangeable(self):
        v1_bytes = hex_string.from_bytes(self.signed_transaction.bytes())
        response = self.client.post("/v2/submit/bcs", json={"bytes": v1_bytes})
        self.assertEqual(response.status_code, 400)

        response = self.client.post("/v1/submit/bcs", json={"bytes": self.v2_bytes()})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.submitter.submitted, [])

    def test_malformed_requests(self):
        requests = [
            ("/v1/submit/json", {"payload": "{"}),
            ("/v1/submit/json", {"payload": 12}),
            ("/v1/submit/json", {"bytes": "0x00"}),
            ("/v1/submit/bcs", {"bytes": "0xzz"}),
            ("/v1/submit/bcs", {"bytes": "0x" + self.signed_transaction.bytes().hex()[:-2]}),
            ("/v1/submit/bcs", {"payload": "0x00"}),
            ("/v2/submit/bcs", {"bytes": "0x0"}),
            ("/v2/submit/bcs", {"bytes": None}),
        ]
        for path, body in requests:
            response = self.client.post(path, json=body)
            self.assertEqual(response.status_code, 400, msg=f"{path} {body}")
            self.assertEqual(response.content, b"")

        response = self.client.post(
            "/v1/submit/bcs",
            content="not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.submitter.submitted, [])

    def test_upstream_failures(self):
        failures = [
            (SubmissionError("INVALID_SIGNATURE", 400), 502),
            (FinalityError("timed out", "0xfeed"), 504),
            (RuntimeError("boom"), 500),
        ]
        data = json.dumps({"bytes": self.v2_bytes()})
        for error, status_code in failures:
            client = self.client_for(self.RecordingSubmitter(error))
            response = client.post(
                "/v2/submit/bcs",
                content=data,
                headers={"Content-Type": "application/json"},
            )
            self.assertEqual(response.status_code, status_code, msg=repr(error))
            self.assertEqual(response.content, b"")

    def test_request_log(self):
        with self.assertLogs(logger, level="INFO") as logs:
            self.client.post("/v1/submit/bcs", json={"bytes": "0xzz"})
        self.assertIn(f"INFO:{logger.name}:Req: /v1/submit/bcs Code: 400", logs.output)

    def test_node_unreachable_while_waiting(self):
        import httpx

        from .async_client import RestClient

        rest_client = unittest.mock.Mock(spec=RestClient)
        rest_client.submit_bcs_transaction = unittest.mock.AsyncMock(
            return_value="0xfeed"
        )
        rest_client.wait_for_transaction = unittest.mock.AsyncMock(
            side_effect=httpx.ConnectError("node unreachable")
        )
        client = self.client_for(Submitter(rest_client, 1))

        data = hex_string.from_bytes(self.signed_transaction.bytes())
        response = client.post("/v1/submit/bcs", json={"bytes": data})

        self.assertEqual(response.status_code, 504)
        self.assertEqual(response.content, b"")
        rest_client.wait_for_transaction.assert_awaited_once_with("0xfeed")

    def test_deeply_nested_input(self):
        entry_function = self.raw_transaction.payload.value
        ser = Serializer()
        self.raw_transaction.sender.serialize(ser)
        ser.u64(self.raw_transaction.sequence_number)
        ser.uleb128(transactions.TransactionPayload.ENTRY_FUNCTION)
        entry_function.module.serialize(ser)
        ser.str(entry_function.function)
        ser.uleb128(1)
        data = ser.output() + b"\x06" * 5000 + b"\x00"
        response = self.client.post(
            "/v1/submit/bcs", json={"bytes": hex_string.from_bytes(data)}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.content, b"")

        response = self.client.post(
            "/v1/submit/json", json={"payload": "[" * 100_000 + "]" * 100_000}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.submitter.submitted, [])
