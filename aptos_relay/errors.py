# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Errors raised while decoding and relaying a submitted transaction. Every one of them aborts the
request that raised it; none are retried.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for all relay failures."""


class DecodeError(RelayError):
    """The submitted transaction could not be reconstructed from its wire format."""


class MalformedHexError(DecodeError):
    """A hex string contained a non-hex character or an odd number of digits."""


class TruncatedInputError(DecodeError):
    """The deserializer tried to read past the end of its input."""


class UnknownTagError(DecodeError):
    """A variant tag is structurally valid but not supported by this relay."""

    tag: int
    union: str

    def __init__(self, union: str, tag: int):
        super().__init__(f"Unsupported {union} variant: {tag}")
        self.union = union
        self.tag = tag


class SubmissionError(RelayError):
    """The fullnode rejected the transaction."""

    status_code: Optional[int]

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FinalityError(RelayError):
    """The transaction was not committed successfully before the wait deadline."""

    txn_hash: str

    def __init__(self, message: str, txn_hash: str):
        super().__init__(message)
        self.txn_hash = txn_hash
