# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""Process configuration, read once from the environment."""

import os

NODE_URL = os.getenv("APTOS_NODE_URL", "https://fullnode.devnet.aptoslabs.com/v1")
FAUCET_URL = os.getenv(
    "APTOS_FAUCET_URL",
    "https://faucet.devnet.aptoslabs.com",
)
RELAY_HOST = os.getenv("APTOS_RELAY_HOST", "127.0.0.1")
RELAY_PORT = int(os.getenv("APTOS_RELAY_PORT", "9898"))
RELAY_URL = os.getenv("APTOS_RELAY_URL", "http://localhost:9898")
RELAY_WAIT_SECS = int(os.getenv("APTOS_RELAY_WAIT_SECS", "20"))


class ClientConfig:
    """Common configuration for clients, particularly for submitting transactions"""

    expiration_ttl: int = 600
    gas_unit_price: int = 100
    max_gas_amount: int = 100_000
    transaction_wait_in_seconds: int = RELAY_WAIT_SECS
    http2: bool = False
    poll_interval_secs: float = 1.0
