# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""Relays client-signed Aptos transactions to a fullnode and waits for them to commit."""
