# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Runs the relay, or sends a transfer through a running relay in every wire format.

    python -m aptos_relay serve --node-url https://fullnode.devnet.aptoslabs.com/v1
    python -m aptos_relay send --relay-url http://localhost:9898
"""

import argparse
import asyncio
import logging
import sys
from typing import List

import uvicorn

from . import config
from .async_client import FaucetClient, RestClient
from .config import ClientConfig
from .sender import Sender
from .server import create_app
from .submitter import Submitter

LOG = logging.getLogger(__name__)


def parse_args(args: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="aptos_relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description=__doc__,
    )
    parser.add_argument("-d", "--debug", action="store_true")
    parser.add_argument(
        "--node-url",
        default=config.NODE_URL,
        help="The fullnode REST API. Default: %(default)s",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the relay")
    serve.add_argument("--host", default=config.RELAY_HOST)
    serve.add_argument("--port", type=int, default=config.RELAY_PORT)
    serve.add_argument(
        "--wait-secs",
        type=int,
        default=config.RELAY_WAIT_SECS,
        help="How long to wait for a submitted transaction to commit. Default: %(default)s",
    )

    send = subparsers.add_parser("send", help="Send a transfer through a relay")
    send.add_argument("--relay-url", default=config.RELAY_URL)
    send.add_argument("--faucet-url", default=config.FAUCET_URL)
    send.add_argument("--amount", type=int, default=100)

    return parser.parse_args(args)


def serve(args: argparse.Namespace):
    client_config = ClientConfig()
    client_config.transaction_wait_in_seconds = args.wait_secs
    rest_client = RestClient(args.node_url, client_config)
    app = create_app(Submitter(rest_client, args.wait_secs), close_on_shutdown=True)

    LOG.info("Relaying to %s on %s:%d", args.node_url, args.host, args.port)
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="debug" if args.debug else "info",
    )


async def send(args: argparse.Namespace):
    rest_client = RestClient(args.node_url)
    faucet_client = FaucetClient(args.faucet_url, rest_client)
    try:
        await Sender(args.relay_url, rest_client, faucet_client).run(args.amount)
    finally:
        await rest_client.close()


def main(args: List[str]):
    parsed_args = parse_args(args)

    logging.basicConfig(
        stream=sys.stderr,
        format="%(asctime)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if parsed_args.debug else logging.INFO,
    )
    LOG.debug("Debug logging enabled")

    if parsed_args.command == "serve":
        serve(parsed_args)
    elif parsed_args.command == "send":
        asyncio.run(send(parsed_args))


def run():
    main(sys.argv[1:])


if __name__ == "__main__":
    run()
