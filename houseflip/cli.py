#!/usr/bin/env python3
# Copyright (c) 2025 The houseflip developers
# Distributed under the MIT software license

"""
houseflip server - settles coin-flip wagers paid to the HOUSE account.

Usage:
    houseflip --config houseflip.json
    houseflip --port 8787 --log-level DEBUG
"""

import argparse
import logging
import sys

from .burn_feed import BurnFeed
from .config import load_config
from .coordinator import SettlementCoordinator
from .fairness import CommitmentStore
from .flip_types import HousePolicy
from .ledger import SolanaLedger, load_keypair
from .rpc_client import RPCClient
from .server import create_app
from .settlement_store import SettlementStore

log = logging.getLogger("houseflip")


def build_coordinator(config: dict) -> SettlementCoordinator:
    """Wire ledger, store and commitment store from config."""
    house = load_keypair(config["house_keypair_path"])
    rpc = RPCClient(config["rpc_url"], timeout=int(config["rpc_timeout"]))
    ledger = SolanaLedger(rpc, house, commitment=config["commitment"])
    store = SettlementStore(config["data_dir"])

    log.info(f"HOUSE pubkey: {ledger.house_address}")
    log.info(f"RPC: {config['rpc_url']} (wager commitment: {config['commitment']})")

    coordinator = SettlementCoordinator(
        ledger,
        store,
        commitments=CommitmentStore(),
        policy=HousePolicy.from_config(config),
        confirm_attempts=int(config["confirm_attempts"]),
        confirm_interval=float(config["confirm_interval"]),
    )

    pending = store.list_intents()
    if pending:
        log.warning(f"{len(pending)} payout intent(s) pending; they resume on the "
                    f"next settle call for the same signature")
        for intent in pending:
            log.warning(f"  {intent.transaction_ref}: {intent.payout_lamports} lamports "
                        f"-> {intent.payer_address}")
    return coordinator


def main(argv=None):
    parser = argparse.ArgumentParser(description="houseflip wager settlement server")
    parser.add_argument("--config", "-c", help="JSON config file")
    parser.add_argument("--host", help="Bind address (overrides config)")
    parser.add_argument("--port", type=int, help="HTTP port (overrides config)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    try:
        config = load_config(args.config)
        coordinator = build_coordinator(config)
    except (FileNotFoundError, ValueError) as e:
        log.error(str(e))
        return 1

    burn_feed = BurnFeed(config["burns_path"], interval_sec=int(config["burn_interval_sec"]))
    app = create_app(coordinator, burn_feed)

    host = args.host or config["host"]
    port = args.port or int(config["port"])
    log.info(f"Server running on http://{host}:{port}")
    app.run(host=host, port=port, threaded=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
