"""Shared fixtures: a simulated ledger and parsed-transaction builders."""

import hashlib
from typing import Dict, List, Optional

import pytest

from houseflip.coordinator import SettlementCoordinator
from houseflip.fairness import CommitmentStore
from houseflip.flip_types import Commitment
from houseflip.ledger import Ledger, SignedTransfer
from houseflip.rpc_client import RPCError
from houseflip.settlement_store import SettlementStore

HOUSE = "HoUSE1111111111111111111111111111111111111"
PLAYER = "PLAYer111111111111111111111111111111111111"
OTHER = "oTHER1111111111111111111111111111111111111"
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"

SEED = "ab" * 32
SEED_HASH = hashlib.sha256(SEED.encode("utf-8")).hexdigest()


def transfer_ix(source: str, destination: str, lamports: int, kind: str = "transfer") -> dict:
    return {
        "program": "system",
        "programId": SYSTEM_PROGRAM_ID,
        "parsed": {
            "type": kind,
            "info": {"source": source, "destination": destination, "lamports": lamports},
        },
    }


def make_tx(instructions: List[dict], fee_payer: str = PLAYER, err=None,
            inner: Optional[List[dict]] = None, plain_keys: bool = False) -> dict:
    """Build a getTransaction(jsonParsed) style result."""
    keys = [fee_payer, HOUSE, SYSTEM_PROGRAM_ID]
    if not plain_keys:
        keys = [{"pubkey": k, "signer": i == 0, "writable": i < 2} for i, k in enumerate(keys)]
    return {
        "slot": 1234,
        "meta": {
            "err": err,
            "fee": 5000,
            "innerInstructions": [{"index": 0, "instructions": inner}] if inner else [],
        },
        "transaction": {
            "signatures": ["sig"],
            "message": {"accountKeys": keys, "instructions": instructions},
        },
    }


def wager_tx(lamports: int, source: str = PLAYER) -> dict:
    return make_tx([transfer_ix(source, HOUSE, lamports)], fee_payer=source)


class FakeLedger(Ledger):
    """In-memory ledger for coordinator tests."""

    def __init__(self, balance: int = 2_000_000_000):
        self.transactions: Dict[str, dict] = {}
        self.balance = balance
        self.balance_overrides: List[int] = []
        self.height = 1000
        self.statuses: Dict[str, dict] = {}
        self.submitted: List[SignedTransfer] = []
        self.signed: List[SignedTransfer] = []
        self.fetch_calls = 0
        self.fail_submit = False
        self.fail_reads = False
        self.auto_confirm = True

    @property
    def house_address(self) -> str:
        return HOUSE

    def fetch_finalized_transaction(self, transaction_ref):
        self.fetch_calls += 1
        if self.fail_reads:
            raise RPCError(-1, "Connection failed: refused")
        return self.transactions.get(transaction_ref)

    def get_balance(self, address):
        if self.fail_reads:
            raise RPCError(-1, "Connection failed: refused")
        if self.balance_overrides:
            return self.balance_overrides.pop(0)
        return self.balance

    def sign_transfer(self, destination, lamports):
        signed = SignedTransfer(
            signature=f"payout-{len(self.signed) + 1}",
            raw_transaction=f"raw-{len(self.signed) + 1}",
            destination=destination,
            lamports=lamports,
            last_valid_block_height=self.height + 150,
        )
        self.signed.append(signed)
        return signed

    def submit_signed_transfer(self, signed):
        if self.fail_submit:
            raise RPCError(-32002, "Transaction simulation failed: blockhash not found")
        self.submitted.append(signed)
        if self.auto_confirm:
            self.statuses[signed.signature] = {"confirmationStatus": "confirmed", "err": None}
        return signed.signature

    def signature_status(self, signature):
        return self.statuses.get(signature)

    def block_height(self):
        if self.fail_reads:
            raise RPCError(-1, "Connection failed: refused")
        return self.height


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def store(tmp_path) -> SettlementStore:
    return SettlementStore(tmp_path / "data")


@pytest.fixture
def commitments() -> CommitmentStore:
    return CommitmentStore(initial=Commitment(server_seed=SEED, server_hash=SEED_HASH))


@pytest.fixture
def coordinator(ledger, store, commitments) -> SettlementCoordinator:
    return SettlementCoordinator(ledger, store, commitments=commitments,
                                 confirm_attempts=3, confirm_interval=0)
