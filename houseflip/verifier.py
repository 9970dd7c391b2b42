"""
houseflip - Ledger Verifier

Confirms that a transaction paid the house, in the claimed amount, from
exactly one payer who also paid the transaction fee.
"""

import logging
from typing import Iterator, List, Set

from .errors import (
    AmbiguousPayer,
    AmountMismatch,
    LedgerUnavailable,
    NoPaymentFound,
    NotYetConfirmed,
    OnChainFailure,
    PayerMismatch,
)
from .flip_types import VerifiedWager
from .ledger import Ledger
from .rpc_client import RPCError

log = logging.getLogger(__name__)

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
NATIVE_TRANSFER_TYPES = ("transfer", "transferWithSeed")


def account_key_string(key) -> str:
    """Account keys come back as plain strings or {"pubkey": ...} objects."""
    if key is None:
        return ""
    if isinstance(key, dict):
        return str(key.get("pubkey", ""))
    return str(key)


def iter_instructions(tx: dict) -> Iterator[dict]:
    """Yield top-level instructions, then inner (CPI) instructions."""
    message = (tx.get("transaction") or {}).get("message") or {}
    for ix in message.get("instructions") or []:
        yield ix
    for inner in (tx.get("meta") or {}).get("innerInstructions") or []:
        for ix in inner.get("instructions") or []:
            yield ix


def is_native_transfer(ix: dict) -> bool:
    if ix.get("program") != "system" and ix.get("programId") != SYSTEM_PROGRAM_ID:
        return False
    parsed = ix.get("parsed")
    if not isinstance(parsed, dict):
        return False
    return parsed.get("type") in NATIVE_TRANSFER_TYPES


class LedgerVerifier:
    """
    Read-only verifier for wager payments.

    Usage:
        verifier = LedgerVerifier(ledger)
        wager = verifier.verify(signature, 100_000_000, ledger.house_address)
    """

    def __init__(self, ledger: Ledger):
        self.ledger = ledger

    def fetch(self, transaction_ref: str) -> dict:
        try:
            tx = self.ledger.fetch_finalized_transaction(transaction_ref)
        except RPCError as e:
            raise LedgerUnavailable(f"Ledger read failed: {e.message}")
        if not tx:
            raise NotYetConfirmed("Transaction not found / not confirmed yet")
        return tx

    def verify(self, transaction_ref: str, claimed_lamports: int,
               expected_recipient: str) -> VerifiedWager:
        """
        Verify a wager payment.

        Args:
            transaction_ref: Transaction signature
            claimed_lamports: Amount the bettor says was paid
            expected_recipient: House address

        Returns:
            VerifiedWager

        Raises:
            NotYetConfirmed, OnChainFailure, NoPaymentFound, AmbiguousPayer,
            AmountMismatch, PayerMismatch, LedgerUnavailable
        """
        tx = self.fetch(transaction_ref)

        if (tx.get("meta") or {}).get("err"):
            raise OnChainFailure("Transaction failed on-chain",
                                 {"err": tx["meta"]["err"]})

        sources: Set[str] = set()
        found_lamports = 0
        for ix in iter_instructions(tx):
            if not is_native_transfer(ix):
                continue
            info = ix["parsed"].get("info") or {}
            if info.get("destination") != expected_recipient:
                continue
            sources.add(str(info.get("source")))
            found_lamports += int(info.get("lamports", 0))

        if not sources:
            raise NoPaymentFound("No transfer to HOUSE found in this tx")
        if len(sources) > 1:
            raise AmbiguousPayer("Multiple payer sources in tx",
                                 {"sources": sorted(sources)})

        if found_lamports != claimed_lamports:
            raise AmountMismatch(found_lamports, claimed_lamports)

        payer = next(iter(sources))
        fee_payer = self.fee_payer(tx)
        if fee_payer != payer:
            raise PayerMismatch("Fee payer does not match player",
                                {"fee_payer": fee_payer, "payer": payer})

        log.info(f"Verified wager {transaction_ref[:16]}...: "
                 f"{found_lamports} lamports from {payer}")
        return VerifiedWager(payer_address=payer, amount=found_lamports,
                             transaction_ref=transaction_ref)

    @staticmethod
    def fee_payer(tx: dict) -> str:
        keys: List = ((tx.get("transaction") or {}).get("message") or {}).get("accountKeys") or []
        return account_key_string(keys[0]) if keys else ""
