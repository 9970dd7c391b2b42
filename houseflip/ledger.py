"""
houseflip - Ledger Interface

Narrow capability the settlement engine needs from the ledger:
read finalized transactions and balances, sign and submit native
transfers from the house account, and poll for confirmation.
"""

import base64
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from .rpc_client import RPCClient, RPCError

log = logging.getLogger(__name__)

CONFIRMED_LEVELS = ("confirmed", "finalized")


@dataclass(frozen=True)
class SignedTransfer:
    """Signed native transfer, ready to broadcast."""
    signature: str
    raw_transaction: str            # base64
    destination: str
    lamports: int
    last_valid_block_height: int


class Ledger(ABC):
    """Ledger capability used by the verifier and the coordinator."""

    @property
    @abstractmethod
    def house_address(self) -> str:
        """Base58 address of the house account."""

    @abstractmethod
    def fetch_finalized_transaction(self, transaction_ref: str) -> Optional[dict]:
        """Parsed transaction, or None if unknown / not yet finalized."""

    @abstractmethod
    def get_balance(self, address: str) -> int:
        """Balance in lamports."""

    @abstractmethod
    def sign_transfer(self, destination: str, lamports: int) -> SignedTransfer:
        """Build and sign a house -> destination native transfer."""

    @abstractmethod
    def submit_signed_transfer(self, signed: SignedTransfer) -> str:
        """Broadcast a signed transfer. Returns the transaction signature."""

    @abstractmethod
    def signature_status(self, signature: str) -> Optional[dict]:
        """Status of a signature, or None if the ledger has never seen it."""

    @abstractmethod
    def block_height(self) -> int:
        """Current block height."""

    def poll_confirmation(self, signature: str, attempts: int = 10,
                          interval: float = 1.0) -> bool:
        """
        Poll until the signature is confirmed.

        Best effort: RPC errors count as a failed attempt. Never polls
        more than `attempts` times.

        Returns:
            True if confirmed without error, False otherwise
        """
        for attempt in range(1, attempts + 1):
            try:
                status = self.signature_status(signature)
            except RPCError as e:
                log.warning(f"Confirmation poll {attempt}/{attempts} failed: {e}")
                status = None

            if status is not None:
                if status.get("err"):
                    log.warning(f"Transaction {signature[:16]}... failed: {status['err']}")
                    return False
                if status.get("confirmationStatus") in CONFIRMED_LEVELS:
                    return True

            if attempt < attempts:
                time.sleep(interval)

        log.warning(f"Transaction {signature[:16]}... not confirmed after {attempts} polls")
        return False


def load_keypair(path) -> Keypair:
    """
    Load a keypair file in Solana CLI format (JSON array of 64 bytes).
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"House keypair missing: {path}")
    data = json.loads(path.read_text())
    if not isinstance(data, list) or len(data) != 64:
        raise ValueError(f"Keypair file {path} must hold a JSON array of 64 bytes")
    return Keypair.from_bytes(bytes(data))


class SolanaLedger(Ledger):
    """
    Ledger implementation over JSON-RPC.

    Usage:
        rpc = RPCClient("https://api.devnet.solana.com")
        ledger = SolanaLedger(rpc, load_keypair("house.json"))
        tx = ledger.fetch_finalized_transaction(signature)
    """

    def __init__(self, rpc: RPCClient, house: Keypair, commitment: str = "finalized"):
        self.rpc = rpc
        self.house = house
        self.commitment = commitment
        self._house_address = str(house.pubkey())

    @property
    def house_address(self) -> str:
        return self._house_address

    def fetch_finalized_transaction(self, transaction_ref: str) -> Optional[dict]:
        return self.rpc.getTransaction(transaction_ref, commitment=self.commitment)

    def get_balance(self, address: str) -> int:
        result = self.rpc.getBalance(address, commitment="confirmed")
        return int(result["value"])

    def block_height(self) -> int:
        return int(self.rpc.getBlockHeight())

    def sign_transfer(self, destination: str, lamports: int) -> SignedTransfer:
        latest = self.rpc.getLatestBlockhash(commitment="confirmed")["value"]
        blockhash = Hash.from_string(latest["blockhash"])

        ix = transfer(TransferParams(
            from_pubkey=self.house.pubkey(),
            to_pubkey=Pubkey.from_string(destination),
            lamports=lamports,
        ))
        message = Message([ix], self.house.pubkey())
        tx = Transaction([self.house], message, blockhash)

        return SignedTransfer(
            signature=str(tx.signatures[0]),
            raw_transaction=base64.b64encode(bytes(tx)).decode("ascii"),
            destination=destination,
            lamports=lamports,
            last_valid_block_height=int(latest["lastValidBlockHeight"]),
        )

    def submit_signed_transfer(self, signed: SignedTransfer) -> str:
        return self.rpc.sendTransaction(signed.raw_transaction,
                                        preflight_commitment="confirmed")

    def signature_status(self, signature: str) -> Optional[dict]:
        result = self.rpc.getSignatureStatuses([signature], search_history=True)
        values = (result or {}).get("value") or [None]
        return values[0]
