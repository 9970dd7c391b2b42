"""
houseflip

Provably-fair coin flip settlement against a HOUSE account on a
Solana-style ledger.

Architecture:
  - Bettors pay the HOUSE on-chain, then ask the server to settle
  - The server verifies the payment, flips with a committed seed,
    and pays winners from the HOUSE account
  - Every settled signature is recorded exactly once

Usage:
    from houseflip import (
        RPCClient, SolanaLedger, SettlementStore, SettlementCoordinator,
        WagerClaim, FairnessInput, Side, load_keypair,
    )

    rpc = RPCClient("https://api.devnet.solana.com")
    ledger = SolanaLedger(rpc, load_keypair("house.json"))
    coordinator = SettlementCoordinator(ledger, SettlementStore("data"))

    server_hash = coordinator.commitment()
    outcome = coordinator.settle(
        WagerClaim(signature, 100_000_000),
        FairnessInput("my-seed", 0, Side.HEADS),
    )
"""

from .flip_types import (
    Side,
    Commitment,
    FairnessInput,
    WagerClaim,
    VerifiedWager,
    Reveal,
    SettlementRecord,
    HouseStats,
    PayoutIntent,
    HousePolicy,
)
from .errors import (
    SettlementError,
    InvalidRequest,
    NotYetConfirmed,
    PermanentRejection,
    InfrastructureFailure,
)
from .fairness import CommitmentStore, derive_outcome, verify_reveal
from .rpc_client import RPCClient, RPCError
from .ledger import Ledger, SolanaLedger, SignedTransfer, load_keypair
from .verifier import LedgerVerifier
from .settlement_store import SettlementStore
from .coordinator import SettlementCoordinator, SettlementOutcome

__version__ = "0.1.0"
__all__ = [
    # Types
    "Side", "Commitment", "FairnessInput", "WagerClaim", "VerifiedWager",
    "Reveal", "SettlementRecord", "HouseStats", "PayoutIntent", "HousePolicy",
    # Errors
    "SettlementError", "InvalidRequest", "NotYetConfirmed",
    "PermanentRejection", "InfrastructureFailure",
    # Core
    "CommitmentStore", "derive_outcome", "verify_reveal",
    "RPCClient", "RPCError", "Ledger", "SolanaLedger", "SignedTransfer",
    "load_keypair", "LedgerVerifier", "SettlementStore",
    "SettlementCoordinator", "SettlementOutcome",
]
