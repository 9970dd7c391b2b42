"""
houseflip - Data Types

Wager, reveal and settlement structures shared by the settlement engine.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import Optional
import json
import time


LAMPORTS_PER_SOL = 1_000_000_000


class Side(Enum):
    """Coin side. HEADS is side A, TAILS is side B."""
    HEADS = "HEADS"
    TAILS = "TAILS"

    @classmethod
    def parse(cls, value: str) -> "Side":
        return cls(str(value).upper())


class SettlementState(Enum):
    """Settlement state of a transaction reference"""
    RECEIVED = "received"
    VALIDATING = "validating"
    VERIFYING = "verifying"
    CAP_CHECKING = "cap_checking"
    DERIVING = "deriving"
    LOSS_RECORDING = "loss_recording"
    PAYOUT_SUBMITTING = "payout_submitting"
    PAYOUT_CONFIRMING = "payout_confirming"
    SETTLED = "settled"
    REJECTED = "rejected"
    RETRYABLE = "retryable"


@dataclass(frozen=True)
class Commitment:
    """
    Server seed commitment.

    server_hash = SHA256(server_seed) where server_seed is the 64-char
    hex rendering of 32 random bytes. The hash covers the hex text, not
    the raw bytes.
    """
    server_seed: str
    server_hash: str


@dataclass(frozen=True)
class FairnessInput:
    client_seed: str
    nonce: int
    chosen_side: Side = Side.HEADS


@dataclass(frozen=True)
class WagerClaim:
    transaction_ref: str
    claimed_lamports: int


@dataclass(frozen=True)
class VerifiedWager:
    """Payment that passed ledger verification. Only built by LedgerVerifier."""
    payer_address: str
    amount: int
    transaction_ref: str


@dataclass(frozen=True)
class Reveal:
    """Everything a bettor needs to audit one derivation."""
    server_seed: str
    server_hash: str
    client_seed: str
    nonce: int
    digest: str
    result: Side

    def to_dict(self) -> dict:
        return {
            "server_seed": self.server_seed,
            "server_hash": self.server_hash,
            "client_seed": self.client_seed,
            "nonce": self.nonce,
            "digest": self.digest,
            "result": self.result.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Reveal":
        return cls(
            server_seed=data["server_seed"],
            server_hash=data["server_hash"],
            client_seed=data["client_seed"],
            nonce=int(data["nonce"]),
            digest=data["digest"],
            result=Side(data["result"]),
        )


@dataclass(frozen=True)
class SettlementRecord:
    """
    Settled wager. Created exactly once per transaction reference and
    never updated afterwards.
    """
    transaction_ref: str
    payer_address: str
    wager_lamports: int
    outcome: Side
    chosen_side: Side
    win: bool
    reveal: Reveal
    payout_lamports: int = 0
    payout_ref: Optional[str] = None
    timestamp: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "transaction_ref": self.transaction_ref,
            "payer_address": self.payer_address,
            "wager_lamports": self.wager_lamports,
            "outcome": self.outcome.value,
            "chosen_side": self.chosen_side.value,
            "win": self.win,
            "payout_lamports": self.payout_lamports,
            "payout_ref": self.payout_ref,
            "reveal": self.reveal.to_dict(),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SettlementRecord":
        """Create SettlementRecord from dictionary."""
        return cls(
            transaction_ref=data["transaction_ref"],
            payer_address=data["payer_address"],
            wager_lamports=int(data["wager_lamports"]),
            outcome=Side(data["outcome"]),
            chosen_side=Side(data.get("chosen_side", "HEADS")),
            win=bool(data["win"]),
            reveal=Reveal.from_dict(data["reveal"]),
            payout_lamports=int(data.get("payout_lamports", 0)),
            payout_ref=data.get("payout_ref"),
            timestamp=int(data.get("timestamp", time.time())),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


@dataclass
class HouseStats:
    """Running house totals. Counters only ever grow."""
    total_wagered_lamports: int = 0
    total_paid_out_lamports: int = 0
    settled_count: int = 0
    win_count: int = 0
    last_payout_ref: Optional[str] = None

    def apply(self, record: SettlementRecord):
        self.total_wagered_lamports += record.wager_lamports
        self.settled_count += 1
        if record.win:
            self.win_count += 1
            self.total_paid_out_lamports += record.payout_lamports
            if record.payout_ref:
                self.last_payout_ref = record.payout_ref

    def to_dict(self) -> dict:
        return {
            "total_wagered_lamports": self.total_wagered_lamports,
            "total_paid_out_lamports": self.total_paid_out_lamports,
            "settled_count": self.settled_count,
            "win_count": self.win_count,
            "last_payout_ref": self.last_payout_ref,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HouseStats":
        last = data.get("last_payout_ref")
        return cls(
            total_wagered_lamports=int(data.get("total_wagered_lamports", 0)),
            total_paid_out_lamports=int(data.get("total_paid_out_lamports", 0)),
            settled_count=int(data.get("settled_count", 0)),
            win_count=int(data.get("win_count", 0)),
            last_payout_ref=last if isinstance(last, str) else None,
        )


@dataclass
class PayoutIntent:
    """
    Payout that has been decided but whose settlement is not yet recorded.
    Persisted before signing and again before broadcast, so a restart
    resumes the payout instead of deciding the wager again.

    payout_ref / raw_transaction stay empty until the transfer is signed.
    """
    transaction_ref: str
    payer_address: str
    wager_lamports: int
    payout_lamports: int
    reveal: Reveal
    chosen_side: Side = Side.HEADS
    payout_ref: str = ""
    raw_transaction: str = ""     # base64 signed transaction
    last_valid_block_height: int = 0
    created_ts: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict:
        return {
            "transaction_ref": self.transaction_ref,
            "payer_address": self.payer_address,
            "wager_lamports": self.wager_lamports,
            "payout_lamports": self.payout_lamports,
            "payout_ref": self.payout_ref,
            "raw_transaction": self.raw_transaction,
            "last_valid_block_height": self.last_valid_block_height,
            "reveal": self.reveal.to_dict(),
            "chosen_side": self.chosen_side.value,
            "created_ts": self.created_ts,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PayoutIntent":
        return cls(
            transaction_ref=data["transaction_ref"],
            payer_address=data["payer_address"],
            wager_lamports=int(data["wager_lamports"]),
            payout_lamports=int(data["payout_lamports"]),
            payout_ref=data.get("payout_ref", ""),
            raw_transaction=data.get("raw_transaction", ""),
            last_valid_block_height=int(data.get("last_valid_block_height", 0)),
            reveal=Reveal.from_dict(data["reveal"]),
            chosen_side=Side(data.get("chosen_side", "HEADS")),
            created_ts=int(data.get("created_ts", time.time())),
        )


@dataclass(frozen=True)
class HousePolicy:
    """
    House odds and exposure limits.

    Amounts are computed with exact decimals:
      payout    = floor(wager * (1 - house_edge) / win_chance)
      max_stake = floor(reserve * max_stake_fraction)
    """
    win_chance: Decimal = Decimal("0.5")
    house_edge: Decimal = Decimal("0.025")
    max_stake_fraction: Decimal = Decimal("0.10")
    fee_buffer_lamports: int = 5000

    @classmethod
    def from_config(cls, config: dict) -> "HousePolicy":
        return cls(
            win_chance=Decimal(str(config.get("win_chance", "0.5"))),
            house_edge=Decimal(str(config.get("house_edge", "0.025"))),
            max_stake_fraction=Decimal(str(config.get("max_stake_fraction", "0.10"))),
            fee_buffer_lamports=int(config.get("fee_buffer_lamports", 5000)),
        )

    @property
    def payout_multiplier(self) -> Decimal:
        return (Decimal(1) - self.house_edge) / self.win_chance

    def payout_for(self, wager_lamports: int) -> int:
        amount = Decimal(wager_lamports) * self.payout_multiplier
        return int(amount.to_integral_value(rounding=ROUND_FLOOR))

    def max_stake(self, reserve_lamports: int) -> int:
        amount = Decimal(reserve_lamports) * self.max_stake_fraction
        return max(0, int(amount.to_integral_value(rounding=ROUND_FLOOR)))


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL
