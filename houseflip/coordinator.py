"""
houseflip - Settlement Coordinator

Orchestrates verification, outcome derivation, payout and persistence for
one wager at a time.

Settlement flow:
  1. Idempotency gate (processed set)
  2. Input validation
  3. Resume a persisted payout intent, if one exists
  4. Ledger verification of the wager payment
  5. Exposure cap: stake <= floor(reserve * max_stake_fraction)
  6. Outcome derivation + commitment rotation
  7. Loss: record. Win: persist intent, sign payout, broadcast, record
  8. Payout confirmation poll (outside the lock, best effort)
"""

import logging
import threading
from dataclasses import dataclass, replace
from typing import Optional

from .errors import (
    AlreadySettled,
    AmountMismatch,
    InsufficientHouseFunds,
    InvalidRequest,
    LedgerUnavailable,
    PayoutSubmitFailed,
    SettlementError,
    StakeExceedsCap,
)
from .fairness import CommitmentStore, mask_secret
from .flip_types import (
    FairnessInput,
    HousePolicy,
    PayoutIntent,
    Reveal,
    SettlementRecord,
    SettlementState,
    Side,
    VerifiedWager,
    WagerClaim,
    lamports_to_sol,
)
from .ledger import Ledger, SignedTransfer
from .rpc_client import RPCError
from .settlement_store import SettlementStore
from .verifier import LedgerVerifier

log = logging.getLogger(__name__)


@dataclass
class SettlementOutcome:
    """Result of a settle() call."""
    record: SettlementRecord
    next_server_hash: str
    payout_confirmed: Optional[bool] = None
    resumed: bool = False

    def to_dict(self) -> dict:
        record = self.record
        data = {
            "signature": record.transaction_ref,
            "win": record.win,
            "chosen_side": record.chosen_side.value,
            "wager_lamports": record.wager_lamports,
            "payer": record.payer_address,
            "next_server_hash": self.next_server_hash,
        }
        data.update(record.reveal.to_dict())
        if record.win:
            data.update({
                "payout_lamports": record.payout_lamports,
                "payout_sig": record.payout_ref,
                "payout_confirmed": bool(self.payout_confirmed),
            })
        if self.resumed:
            data["resumed"] = True
        return data


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_fairness_input(fairness: FairnessInput) -> FairnessInput:
    """
    Raise InvalidRequest on a malformed client seed / nonce / side.

    Returns:
        The input with an integral float nonce (JSON 1.0) cast to int
    """
    if not fairness.client_seed or not isinstance(fairness.client_seed, str):
        raise InvalidRequest("Missing client_seed")
    nonce = fairness.nonce
    if isinstance(nonce, float) and nonce.is_integer():
        nonce = int(nonce)
    if not _is_int(nonce) or nonce < 0:
        raise InvalidRequest("Invalid nonce")
    if not isinstance(fairness.chosen_side, Side):
        raise InvalidRequest("Invalid chosen_side")
    if isinstance(fairness.nonce, float):
        return replace(fairness, nonce=nonce)
    return fairness


def validate_claim(claim: WagerClaim):
    """Raise InvalidRequest on a malformed wager claim."""
    if not claim.transaction_ref or not isinstance(claim.transaction_ref, str):
        raise InvalidRequest("Missing signature")
    if not _is_int(claim.claimed_lamports) or claim.claimed_lamports <= 0:
        raise InvalidRequest("Invalid expected_lamports")


class SettlementCoordinator:
    """
    Settlement engine.

    One lock serializes the commitment store and the whole
    check -> verify -> derive -> persist sequence, process-wide.

    Usage:
        coordinator = SettlementCoordinator(ledger, store)
        outcome = coordinator.settle(
            WagerClaim(signature, 100_000_000),
            FairnessInput("my-seed", 0, Side.HEADS),
        )
    """

    def __init__(self, ledger: Ledger, store: SettlementStore,
                 commitments: Optional[CommitmentStore] = None,
                 policy: Optional[HousePolicy] = None,
                 confirm_attempts: int = 10,
                 confirm_interval: float = 1.0):
        self.ledger = ledger
        self.store = store
        self.commitments = commitments or CommitmentStore()
        self.policy = policy or HousePolicy()
        self.verifier = LedgerVerifier(ledger)
        self.confirm_attempts = confirm_attempts
        self.confirm_interval = confirm_interval
        self._lock = threading.RLock()

    @property
    def house_address(self) -> str:
        return self.ledger.house_address

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    def commitment(self) -> str:
        """Current public server hash."""
        return self.commitments.current_hash()

    def house_reserve(self) -> int:
        try:
            return self.ledger.get_balance(self.house_address)
        except RPCError as e:
            raise LedgerUnavailable(f"Balance read failed: {e.message}")

    def house_exposure(self) -> dict:
        reserve = self.house_reserve()
        max_bet = self.policy.max_stake(reserve)
        return {
            "house_lamports": reserve,
            "max_bet_lamports": max_bet,
            "house_sol": lamports_to_sol(reserve),
            "max_bet_sol": lamports_to_sol(max_bet),
        }

    def stats(self) -> dict:
        stats = self.store.get_stats()
        reserve = self.house_reserve()
        data = stats.to_dict()
        data.update({
            "house_balance_lamports": reserve,
            "total_wagered_sol": lamports_to_sol(stats.total_wagered_lamports),
            "total_paid_out_sol": lamports_to_sol(stats.total_paid_out_lamports),
            "house_balance_sol": lamports_to_sol(reserve),
            "payout_multiplier": str(self.policy.payout_multiplier),
        })
        return data

    def lookup(self, transaction_ref: str) -> Optional[SettlementRecord]:
        return self.store.get_record(transaction_ref)

    # =========================================================================
    # PREVIEW
    # =========================================================================

    def preview(self, fairness: FairnessInput) -> dict:
        """
        Flip with the current seed without a wager. Rotates the commitment
        and logs the reveal like a settlement does.
        """
        fairness = validate_fairness_input(fairness)
        with self._lock:
            reveal, next_hash = self.commitments.flip(fairness.client_seed, fairness.nonce)
            self.store.append_reveal(reveal, purpose="preview")
        data = reveal.to_dict()
        data["next_server_hash"] = next_hash
        return data

    def recent_reveals(self, limit: int = 10) -> list:
        """Latest revealed seeds from the audit log, newest first."""
        return self.store.recent_reveals(limit)

    # =========================================================================
    # SETTLEMENT
    # =========================================================================

    def settle(self, claim: WagerClaim, fairness: FairnessInput) -> SettlementOutcome:
        """
        Settle a wager.

        Args:
            claim: Signature of the bettor's payment and the amount paid
            fairness: Client seed, nonce and the side the bettor wins on

        Returns:
            SettlementOutcome

        Raises:
            SettlementError subclasses (see houseflip.errors)
        """
        with self._lock:
            try:
                outcome = self._settle_locked(claim, fairness)
            except SettlementError as e:
                state = SettlementState.RETRYABLE if e.retryable else SettlementState.REJECTED
                self._transition(claim.transaction_ref, state)
                log.info(f"Settlement of {str(claim.transaction_ref)[:16]}... "
                         f"rejected: {e.reason}: {e.message}")
                raise

        record = outcome.record
        if record.win and record.payout_ref:
            self._transition(record.transaction_ref, SettlementState.PAYOUT_CONFIRMING)
            outcome.payout_confirmed = self.ledger.poll_confirmation(
                record.payout_ref,
                attempts=self.confirm_attempts,
                interval=self.confirm_interval,
            )
        self._transition(record.transaction_ref, SettlementState.SETTLED)
        return outcome

    def _transition(self, transaction_ref, state: SettlementState):
        log.debug(f"{str(transaction_ref)[:16]}... -> {state.value}")

    def _settle_locked(self, claim: WagerClaim, fairness: FairnessInput) -> SettlementOutcome:
        ref = claim.transaction_ref
        self._transition(ref, SettlementState.RECEIVED)
        if isinstance(ref, str) and self.store.is_processed(ref):
            raise AlreadySettled("Signature already settled",
                                 {"payout_sig": self.store.get_record(ref).payout_ref})

        self._transition(ref, SettlementState.VALIDATING)
        validate_claim(claim)
        fairness = validate_fairness_input(fairness)

        intent = self.store.get_intent(ref)
        if intent is not None:
            if intent.wager_lamports != claim.claimed_lamports:
                raise AmountMismatch(intent.wager_lamports, claim.claimed_lamports)
            return self._resume_intent(intent)

        self._transition(ref, SettlementState.VERIFYING)
        wager = self.verifier.verify(ref, claim.claimed_lamports, self.house_address)

        self._transition(ref, SettlementState.CAP_CHECKING)
        reserve = self.house_reserve()
        max_stake = self.policy.max_stake(reserve)
        if wager.amount > max_stake:
            raise StakeExceedsCap(wager.amount, max_stake)

        self._transition(ref, SettlementState.DERIVING)
        reveal, next_hash = self.commitments.flip(fairness.client_seed, fairness.nonce)
        self.store.append_reveal(reveal, purpose="settlement", transaction_ref=ref)

        if reveal.result != fairness.chosen_side:
            self._transition(ref, SettlementState.LOSS_RECORDING)
            record = SettlementRecord(
                transaction_ref=ref,
                payer_address=wager.payer_address,
                wager_lamports=wager.amount,
                outcome=reveal.result,
                chosen_side=fairness.chosen_side,
                win=False,
                reveal=reveal,
            )
            self.store.record_settlement(record)
            log.info(f"Settled {ref[:16]}...: LOSS "
                     f"({wager.amount} lamports, {reveal.result.value})")
            return SettlementOutcome(record=record, next_server_hash=next_hash)

        self._transition(ref, SettlementState.PAYOUT_SUBMITTING)
        record = self._pay_winner(wager, reveal, fairness.chosen_side)
        return SettlementOutcome(record=record, next_server_hash=next_hash)

    def _pay_winner(self, wager: VerifiedWager, reveal: Reveal,
                    chosen_side: Side) -> SettlementRecord:
        payout = self.policy.payout_for(wager.amount)

        house_balance = self.house_reserve()
        if house_balance < payout + self.policy.fee_buffer_lamports:
            log.error(f"House balance {house_balance} too low for payout {payout} "
                      f"on {wager.transaction_ref[:16]}...")
            raise InsufficientHouseFunds("HOUSE wallet has insufficient funds for payout",
                                         {"house_lamports": house_balance,
                                          "payout_lamports": payout})

        intent = PayoutIntent(
            transaction_ref=wager.transaction_ref,
            payer_address=wager.payer_address,
            wager_lamports=wager.amount,
            payout_lamports=payout,
            reveal=reveal,
            chosen_side=chosen_side,
        )
        self.store.put_intent(intent)
        intent = self._sign_intent(intent)
        return self._broadcast_and_record(intent)

    def _sign_intent(self, intent: PayoutIntent) -> PayoutIntent:
        """Sign a fresh payout transfer for the intent and persist the signed copy."""
        try:
            signed = self.ledger.sign_transfer(intent.payer_address, intent.payout_lamports)
        except RPCError as e:
            raise PayoutSubmitFailed(f"Could not build payout: {e.message}")
        signed_intent = replace(
            intent,
            payout_ref=signed.signature,
            raw_transaction=signed.raw_transaction,
            last_valid_block_height=signed.last_valid_block_height,
        )
        self.store.put_intent(signed_intent)
        log.info(f"Payout intent {mask_secret(signed.signature)} for "
                 f"{intent.transaction_ref[:16]}...: {intent.payout_lamports} lamports "
                 f"-> {intent.payer_address}")
        return signed_intent

    def _broadcast_and_record(self, intent: PayoutIntent) -> SettlementRecord:
        signed = SignedTransfer(
            signature=intent.payout_ref,
            raw_transaction=intent.raw_transaction,
            destination=intent.payer_address,
            lamports=intent.payout_lamports,
            last_valid_block_height=intent.last_valid_block_height,
        )
        try:
            payout_sig = self.ledger.submit_signed_transfer(signed)
        except RPCError as e:
            log.error(f"Payout broadcast failed for {intent.transaction_ref[:16]}...: {e}")
            raise PayoutSubmitFailed(f"Payout broadcast failed: {e.message}",
                                     {"payout_sig": intent.payout_ref})

        return self._record_win(intent, payout_sig or intent.payout_ref)

    def _record_win(self, intent: PayoutIntent, payout_sig: str) -> SettlementRecord:
        record = SettlementRecord(
            transaction_ref=intent.transaction_ref,
            payer_address=intent.payer_address,
            wager_lamports=intent.wager_lamports,
            outcome=intent.reveal.result,
            chosen_side=intent.chosen_side,
            win=True,
            reveal=intent.reveal,
            payout_lamports=intent.payout_lamports,
            payout_ref=payout_sig,
        )
        self.store.record_settlement(record)
        log.info(f"Settled {intent.transaction_ref[:16]}...: WIN "
                 f"payout {intent.payout_lamports} lamports ({mask_secret(payout_sig)})")
        return record

    # =========================================================================
    # RECOVERY
    # =========================================================================

    def _resume_intent(self, intent: PayoutIntent) -> SettlementOutcome:
        """
        Finish a payout that was decided earlier. The wager is never
        re-verified or re-derived.

        - Never signed: sign and broadcast.
        - Payout already on the ledger without error: record it.
        - Blockhash still valid: rebroadcast the same signed transaction.
        - Failed, or blockhash expired and never landed: sign a fresh
          transfer of the same amount to the same payer and broadcast it.
        """
        ref = intent.transaction_ref
        log.warning(f"Resuming payout intent for {ref[:16]}...")

        if not intent.payout_ref:
            intent = self._sign_intent(intent)
        else:
            try:
                status = self.ledger.signature_status(intent.payout_ref)
                height = self.ledger.block_height() if status is None else 0
            except RPCError as e:
                raise LedgerUnavailable(f"Could not check payout status: {e.message}")

            if status is not None and not status.get("err"):
                record = self._record_win(intent, intent.payout_ref)
                return SettlementOutcome(record=record,
                                         next_server_hash=self.commitments.current_hash(),
                                         resumed=True)

            if status is not None or height > intent.last_valid_block_height:
                intent = self._sign_intent(intent)

        record = self._broadcast_and_record(intent)
        return SettlementOutcome(record=record,
                                 next_server_hash=self.commitments.current_hash(),
                                 resumed=True)

    def pending_intents(self) -> int:
        return len(self.store.list_intents())
