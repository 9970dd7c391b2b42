"""
houseflip - Settlement Errors

Every rejection carries a machine-checkable reason string, a category and
the HTTP status the API answers with.
"""

from typing import Optional


class SettlementError(Exception):
    """Base class for all settlement failures."""
    reason = "SettlementError"
    category = "settlement_error"
    http_status = 500
    retryable = False

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        data = {
            "error": self.message,
            "reason": self.reason,
            "category": self.category,
            "retryable": self.retryable,
        }
        if self.details:
            data["details"] = self.details
        return data


class InvalidRequest(SettlementError):
    """Malformed input. Nothing was read from or written to the ledger."""
    reason = "InvalidRequest"
    category = "invalid_request"
    http_status = 400


class NotYetConfirmed(SettlementError):
    """Ledger has not finalized the transaction yet; caller should poll."""
    reason = "NotYetConfirmed"
    category = "retryable_not_confirmed"
    http_status = 425
    retryable = True


# =============================================================================
# PERMANENT REJECTIONS
# =============================================================================

class PermanentRejection(SettlementError):
    category = "permanent_rejection"
    http_status = 400


class OnChainFailure(PermanentRejection):
    reason = "OnChainFailure"


class NoPaymentFound(PermanentRejection):
    reason = "NoPaymentFound"


class AmbiguousPayer(PermanentRejection):
    reason = "AmbiguousPayer"


class AmountMismatch(PermanentRejection):
    reason = "AmountMismatch"

    def __init__(self, found: int, expected: int):
        super().__init__(
            f"Incorrect amount. Found {found} lamports, expected {expected}",
            {"found_lamports": found, "expected_lamports": expected},
        )


class PayerMismatch(PermanentRejection):
    reason = "PayerMismatch"


class StakeExceedsCap(PermanentRejection):
    reason = "StakeExceedsCap"

    def __init__(self, stake: int, max_stake: int):
        super().__init__(
            f"Bet exceeds max stake. Max {max_stake} lamports.",
            {"stake_lamports": stake, "max_stake_lamports": max_stake},
        )


class InsufficientHouseFunds(PermanentRejection):
    reason = "InsufficientHouseFunds"


class AlreadySettled(PermanentRejection):
    reason = "AlreadySettled"
    http_status = 409


# =============================================================================
# INFRASTRUCTURE FAILURES
# =============================================================================

class InfrastructureFailure(SettlementError):
    category = "infrastructure_failure"
    http_status = 502
    retryable = True


class LedgerUnavailable(InfrastructureFailure):
    reason = "LedgerUnavailable"


class PayoutSubmitFailed(InfrastructureFailure):
    reason = "PayoutSubmitFailed"
