"""Tests for wager payment verification."""

import pytest

from houseflip.errors import (
    AmbiguousPayer,
    AmountMismatch,
    LedgerUnavailable,
    NoPaymentFound,
    NotYetConfirmed,
    OnChainFailure,
    PayerMismatch,
)
from houseflip.verifier import LedgerVerifier, account_key_string

from conftest import HOUSE, OTHER, PLAYER, FakeLedger, make_tx, transfer_ix, wager_tx


@pytest.fixture
def verifier(ledger: FakeLedger) -> LedgerVerifier:
    return LedgerVerifier(ledger)


class TestVerifyAccepts:

    def test_single_transfer(self, ledger, verifier) -> None:
        ledger.transactions["sig"] = wager_tx(100_000_000)
        wager = verifier.verify("sig", 100_000_000, HOUSE)
        assert wager.payer_address == PLAYER
        assert wager.amount == 100_000_000
        assert wager.transaction_ref == "sig"

    def test_transfers_from_same_source_are_summed(self, ledger, verifier) -> None:
        ledger.transactions["sig"] = make_tx([
            transfer_ix(PLAYER, HOUSE, 60),
            transfer_ix(PLAYER, HOUSE, 40),
        ])
        assert verifier.verify("sig", 100, HOUSE).amount == 100

    def test_transfers_elsewhere_are_ignored(self, ledger, verifier) -> None:
        ledger.transactions["sig"] = make_tx([
            transfer_ix(PLAYER, OTHER, 999),
            transfer_ix(PLAYER, HOUSE, 100),
        ])
        assert verifier.verify("sig", 100, HOUSE).amount == 100

    def test_inner_instructions_are_scanned(self, ledger, verifier) -> None:
        ledger.transactions["sig"] = make_tx([], inner=[transfer_ix(PLAYER, HOUSE, 100)])
        assert verifier.verify("sig", 100, HOUSE).payer_address == PLAYER

    def test_transfer_with_seed(self, ledger, verifier) -> None:
        ledger.transactions["sig"] = make_tx([
            transfer_ix(PLAYER, HOUSE, 100, kind="transferWithSeed"),
        ])
        assert verifier.verify("sig", 100, HOUSE).amount == 100

    def test_plain_string_account_keys(self, ledger, verifier) -> None:
        ledger.transactions["sig"] = make_tx([transfer_ix(PLAYER, HOUSE, 100)], plain_keys=True)
        assert verifier.verify("sig", 100, HOUSE).payer_address == PLAYER

    def test_is_repeatable(self, ledger, verifier) -> None:
        ledger.transactions["sig"] = wager_tx(100)
        assert verifier.verify("sig", 100, HOUSE) == verifier.verify("sig", 100, HOUSE)


class TestVerifyRejects:

    def test_unknown_transaction_is_retryable(self, verifier) -> None:
        with pytest.raises(NotYetConfirmed) as exc:
            verifier.verify("missing", 100, HOUSE)
        assert exc.value.retryable is True

    def test_failed_transaction(self, ledger, verifier) -> None:
        ledger.transactions["sig"] = make_tx([transfer_ix(PLAYER, HOUSE, 100)],
                                             err={"InstructionError": [0, "Custom"]})
        with pytest.raises(OnChainFailure):
            verifier.verify("sig", 100, HOUSE)

    def test_no_transfer_to_house(self, ledger, verifier) -> None:
        ledger.transactions["sig"] = make_tx([transfer_ix(PLAYER, OTHER, 100)])
        with pytest.raises(NoPaymentFound):
            verifier.verify("sig", 100, HOUSE)

    def test_non_system_program_ignored(self, ledger, verifier) -> None:
        ix = transfer_ix(PLAYER, HOUSE, 100)
        ix["program"] = "spl-token"
        ix["programId"] = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
        ledger.transactions["sig"] = make_tx([ix])
        with pytest.raises(NoPaymentFound):
            verifier.verify("sig", 100, HOUSE)

    def test_two_sources_is_ambiguous(self, ledger, verifier) -> None:
        ledger.transactions["sig"] = make_tx([
            transfer_ix(PLAYER, HOUSE, 50),
            transfer_ix(OTHER, HOUSE, 50),
        ])
        with pytest.raises(AmbiguousPayer) as exc:
            verifier.verify("sig", 100, HOUSE)
        assert exc.value.details["sources"] == sorted([PLAYER, OTHER])

    @pytest.mark.parametrize("claimed", [99, 101, 1])
    def test_amount_must_match_exactly(self, ledger, verifier, claimed) -> None:
        ledger.transactions["sig"] = wager_tx(100)
        with pytest.raises(AmountMismatch) as exc:
            verifier.verify("sig", claimed, HOUSE)
        assert exc.value.details == {"found_lamports": 100, "expected_lamports": claimed}

    def test_fee_payer_must_be_the_payer(self, ledger, verifier) -> None:
        ledger.transactions["sig"] = make_tx([transfer_ix(PLAYER, HOUSE, 100)], fee_payer=OTHER)
        with pytest.raises(PayerMismatch):
            verifier.verify("sig", 100, HOUSE)

    def test_ledger_error_is_infrastructure_failure(self, ledger, verifier) -> None:
        ledger.fail_reads = True
        with pytest.raises(LedgerUnavailable):
            verifier.verify("sig", 100, HOUSE)


@pytest.mark.parametrize("key,expected", [
    ("abc", "abc"),
    ({"pubkey": "abc", "signer": True}, "abc"),
    (None, ""),
])
def test_account_key_string(key, expected) -> None:
    assert account_key_string(key) == expected
