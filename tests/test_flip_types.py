"""Tests for house policy arithmetic and record serialization."""

from decimal import Decimal

import pytest

from houseflip.flip_types import (
    HousePolicy,
    HouseStats,
    PayoutIntent,
    Reveal,
    SettlementRecord,
    Side,
    lamports_to_sol,
)


def _reveal() -> Reveal:
    return Reveal("ab" * 32, "cd" * 32, "client", 3, "ef" * 32, Side.HEADS)


class TestHousePolicy:

    def test_payout_multiplier_is_exact(self) -> None:
        assert HousePolicy().payout_multiplier == Decimal("1.95")

    def test_example_payout(self) -> None:
        assert HousePolicy().payout_for(100_000_000) == 195_000_000

    @pytest.mark.parametrize("wager,payout", [
        (1, 1),
        (3, 5),
        (7, 13),
        (1_000_000_001, 1_950_000_001),
    ])
    def test_payout_floors(self, wager, payout) -> None:
        assert HousePolicy().payout_for(wager) == payout

    def test_example_max_stake(self) -> None:
        assert HousePolicy().max_stake(2_000_000_000) == 200_000_000

    def test_max_stake_floors(self) -> None:
        policy = HousePolicy()
        assert policy.max_stake(9) == 0
        assert policy.max_stake(19) == 1
        assert policy.max_stake(0) == 0

    def test_from_config(self) -> None:
        policy = HousePolicy.from_config({
            "win_chance": "0.5", "house_edge": "0.05",
            "max_stake_fraction": "0.2", "fee_buffer_lamports": 10000,
        })
        assert policy.payout_multiplier == Decimal("1.9")
        assert policy.max_stake(1000) == 200
        assert policy.fee_buffer_lamports == 10000


class TestSide:

    def test_parse_is_case_insensitive(self) -> None:
        assert Side.parse("heads") is Side.HEADS
        assert Side.parse("TAILS") is Side.TAILS

    def test_parse_rejects_unknown(self) -> None:
        with pytest.raises(ValueError):
            Side.parse("EDGE")


class TestRecords:

    def test_settlement_record_round_trip(self) -> None:
        record = SettlementRecord(
            transaction_ref="sig1", payer_address="payer", wager_lamports=10,
            outcome=Side.HEADS, chosen_side=Side.HEADS, win=True, reveal=_reveal(),
            payout_lamports=19, payout_ref="payout1", timestamp=1700000000,
        )
        assert SettlementRecord.from_dict(record.to_dict()) == record

    def test_intent_defaults_unsigned(self) -> None:
        intent = PayoutIntent("sig1", "payer", 10, 19, _reveal())
        assert intent.payout_ref == ""
        restored = PayoutIntent.from_dict(intent.to_dict())
        assert restored.raw_transaction == ""
        assert restored.reveal == intent.reveal

    def test_stats_apply(self) -> None:
        stats = HouseStats()
        loss = SettlementRecord("a", "p", 100, Side.TAILS, Side.HEADS, False, _reveal())
        win = SettlementRecord("b", "p", 100, Side.HEADS, Side.HEADS, True, _reveal(),
                               payout_lamports=195, payout_ref="payout-b")
        stats.apply(loss)
        stats.apply(win)
        assert stats.total_wagered_lamports == 200
        assert stats.total_paid_out_lamports == 195
        assert stats.settled_count == 2
        assert stats.win_count == 1
        assert stats.last_payout_ref == "payout-b"

    def test_stats_ignores_non_string_payout_ref(self) -> None:
        assert HouseStats.from_dict({"last_payout_ref": 5}).last_payout_ref is None


def test_lamports_to_sol() -> None:
    assert lamports_to_sol(1_500_000_000) == 1.5
