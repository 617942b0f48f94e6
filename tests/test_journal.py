"""Tests for TradeJournal -- append-only history, trailing high, corruption."""

import json
import random
from decimal import Decimal
from unittest.mock import patch

import pytest

from rotator.exceptions import JournalCorruptError
from rotator.journal import TradeJournal
from rotator.models import (
    ExecutionPrice,
    PriceChange,
    RealizedAmounts,
    Timeframe,
    TokenContext,
    TradeContext,
    TradeRecord,
)


def _make_record(
    token_in: str = "WETH",
    token_out: str = "X",
    api_price: str = "10",
    highest_price: str | None = "10",
    tx_hash: str = "0xabc",
) -> TradeRecord:
    """Create a minimal TradeRecord for testing."""
    return TradeRecord(
        timestamp="2024-06-01T00:00:00+00:00",
        token_in=token_in,
        token_out=token_out,
        amount_in=Decimal("2.0"),
        amount_out_minimum=Decimal("0.186"),
        pool_address="0xpool",
        fee=3000,
        price_at_execution=ExecutionPrice(
            reference_price=Decimal("0.1"),
            computed_price=Decimal("0.1"),
            token_in_is_token0=True,
        ),
        api_price=Decimal(api_price),
        context=TradeContext(
            base_price_changes=[PriceChange.from_variation(Timeframe.H1, 1.5)],
            token_price_changes=TokenContext(
                symbol=token_out,
                price_changes=[PriceChange.from_variation(Timeframe.H1, None)],
                highest_price=Decimal(highest_price) if highest_price else None,
                score=Decimal("8"),
            ),
            rationale="test",
        ),
        actual_amount_out=RealizedAmounts(amount_in=Decimal("2.0"), amount_out=Decimal("0.2")),
        tx_hash=tx_hash,
    )


class TestAppend:
    """History is append-only and never deduplicated."""

    def test_missing_file_is_empty_history(self, journal: TradeJournal) -> None:
        assert journal.records() == []

    def test_round_trip_preserves_fields(self, journal: TradeJournal) -> None:
        record = _make_record()
        journal.append(record)

        loaded = journal.records()
        assert loaded == [record]
        fallback = loaded[0].context.token_price_changes.price_changes[0]
        assert fallback.is_fallback is True

    def test_duplicate_appends_both_stored(self, journal: TradeJournal) -> None:
        record = _make_record()
        journal.append(record)
        journal.append(record)
        assert len(journal.records()) == 2

    def test_execution_order_preserved(self, journal: TradeJournal) -> None:
        hashes = [f"0x{i}" for i in range(5)]
        for h in hashes:
            journal.append(_make_record(tx_hash=h))
        assert [r.tx_hash for r in journal.records()] == hashes

    def test_decimals_stored_as_strings(self, journal: TradeJournal) -> None:
        journal.append(_make_record(api_price="10.123456789012345678"))
        raw = json.loads(journal.path.read_text())
        assert raw[0]["api_price"] == "10.123456789012345678"

    def test_corrupt_file_is_quarantined_not_overwritten(self, journal: TradeJournal) -> None:
        journal.path.write_text("{not json")
        journal.append(_make_record())

        assert len(journal.records()) == 1
        quarantined = list(journal.path.parent.glob("trades.json.corrupt-*"))
        assert len(quarantined) == 1
        assert quarantined[0].read_text() == "{not json"


class TestFindLastRotationInto:
    def test_no_history(self, journal: TradeJournal) -> None:
        entry = journal.find_last_rotation_into("X")
        assert entry.entry_price is None
        assert entry.highest_price is None

    def test_uses_newest_base_to_token_record(self, journal: TradeJournal) -> None:
        journal.append(_make_record(api_price="8", highest_price="9"))
        journal.append(_make_record(token_in="X", token_out="WETH", api_price="3000"))
        journal.append(_make_record(api_price="10", highest_price="12"))
        journal.append(_make_record(token_in="Y", token_out="X", api_price="99"))

        entry = journal.find_last_rotation_into("X")
        assert entry.entry_price == Decimal("10")
        assert entry.highest_price == Decimal("12")

    def test_missing_highest_defaults_to_entry(self, journal: TradeJournal) -> None:
        journal.append(_make_record(api_price="10", highest_price=None))
        entry = journal.find_last_rotation_into("X")
        assert entry.highest_price == Decimal("10")

    def test_corrupt_file_degrades_to_no_history(self, journal: TradeJournal) -> None:
        journal.path.write_text('[{"token_in": "WETH"}]')
        entry = journal.find_last_rotation_into("X")
        assert entry.known is False


class TestUpdateHighestPrice:
    """The stored trailing high only ever moves up."""

    def test_raises_on_higher_price(self, journal: TradeJournal) -> None:
        journal.append(_make_record(api_price="10", highest_price="10"))
        assert journal.update_highest_price("X", Decimal("11")) is True
        assert journal.find_last_rotation_into("X").highest_price == Decimal("11")

    def test_ignores_lower_or_equal_price(self, journal: TradeJournal) -> None:
        journal.append(_make_record(api_price="10", highest_price="12"))
        assert journal.update_highest_price("X", Decimal("11.3")) is False
        assert journal.update_highest_price("X", Decimal("12")) is False
        assert journal.find_last_rotation_into("X").highest_price == Decimal("12")

    def test_no_entry_is_noop(self, journal: TradeJournal) -> None:
        assert journal.update_highest_price("X", Decimal("11")) is False
        assert not journal.path.exists()

    def test_only_latest_rotation_patched(self, journal: TradeJournal) -> None:
        journal.append(_make_record(api_price="5", highest_price="5", tx_hash="0xold"))
        journal.append(_make_record(api_price="10", highest_price="10", tx_hash="0xnew"))
        journal.update_highest_price("X", Decimal("20"))

        old, new = journal.records()
        assert old.context.token_price_changes.highest_price == Decimal("5")
        assert new.context.token_price_changes.highest_price == Decimal("20")

    def test_highest_is_running_max_of_observations(self, journal: TradeJournal) -> None:
        rng = random.Random(7)
        entry = Decimal("10")
        journal.append(_make_record(api_price=str(entry), highest_price=str(entry)))

        running_max = entry
        for _ in range(40):
            price = Decimal(str(round(rng.uniform(5, 20), 4)))
            journal.update_highest_price("X", price)
            running_max = max(running_max, price)
            assert journal.find_last_rotation_into("X").highest_price == running_max

    def test_corrupt_file_raises(self, journal: TradeJournal) -> None:
        journal.path.write_text("garbage")
        with pytest.raises(JournalCorruptError):
            journal.update_highest_price("X", Decimal("11"))


class TestAtomicWrite:
    def test_failed_replace_keeps_previous_history(self, journal: TradeJournal) -> None:
        journal.append(_make_record(tx_hash="0x1"))
        before = journal.path.read_bytes()

        with patch("rotator.journal.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                journal.append(_make_record(tx_hash="0x2"))

        assert journal.path.read_bytes() == before
        leftovers = [p for p in journal.path.parent.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_unreadable_record_is_rejected_before_write(self, journal: TradeJournal) -> None:
        journal.append(_make_record(token_out="Y", api_price="4", highest_price="4"))
        before = journal.path.read_bytes()

        with pytest.raises(JournalCorruptError):
            journal.append(_make_record(api_price="NaN", highest_price="NaN"))

        assert journal.path.read_bytes() == before
        entry = journal.find_last_rotation_into("Y")
        assert entry.known
        assert entry.entry_price == Decimal("4")
