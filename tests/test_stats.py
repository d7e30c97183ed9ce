"""
Tests for stats aggregation and the domain models behind it.
"""

from datetime import date
from decimal import Decimal

import pytest

from conftest import make_txn
from readymix_recon.models import (
    DeliveryNote,
    MatchSuggestion,
    MatchType,
    ReceivableKind,
    ReconciliationRecord,
    ReconciliationStatus,
)
from readymix_recon.reconciliation.stats import compute_stats


class TestComputeStats:

    def test_empty(self):
        stats = compute_stats([])
        assert stats.total_transactions == 0
        assert stats.reconciled_amount == Decimal("0")
        assert stats.reconciliation_rate == 0.0

    def test_counts_and_amounts_per_status(self):
        txns = [
            make_txn("T1", 15000, "a", status=ReconciliationStatus.RECONCILED),
            make_txn("T2", "9000.50", "b", status=ReconciliationStatus.RECONCILED),
            make_txn("T3", 1200, "c"),
            make_txn("T4", "-80", "d"),
            make_txn("T5", 300, "e", status=ReconciliationStatus.IGNORED),
        ]

        stats = compute_stats(txns)

        assert stats.total_transactions == 5
        assert stats.reconciled_count == 2
        assert stats.reconciled_amount == Decimal("24000.50")
        assert stats.unmatched_count == 2
        assert stats.unmatched_amount == Decimal("1120")
        assert stats.ignored_count == 1
        assert stats.reconciliation_rate == pytest.approx(40.0)

    def test_counts_add_up(self):
        txns = [
            make_txn(f"T{i}", i + 1, "x", status=status)
            for i, status in enumerate(list(ReconciliationStatus) * 3)
        ]
        stats = compute_stats(txns)
        assert (
            stats.reconciled_count + stats.unmatched_count + stats.ignored_count
            == stats.total_transactions
        )

    def test_accepts_any_iterable(self):
        stats = compute_stats(make_txn(f"T{i}", 10, "x") for i in range(3))
        assert stats.unmatched_amount == Decimal("30")


class TestModels:

    def test_delivery_estimate(self):
        note = DeliveryNote(
            id="BL-1",
            client_id="C1",
            delivery_date=date(2024, 3, 1),
            volume_m3=Decimal("7.5"),
            unit_sale_price=Decimal("800"),
        )
        # Missing delivery price counts as zero
        assert note.estimated_amount(Decimal("0.20")) == Decimal("7200")

        receivable = note.to_receivable(Decimal("0.20"))
        assert receivable.kind == ReceivableKind.DELIVERY
        assert receivable.is_estimate
        assert receivable.date == date(2024, 3, 1)

    @pytest.mark.parametrize(
        "invoice_id,delivery_id",
        [(None, None), ("INV-1", "BL-1")],
    )
    def test_suggestion_needs_exactly_one_receivable(self, invoice_id, delivery_id):
        with pytest.raises(ValueError):
            MatchSuggestion(
                client_id="C1",
                client_name="ACME",
                receivable_amount=Decimal("1"),
                receivable_date=date(2024, 1, 1),
                score=0.5,
                invoice_id=invoice_id,
                delivery_id=delivery_id,
            )

    def test_record_variance_is_signed(self):
        record = ReconciliationRecord(
            transaction_id="T1",
            client_id="C1",
            receivable_amount=Decimal("1000"),
            transaction_amount=Decimal("1010.25"),
            match_type=MatchType.MANUAL,
            confidence_score=0.9,
            reasons="Exact amount",
            invoice_id="INV-1",
        )
        assert record.variance == Decimal("10.25")
        assert record.receivable_id == "INV-1"
