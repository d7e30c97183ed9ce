"""
Tests for transaction ingestion and ledger seed parsing.
"""

from datetime import date
from decimal import Decimal

import pytest

from readymix_recon.models import PaymentStatus, ReconciliationStatus, TransactionType
from readymix_recon.reconciliation.ingestion import (
    ingest_transactions,
    parse_ledger,
    parse_transactions,
)
from readymix_recon.utils.exceptions import ValidationError


def row(**overrides):
    data = {
        "id": "T1",
        "date": "2024-03-15",
        "label": "Virement ACME SARL",
        "amount": "15000.00",
    }
    data.update(overrides)
    return data


class TestParseTransactions:

    def test_valid_row(self):
        [txn] = parse_transactions([row(bank_reference="REF-1", value_date="2024-03-16")])

        assert txn.id == "T1"
        assert txn.date == date(2024, 3, 15)
        assert txn.value_date == date(2024, 3, 16)
        assert txn.amount == Decimal("15000.00")
        assert txn.bank_reference == "REF-1"
        assert txn.status == ReconciliationStatus.UNMATCHED
        assert txn.currency == "MAD"

    def test_type_inferred_from_sign(self):
        credit, debit = parse_transactions(
            [row(id="T1"), row(id="T2", amount="-250", label="Frais")]
        )
        assert credit.type == TransactionType.CREDIT
        assert debit.type == TransactionType.DEBIT

    def test_explicit_type_wins(self):
        [txn] = parse_transactions([row(type="debit")])
        assert txn.type == TransactionType.DEBIT

    def test_currency(self):
        first, second = parse_transactions(
            [row(id="T1", currency="eur"), row(id="T2")], default_currency="USD"
        )
        assert first.currency == "EUR"
        assert second.currency == "USD"

    def test_label_is_stripped(self):
        [txn] = parse_transactions([row(label="  VIR ACME  ")])
        assert txn.label == "VIR ACME"

    def test_missing_id_is_generated(self):
        data = row()
        del data["id"]
        [txn] = parse_transactions([data])
        assert txn.id

    @pytest.mark.parametrize(
        "overrides",
        [
            {"label": "   "},
            {"amount": "0"},
            {"amount": "abc"},
            {"date": "not-a-date"},
            {"currency": "DIRHAM"},
        ],
    )
    def test_invalid_rows(self, overrides):
        with pytest.raises(ValidationError):
            parse_transactions([row(**overrides)])

    def test_error_names_the_row(self):
        with pytest.raises(ValidationError, match="Row 2"):
            parse_transactions([row(id="T1"), row(id="T2", amount="0")])

    def test_amount_is_rounded_to_cents(self):
        [txn] = parse_transactions([row(amount="12.345")])
        assert txn.amount == Decimal("12.35")

    def test_amount_below_half_a_cent_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_transactions([row(amount="0.004")])


class TestIngestTransactions:

    def test_batch_is_stored(self, store):
        imported = ingest_transactions(store, [row(id="T1"), row(id="T2", amount="-10")])

        assert [t.id for t in imported] == ["T1", "T2"]
        assert {t.id for t in store.list_transactions()} == {"T1", "T2"}

    def test_invalid_row_rejects_whole_batch(self, store):
        with pytest.raises(ValidationError):
            ingest_transactions(store, [row(id="T1"), row(id="T2", label="")])

        assert store.list_transactions() == []

    def test_duplicate_id_rejects_whole_batch(self, store):
        ingest_transactions(store, [row(id="T1")])

        with pytest.raises(ValidationError):
            ingest_transactions(store, [row(id="T2"), row(id="T1")])

        assert [t.id for t in store.list_transactions()] == ["T1"]


class TestParseLedger:

    def test_full_document(self):
        clients, invoices, deliveries = parse_ledger(
            {
                "clients": [{"id": "C1", "name": "ACME SARL"}],
                "invoices": [
                    {"id": "INV-1", "client_id": "C1", "amount": "1200.50", "date": "2024-02-01"}
                ],
                "deliveries": [
                    {
                        "id": "BL-1",
                        "client_id": "C1",
                        "date": "2024-02-03",
                        "volume_m3": "8",
                        "unit_sale_price": "650",
                        "unit_delivery_price": "40",
                    }
                ],
            }
        )

        assert clients[0].name == "ACME SARL"
        assert invoices[0].amount == Decimal("1200.50")
        assert invoices[0].status == PaymentStatus.UNPAID
        assert deliveries[0].delivery_date == date(2024, 2, 3)
        # 8 x (650 + 40) x 1.20
        assert deliveries[0].estimated_amount(Decimal("0.20")) == Decimal("6624.00")

    def test_sections_are_optional(self):
        assert parse_ledger({"clients": [{"id": "C1", "name": "X"}]})[1:] == ([], [])

    def test_invalid_document(self):
        with pytest.raises(ValidationError):
            parse_ledger({"invoices": [{"id": "INV-1"}]})
