"""
Tests for confirming and ignoring transactions, on both store backends.
"""

from datetime import date
from decimal import Decimal
import threading

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import make_txn
from readymix_recon.matching.engine import MatchingEngine
from readymix_recon.models import (
    MatchSuggestion,
    MatchType,
    PaymentStatus,
    ReceivableKind,
    ReconciliationStatus,
)
from readymix_recon.reconciliation.recorder import ReconciliationRecorder
from readymix_recon.storage.memory import InMemoryStore, _MemoryUnitOfWork
from readymix_recon.storage.sql import _SqlUnitOfWork
from readymix_recon.utils.exceptions import (
    NotFoundError,
    ReconciliationConflict,
    StorageError,
)


def suggestion_for(invoice_id="INV-004", amount="15000", score=0.85, client_id="C1"):
    return MatchSuggestion(
        client_id=client_id,
        client_name="ACME SARL",
        receivable_amount=Decimal(amount),
        receivable_date=date(2024, 3, 12),
        score=score,
        reasons=["Exact amount", "Client reference: acme, sarl"],
        invoice_id=invoice_id,
    )


@pytest.fixture
def recorder(store):
    return ReconciliationRecorder(store)


@pytest.fixture
def seeded(store):
    store.add_transactions(
        [
            make_txn("T1", 15000, "Virement ACME SARL"),
            make_txn("T2", "15000.00", "VIR ACME SARL INV-004"),
            make_txn("T3", 14800, "ACME SARL acompte"),
        ]
    )
    return store


class TestConfirmMatch:

    def test_confirm_writes_record_and_transitions(self, seeded, recorder):
        record = recorder.confirm_match("T1", suggestion_for(), reconciled_by="amina")

        assert record.transaction_id == "T1"
        assert record.invoice_id == "INV-004"
        assert record.delivery_id is None
        assert record.match_type == MatchType.MANUAL
        assert record.confidence_score == 0.85
        assert record.reasons == "Exact amount, Client reference: acme, sarl"
        assert record.variance == Decimal("0")

        txn = seeded.get_transaction("T1")
        assert txn.status == ReconciliationStatus.RECONCILED
        assert txn.client_id == "C1"
        assert txn.receivable_id == "INV-004"
        assert txn.confidence_score == 0.85
        assert txn.reconciled_by == "amina"
        assert txn.reconciled_at is not None

        invoice = seeded.get_receivable("INV-004", ReceivableKind.INVOICE)
        assert invoice.status == PaymentStatus.PAID
        assert "INV-004" not in [r.id for r in seeded.list_unpaid_invoices()]

        assert [r.id for r in seeded.records_for_transaction("T1")] == [record.id]
        assert [r.id for r in seeded.records_for_receivable("INV-004")] == [record.id]

    def test_signed_variance(self, seeded, recorder):
        record = recorder.confirm_match("T3", suggestion_for())
        assert record.transaction_amount == Decimal("14800")
        assert record.variance == Decimal("-200")

    def test_automatic_match_uses_system_identity(self, seeded, recorder):
        recorder.confirm_match("T1", suggestion_for(), match_type=MatchType.AUTOMATIC)
        assert seeded.get_transaction("T1").reconciled_by == "system"

    def test_second_confirmation_conflicts(self, seeded, recorder):
        recorder.confirm_match("T1", suggestion_for())

        with pytest.raises(ReconciliationConflict) as exc_info:
            recorder.confirm_match("T1", suggestion_for("INV-011", "9600", client_id="C3"))

        assert exc_info.value.transaction_id == "T1"
        assert len(seeded.records_for_transaction("T1")) == 1
        invoice = seeded.get_receivable("INV-011", ReceivableKind.INVOICE)
        assert invoice.status == PaymentStatus.UNPAID

    def test_two_transactions_same_invoice(self, seeded, recorder):
        recorder.confirm_match("T1", suggestion_for())

        with pytest.raises(ReconciliationConflict) as exc_info:
            recorder.confirm_match("T2", suggestion_for())

        assert exc_info.value.receivable_id == "INV-004"
        assert len(seeded.records_for_receivable("INV-004")) == 1
        assert seeded.records_for_transaction("T2") == []
        assert seeded.get_transaction("T2").status == ReconciliationStatus.UNMATCHED
        invoice = seeded.get_receivable("INV-004", ReceivableKind.INVOICE)
        assert invoice.status == PaymentStatus.PAID

    def test_unknown_transaction(self, seeded, recorder):
        with pytest.raises(NotFoundError):
            recorder.confirm_match("NOPE", suggestion_for())

    def test_unknown_receivable_conflicts_without_changes(self, seeded, recorder):
        with pytest.raises(ReconciliationConflict):
            recorder.confirm_match("T1", suggestion_for("INV-999"))

        assert seeded.get_transaction("T1").status == ReconciliationStatus.UNMATCHED
        assert seeded.list_records() == []

    def test_ignored_transaction_cannot_be_confirmed(self, seeded, recorder):
        recorder.ignore_transaction("T1")
        with pytest.raises(ReconciliationConflict):
            recorder.confirm_match("T1", suggestion_for())
        assert seeded.list_records() == []

    def test_delivery_suggestion_marks_delivery_paid(self, store, recorder):
        store.add_transactions([make_txn("T9", 9000, "VIR GROUPE HORIZON BL-200")])
        engine = MatchingEngine()
        best = engine.find_matches(
            store.get_transaction("T9"),
            store.list_open_receivables(),
            store.list_clients(),
        )[0]

        record = recorder.confirm_match("T9", best)

        assert record.delivery_id == "BL-200"
        assert record.invoice_id is None
        assert store.list_unpaid_deliveries() == []
        assert store.get_receivable("BL-200", ReceivableKind.DELIVERY).status == PaymentStatus.PAID

    def test_invoiced_delivery_cannot_be_settled(self, seeded, recorder):
        # BL-150 is billed through INV-004; paying it would collect INV-004 twice
        invoiced = MatchSuggestion(
            client_id="C1",
            client_name="ACME SARL",
            receivable_amount=Decimal("15000"),
            receivable_date=date(2024, 3, 5),
            score=0.9,
            delivery_id="BL-150",
        )

        with pytest.raises(ReconciliationConflict) as exc_info:
            recorder.confirm_match("T1", invoiced)

        assert exc_info.value.receivable_id == "BL-150"
        assert seeded.list_records() == []
        assert seeded.get_transaction("T1").status == ReconciliationStatus.UNMATCHED
        delivery = seeded.get_receivable("BL-150", ReceivableKind.DELIVERY)
        assert delivery.status == PaymentStatus.UNPAID

        recorder.confirm_match("T1", suggestion_for())
        assert len(seeded.records_for_receivable("INV-004")) == 1


class TestConfirmAtomicity:
    """Partial failures and races leave exactly one consistent outcome."""

    def test_failure_marking_paid_rolls_back(self, memory_store, monkeypatch):
        memory_store.add_transactions([make_txn("T1", 15000, "ACME SARL")])
        recorder = ReconciliationRecorder(memory_store)

        def broken(self, receivable_id, kind):
            raise StorageError("ledger unavailable")

        monkeypatch.setattr(_MemoryUnitOfWork, "mark_receivable_paid", broken)

        with pytest.raises(StorageError):
            recorder.confirm_match("T1", suggestion_for())

        assert memory_store.list_records() == []
        assert memory_store.get_transaction("T1").status == ReconciliationStatus.UNMATCHED
        invoice = memory_store.get_receivable("INV-004", ReceivableKind.INVOICE)
        assert invoice.status == PaymentStatus.UNPAID

    def test_unique_violation_reports_ids(self, sql_store, monkeypatch):
        sql_store.add_transactions([make_txn("T1", 15000, "ACME SARL")])
        recorder = ReconciliationRecorder(sql_store)

        def duplicate(self, record):
            raise IntegrityError(
                "INSERT INTO reconciliation_records", {}, Exception("UNIQUE constraint failed")
            )

        monkeypatch.setattr(_SqlUnitOfWork, "add_record", duplicate)

        with pytest.raises(ReconciliationConflict) as exc_info:
            recorder.confirm_match("T1", suggestion_for())

        assert exc_info.value.transaction_id == "T1"
        assert exc_info.value.receivable_id == "INV-004"
        assert sql_store.get_transaction("T1").status == ReconciliationStatus.UNMATCHED

    def test_concurrent_confirmations_same_transaction(self, store):
        store.add_transactions([make_txn("T1", 15000, "ACME SARL")])
        recorder = ReconciliationRecorder(store)
        receivables = [("INV-004", "15000", "C1"), ("INV-011", "9600", "C3")]
        barrier = threading.Barrier(len(receivables) * 4)
        outcomes = []

        def attempt(invoice_id, amount, client_id):
            barrier.wait()
            try:
                recorder.confirm_match("T1", suggestion_for(invoice_id, amount, client_id=client_id))
                outcomes.append("ok")
            except ReconciliationConflict:
                outcomes.append("conflict")

        threads = [
            threading.Thread(target=attempt, args=args)
            for args in receivables
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("conflict") == len(threads) - 1
        assert len(store.records_for_transaction("T1")) == 1
        paid = [
            inv_id
            for inv_id, _, _ in receivables
            if store.get_receivable(inv_id, ReceivableKind.INVOICE).status
            == PaymentStatus.PAID
        ]
        assert len(paid) == 1

    def test_concurrent_transactions_same_invoice(self, store):
        store.add_transactions(
            [make_txn(f"T{i}", 15000, "ACME SARL") for i in range(6)]
        )
        recorder = ReconciliationRecorder(store)
        barrier = threading.Barrier(6)
        outcomes = []

        def attempt(txn_id):
            barrier.wait()
            try:
                recorder.confirm_match(txn_id, suggestion_for())
                outcomes.append(txn_id)
            except ReconciliationConflict:
                pass

        threads = [threading.Thread(target=attempt, args=(f"T{i}",)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(outcomes) == 1
        assert len(store.records_for_receivable("INV-004")) == 1
        reconciled = store.list_transactions(ReconciliationStatus.RECONCILED)
        assert [t.id for t in reconciled] == outcomes


class TestIgnoreTransaction:

    def test_ignore_sets_status_and_default_note(self, seeded, recorder):
        txn = recorder.ignore_transaction("T1")

        assert txn.status == ReconciliationStatus.IGNORED
        assert txn.notes == "Manually ignored"
        invoice = seeded.get_receivable("INV-004", ReceivableKind.INVOICE)
        assert invoice.status == PaymentStatus.UNPAID

    def test_ignore_with_reason(self, seeded, recorder):
        txn = recorder.ignore_transaction("T1", "Internal transfer")
        assert txn.notes == "Internal transfer"

    def test_ignore_is_idempotent(self, seeded, recorder):
        recorder.ignore_transaction("T1", "first")
        txn = recorder.ignore_transaction("T1", "second")

        assert txn.status == ReconciliationStatus.IGNORED
        assert txn.notes == "first"

    def test_reconciled_transaction_cannot_be_ignored(self, seeded, recorder):
        recorder.confirm_match("T1", suggestion_for())
        with pytest.raises(ReconciliationConflict):
            recorder.ignore_transaction("T1")
        assert seeded.get_transaction("T1").status == ReconciliationStatus.RECONCILED

    def test_unknown_transaction(self, seeded, recorder):
        with pytest.raises(NotFoundError):
            recorder.ignore_transaction("NOPE")


class TestUnitOfWork:
    """Conditional transitions on the store backends."""

    def test_transition_requires_expected_status(self, seeded):
        with seeded.unit_of_work() as uow:
            assert not uow.transition_transaction(
                "T1",
                ReconciliationStatus.IGNORED,
                status=ReconciliationStatus.RECONCILED,
            )
        assert seeded.get_transaction("T1").status == ReconciliationStatus.UNMATCHED

    def test_mark_paid_only_once(self, seeded):
        with seeded.unit_of_work() as uow:
            assert uow.mark_receivable_paid("INV-004", ReceivableKind.INVOICE)
        with seeded.unit_of_work() as uow:
            assert not uow.mark_receivable_paid("INV-004", ReceivableKind.INVOICE)

    def test_exception_discards_staged_changes(self, seeded):
        with pytest.raises(RuntimeError):
            with seeded.unit_of_work() as uow:
                uow.transition_transaction(
                    "T1",
                    ReconciliationStatus.UNMATCHED,
                    status=ReconciliationStatus.IGNORED,
                )
                uow.mark_receivable_paid("INV-004", ReceivableKind.INVOICE)
                raise RuntimeError("boom")

        assert seeded.get_transaction("T1").status == ReconciliationStatus.UNMATCHED
        invoice = seeded.get_receivable("INV-004", ReceivableKind.INVOICE)
        assert invoice.status == PaymentStatus.UNPAID


def test_in_memory_store_returns_copies():
    store = InMemoryStore()
    store.add_transactions([make_txn("T1", 10, "x")])

    txn = store.get_transaction("T1")
    txn.status = ReconciliationStatus.IGNORED

    assert store.get_transaction("T1").status == ReconciliationStatus.UNMATCHED
