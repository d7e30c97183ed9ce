"""Shared fixtures: a small ready-mix ledger and bank statement."""

from datetime import date
from decimal import Decimal

import pytest

from readymix_recon.config import ReconConfig
from readymix_recon.matching.engine import MatchingEngine
from readymix_recon.models import (
    BankTransaction,
    Client,
    DeliveryNote,
    Receivable,
    ReceivableKind,
)
from readymix_recon.reconciliation.service import ReconciliationService
from readymix_recon.storage.memory import InMemoryStore
from readymix_recon.storage.sql import SqlStore

TODAY = date(2024, 3, 15)


def make_txn(txn_id, amount, label, txn_date=TODAY, **kwargs):
    return BankTransaction(
        id=txn_id,
        date=txn_date,
        amount=Decimal(str(amount)),
        label=label,
        **kwargs,
    )


def make_invoice(invoice_id, client_id, amount, invoice_date):
    return Receivable(
        id=invoice_id,
        client_id=client_id,
        amount=Decimal(str(amount)),
        date=invoice_date,
        kind=ReceivableKind.INVOICE,
    )


@pytest.fixture
def config():
    return ReconConfig()


@pytest.fixture
def engine(config):
    return MatchingEngine(config)


@pytest.fixture
def clients():
    return [
        Client(id="C1", name="ACME SARL"),
        Client(id="C2", name="Béton Atlas de Construction"),
        Client(id="C3", name="Groupe Horizon"),
    ]


@pytest.fixture
def invoices():
    return [
        make_invoice("INV-004", "C1", 15000, date(2024, 3, 12)),
        make_invoice("INV-010", "C2", 48000, date(2024, 1, 10)),
        make_invoice("INV-011", "C3", 9600, date(2024, 3, 1)),
    ]


@pytest.fixture
def deliveries():
    return [
        # 10 m3 x (700 + 50) x 1.20 = 9000
        DeliveryNote(
            id="BL-200",
            client_id="C3",
            delivery_date=date(2024, 3, 8),
            volume_m3=Decimal("10"),
            unit_sale_price=Decimal("700"),
            unit_delivery_price=Decimal("50"),
        ),
        # Already invoiced: never a candidate on its own
        DeliveryNote(
            id="BL-150",
            client_id="C1",
            delivery_date=date(2024, 3, 5),
            volume_m3=Decimal("12.5"),
            unit_sale_price=Decimal("1000"),
            invoice_id="INV-004",
        ),
    ]


@pytest.fixture
def memory_store(clients, invoices, deliveries):
    store = InMemoryStore(delivery_tax_rate=Decimal("0.20"))
    store.add_clients(clients)
    store.add_invoices(invoices)
    store.add_deliveries(deliveries)
    return store


@pytest.fixture
def sql_store(tmp_path, clients, invoices, deliveries):
    store = SqlStore(
        database_url=f"sqlite:///{tmp_path / 'recon.db'}",
        delivery_tax_rate=Decimal("0.20"),
    )
    store.add_clients(clients)
    store.add_invoices(invoices)
    store.add_deliveries(deliveries)
    return store


@pytest.fixture(params=["memory", "sql"])
def store(request, memory_store, sql_store):
    return memory_store if request.param == "memory" else sql_store


@pytest.fixture
def service(store, config):
    return ReconciliationService(store, store, config)
