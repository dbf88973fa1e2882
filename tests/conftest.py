from datetime import date
from decimal import Decimal

import pytest

from goyna.archive import ArchiveStore
from goyna.builder import InvoiceBuilder
from goyna.models import InvoiceRecord, LineItem
from goyna.storage import LocalStorage

NOW_MS = 1_700_000_123_456


@pytest.fixture
def storage(tmp_path):
    """LocalStorage backed by a throwaway file"""
    return LocalStorage(tmp_path / "local_storage.json")


@pytest.fixture
def archive(storage):
    return ArchiveStore(storage)


@pytest.fixture
def builder(archive):
    """InvoiceBuilder with a frozen clock and calendar"""
    return InvoiceBuilder(archive, clock=lambda: NOW_MS, today=lambda: date(2024, 3, 15))


def make_record(number="INV-0001", name="Rupa Akter", items=None, **kwargs) -> InvoiceRecord:
    if items is None:
        items = [LineItem(description="Gold-plated bangle", quantity=2, price=Decimal("25.00"))]
    return InvoiceRecord(invoice_number=number, date="2024-03-15", customer_name=name, items=items, **kwargs)


@pytest.fixture
def sample_record():
    return make_record()


@pytest.fixture
def failing_writes(monkeypatch):
    """Make every LocalStorage write fail the way a read-only disk would"""
    from goyna.storage import StorageError

    def _boom(self, data):
        raise StorageError("disk is read-only")

    monkeypatch.setattr(LocalStorage, "_write", _boom)
