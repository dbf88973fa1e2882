"""
Design (archive.py)
- Purpose: The saved-invoice list, kept as a JSON array under one storage key.
- Inputs: LocalStorage, InvoiceRecord values, invoice numbers for removal.
- Outputs: Records in insertion order.
- Side effects: Every mutation is a read-modify-write of the whole list.
- Errors: Corrupt data reads as an empty archive with an error message for the caller;
          write failures raise StorageError and leave the stored list unchanged.
"""

import json
import logging
from typing import List, NamedTuple, Optional

from .models import InvoiceRecord
from .storage import LocalStorage

logger = logging.getLogger(__name__)

ARCHIVE_KEY = "invoices"


class ArchiveRead(NamedTuple):
    records: List[InvoiceRecord]
    error: Optional[str] = None


class ArchiveStore:
    def __init__(self, storage: LocalStorage, key: str = ARCHIVE_KEY) -> None:
        self.storage = storage
        self.key = key

    def read(self) -> ArchiveRead:
        raw = self.storage.get(self.key)
        if raw is None or raw == "":
            return ArchiveRead([])
        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise TypeError(f"expected a list, got {type(data).__name__}")
            records = [InvoiceRecord.from_dict(d) for d in data]
        except (ValueError, TypeError, KeyError, OverflowError) as e:
            logger.warning("Saved invoices under %r are corrupt, treating as empty: %s", self.key, e)
            return ArchiveRead([], "There was a problem loading your saved invoices.")
        return ArchiveRead(records)

    def list(self) -> List[InvoiceRecord]:
        return self.read().records

    def _write(self, records: List[InvoiceRecord]) -> None:
        self.storage.set(self.key, json.dumps([r.to_dict() for r in records], ensure_ascii=False))

    def append(self, record: InvoiceRecord) -> None:
        records = self.list()
        records.append(record.snapshot())
        self._write(records)
        logger.info("Saved invoice %s (%d in archive)", record.invoice_number, len(records))

    def remove(self, invoice_number: str) -> int:
        records = self.list()
        kept = [r for r in records if r.invoice_number != invoice_number]
        removed = len(records) - len(kept)
        if removed:
            self._write(kept)
            logger.info("Deleted %d invoice(s) numbered %s", removed, invoice_number)
        return removed

    def clear(self) -> None:
        self.storage.remove(self.key)
        logger.info("Cleared all saved invoices")
