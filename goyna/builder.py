import logging
import re
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, List, Optional, Sequence

from .archive import ArchiveStore
from .models import DiscountType, InvoiceRecord, LineItem, Totals
from .utils import DEC_QUANT, d2, now_ms, to_decimal

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV-"
TRAILING_DIGITS = re.compile(r"(\d+)$")
HUNDRED = Decimal("100")


def next_invoice_number(history: Sequence[InvoiceRecord], now: Optional[int] = None) -> str:
    """
    Number after the most recently saved invoice (by position, not by value):
    'INV-0007' -> 'INV-0008'. Empty or unparsable history falls back to the last
    six digits of the current epoch-ms. Not unique: out-of-order saves can collide.
    """
    if history:
        m = TRAILING_DIGITS.search(history[-1].invoice_number or "")
        if m:
            return f"{INVOICE_PREFIX}{int(m.group(1)) + 1:04d}"
    stamp = str(now_ms() if now is None else now)[-6:]
    return f"{INVOICE_PREFIX}{stamp}"


def clamp_discount(discount_type: DiscountType, value) -> Decimal:
    v = max(Decimal("0"), to_decimal(value))
    if discount_type == DiscountType.PERCENTAGE:
        return min(v, HUNDRED)
    return v


def compute_totals(record: InvoiceRecord) -> Totals:
    subtotal = Decimal("0.00")
    for it in record.items:
        subtotal += (Decimal(it.quantity) * to_decimal(it.price)).quantize(DEC_QUANT, rounding=ROUND_HALF_UP)
    subtotal = max(Decimal("0.00"), subtotal)

    value = clamp_discount(record.discount_type, record.discount_value)
    if record.discount_type == DiscountType.PERCENTAGE and value > 0:
        discount = d2(subtotal * value / HUNDRED)
    elif record.discount_type == DiscountType.FIXED and value > 0:
        discount = d2(min(subtotal, value))
    else:
        discount = Decimal("0.00")
    discount = min(discount, subtotal)
    return Totals(d2(subtotal), discount, d2(subtotal - discount))


def validate(record: InvoiceRecord) -> bool:
    try:
        if not (record.customer_name or "").strip():
            return False
        if not record.items:
            return False
        return all(
            (it.description or "").strip() and int(it.quantity) > 0 and to_decimal(it.price) > 0
            for it in record.items
        )
    except (TypeError, ValueError, AttributeError):
        return False


class InvoiceBuilder:
    """Holds the one invoice being edited; save() archives it and starts a new one."""

    def __init__(self, archive: ArchiveStore,
                 clock: Callable[[], int] = now_ms,
                 today: Callable[[], date] = date.today) -> None:
        self.archive = archive
        self.clock = clock
        self.today = today
        self.record = self.new_record()

    def new_record(self, history: Optional[List[InvoiceRecord]] = None) -> InvoiceRecord:
        if history is None:
            history = self.archive.list()
        return InvoiceRecord(
            invoice_number=next_invoice_number(history, self.clock()),
            date=self.today().isoformat(),
        )

    def reset(self) -> InvoiceRecord:
        self.record = self.new_record()
        return self.record

    # -------- items --------

    def add_item(self) -> LineItem:
        item = LineItem()
        self.record.items.append(item)
        return item

    def update_item(self, item_id: str, **fields) -> None:
        for it in self.record.items:
            if it.id != item_id:
                continue
            if "description" in fields:
                it.description = str(fields["description"])
            if "quantity" in fields:
                try:
                    it.quantity = int(fields["quantity"] or 0)
                except (TypeError, ValueError):
                    it.quantity = 0
            if "price" in fields:
                it.price = max(Decimal("0"), to_decimal(fields["price"]))
            return
        raise KeyError(item_id)

    def remove_item(self, item_id: str) -> bool:
        if len(self.record.items) <= 1:
            return False
        before = len(self.record.items)
        self.record.items = [it for it in self.record.items if it.id != item_id]
        return len(self.record.items) < before

    # -------- discount --------

    def set_discount_type(self, discount_type) -> None:
        t = DiscountType.parse(discount_type)
        self.record.discount_type = t
        if t == DiscountType.NONE:
            self.record.discount_value = Decimal("0")
        else:
            self.record.discount_value = clamp_discount(t, self.record.discount_value)

    def set_discount_value(self, value) -> Decimal:
        self.record.discount_value = clamp_discount(self.record.discount_type, value)
        return self.record.discount_value

    # -------- lifecycle --------

    def totals(self) -> Totals:
        return compute_totals(self.record)

    def is_valid(self) -> bool:
        return validate(self.record)

    def load(self, record: InvoiceRecord) -> None:
        self.record = record.snapshot()

    def save(self) -> InvoiceRecord:
        """Archive a snapshot of the current record, then start a fresh one.

        StorageError from the archive propagates and leaves the record as it was.
        """
        saved = self.record.snapshot()
        self.archive.append(saved)
        self.reset()
        return saved
