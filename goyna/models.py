"""
Invoice data model.

InvoiceRecord / LineItem are plain dataclasses edited in place by the builder.
to_dict()/from_dict() use the camelCase layout stored under the "invoices" key,
so archives written by earlier versions of the app load unchanged.
"""

import copy
import math
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, NamedTuple


# Stored numbers above these bounds cannot come from the form and would overflow
# the 0.01 quantize in compute_totals.
MAX_AMOUNT = Decimal("1e12")
MAX_QUANTITY = 10 ** 9


def new_item_id() -> str:
    return uuid.uuid4().hex[:21]


def _stored_amount(value, name: str) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise TypeError(f"{name} must be a number")
    try:
        v = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"{name} is not a number: {value!r}") from e
    if not v.is_finite() or abs(v) >= MAX_AMOUNT:
        raise ValueError(f"{name} out of range: {value!r}")
    return v


def _stored_quantity(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise TypeError("quantity must be a number")
    try:
        q = float(value)
    except OverflowError as e:
        raise ValueError(f"quantity out of range: {value!r}") from e
    if not math.isfinite(q) or abs(q) >= MAX_QUANTITY:
        raise ValueError(f"quantity out of range: {value!r}")
    return int(q)


class DiscountType(str, Enum):
    NONE = "none"
    PERCENTAGE = "percentage"
    FIXED = "fixed"

    @classmethod
    def parse(cls, value) -> "DiscountType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "none").strip().lower())
        except ValueError:
            return cls.NONE


@dataclass
class LineItem:
    id: str = field(default_factory=new_item_id)
    description: str = ""
    quantity: int = 1
    price: Decimal = Decimal("0")

    @property
    def amount(self) -> Decimal:
        return Decimal(self.quantity) * self.price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "quantity": self.quantity,
            "price": float(self.price),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LineItem":
        if not isinstance(d, dict):
            raise TypeError(f"line item must be an object, got {type(d).__name__}")
        return cls(
            id=str(d.get("id") or new_item_id()),
            description=str(d.get("description", "")),
            quantity=_stored_quantity(d.get("quantity", 1)),
            price=_stored_amount(d.get("price", 0), "price"),
        )


@dataclass
class InvoiceRecord:
    invoice_number: str = ""
    date: str = field(default_factory=lambda: date.today().isoformat())
    customer_name: str = ""
    customer_address: str = ""
    customer_phone: str = ""
    items: List[LineItem] = field(default_factory=lambda: [LineItem()])
    discount_type: DiscountType = DiscountType.NONE
    discount_value: Decimal = Decimal("0")
    notes: str = ""

    def snapshot(self) -> "InvoiceRecord":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invoiceNumber": self.invoice_number,
            "date": self.date,
            "customerName": self.customer_name,
            "customerAddress": self.customer_address,
            "customerPhone": self.customer_phone,
            "items": [it.to_dict() for it in self.items],
            "discountType": self.discount_type.value,
            "discountValue": float(self.discount_value),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "InvoiceRecord":
        if not isinstance(d, dict):
            raise TypeError(f"invoice must be an object, got {type(d).__name__}")
        items = d.get("items") or []
        if not isinstance(items, list):
            raise TypeError("items must be a list")
        return cls(
            invoice_number=str(d["invoiceNumber"]),
            date=str(d.get("date") or date.today().isoformat()),
            customer_name=str(d.get("customerName") or ""),
            customer_address=str(d.get("customerAddress") or ""),
            customer_phone=str(d.get("customerPhone") or ""),
            items=[LineItem.from_dict(it) for it in items],
            discount_type=DiscountType.parse(d.get("discountType")),
            discount_value=_stored_amount(d.get("discountValue", 0), "discountValue"),
            notes=str(d.get("notes") or ""),
        )


class Totals(NamedTuple):
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
