"""
models/invoice.py
-----------------
Domain models for invoices: line items, discount, payment details,
attached expenses, and the invoice itself.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

DISCOUNT_PERCENT = "percent"
DISCOUNT_FIXED = "fixed"


@dataclass
class InvoiceItem:
    """
    A single line of an invoice.

    Attributes:
        name: Goods or service name.
        unit: Unit of measure (pcs, h, month...).
        quantity: Quantity billed.
        price: Unit price.
    """
    name: str
    quantity: float
    price: float
    unit: str = "pcs"

    @property
    def amount(self) -> float:
        """Line amount = quantity × price."""
        return self.quantity * self.price

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "unit": self.unit,
            "quantity": self.quantity,
            "price": self.price,
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InvoiceItem":
        return cls(
            name=data["name"],
            unit=data.get("unit") or "pcs",
            quantity=float(data["quantity"]),
            price=float(data["price"]),
        )


@dataclass
class Discount:
    """
    Whole-invoice discount: either a percentage of the subtotal or a
    fixed amount, never both.
    """
    type: str  # 'percent' | 'fixed'
    value: float
    description: Optional[str] = None

    def __post_init__(self):
        if self.type not in (DISCOUNT_PERCENT, DISCOUNT_FIXED):
            raise ValueError(f"Unknown discount type: {self.type!r}")
        if self.type == DISCOUNT_PERCENT and not 0 <= self.value <= 100:
            raise ValueError("Percent discount must be between 0 and 100")

    def amount_for(self, subtotal: float) -> float:
        """Money taken off the given pre-discount subtotal."""
        if self.type == DISCOUNT_PERCENT:
            return subtotal * self.value / 100
        return self.value

    def __str__(self) -> str:
        if self.type == DISCOUNT_PERCENT:
            return f"{self.value:g}%"
        return f"{self.value:,.2f}"

    def to_dict(self) -> dict:
        return {"type": self.type, "value": self.value, "description": self.description}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["Discount"]:
        if not data or not data.get("type") or not data.get("value"):
            return None
        return cls(type=data["type"], value=float(data["value"]), description=data.get("description"))


@dataclass
class PaymentDetails:
    """Where the client pays: a card number and/or an SBP phone + bank."""
    card_number: str = ""
    sbp_phone: str = ""
    sbp_bank: str = ""

    def to_dict(self) -> dict:
        return {"card_number": self.card_number, "sbp_phone": self.sbp_phone, "sbp_bank": self.sbp_bank}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "PaymentDetails":
        data = data or {}
        return cls(
            card_number=data.get("card_number", ""),
            sbp_phone=data.get("sbp_phone", ""),
            sbp_bank=data.get("sbp_bank", ""),
        )

    def is_empty(self) -> bool:
        return not (self.card_number or self.sbp_phone)


@dataclass
class InvoiceExpense:
    """
    A cost attached to an invoice, tracked for profitability reporting.
    The lifecycle engine never touches these.
    """
    amount: float
    category: str = "Other"
    description: str = ""
    date: Optional[datetime] = None
    id: Optional[int] = None
    invoice_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class InvoiceTotals:
    subtotal: float
    discount: float
    total: float


def calculate_totals(items: list[InvoiceItem], discount: Optional[Discount] = None) -> InvoiceTotals:
    """
    Compute subtotal, discount effect and post-discount total.

    No clamping: an oversized fixed discount yields a negative total.
    """
    subtotal = sum(item.amount for item in items)
    discount_amount = discount.amount_for(subtotal) if discount else 0.0
    return InvoiceTotals(subtotal=subtotal, discount=discount_amount, total=subtotal - discount_amount)


@dataclass
class Invoice:
    """
    The central entity of the back-office.

    Attributes:
        id: Opaque unique identifier (uuid hex), immutable.
        invoice_number: Human-facing number, used to locate the document.
        client: Client (company or person) name.
        client_phone: Recipient phone for auto-send, may be empty.
        items: Ordered line items.
        discount: Optional percent/fixed discount.
        payment: Payment details printed on the document.
        amount: Stored post-discount total, computed at create/update time.
        filename: Name of the rendered PDF document.
        is_recurring: Marked by the operator as a monthly invoice.
        paid / paid_at: Payment status; paid is True iff paid_at is set.
        auto_send_enabled: Gates recurring dispatch.
        next_send_date: Due date of the next recurring send.
        last_sent_at: Last successful recurring dispatch.
        expenses: Costs attached to the invoice.
    """
    id: str
    invoice_number: int
    client: str
    items: list[InvoiceItem]
    amount: float
    client_phone: str = ""
    discount: Optional[Discount] = None
    payment: PaymentDetails = field(default_factory=PaymentDetails)
    filename: Optional[str] = None
    is_recurring: bool = False
    paid: bool = False
    paid_at: Optional[datetime] = None
    auto_send_enabled: bool = False
    next_send_date: Optional[datetime] = None
    last_sent_at: Optional[datetime] = None
    expenses: list[InvoiceExpense] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        """True when armed for auto-send and the next send date has come."""
        return (
            self.auto_send_enabled
            and self.next_send_date is not None
            and self.next_send_date <= now
        )

    @property
    def totals(self) -> InvoiceTotals:
        return calculate_totals(self.items, self.discount)

    @property
    def total_expenses(self) -> float:
        return sum(e.amount for e in self.expenses)

    @property
    def profit(self) -> float:
        return self.amount - self.total_expenses

    def copy(self, **changes) -> "Invoice":
        """Copy with items, expenses, discount and payment detached from the source."""
        changes.setdefault("items", [replace(i) for i in self.items])
        changes.setdefault("expenses", [replace(e) for e in self.expenses])
        changes.setdefault("discount", replace(self.discount) if self.discount else None)
        changes.setdefault("payment", replace(self.payment))
        return replace(self, **changes)

    def __str__(self) -> str:
        status = "✅ paid" if self.paid else "⏳ unpaid"
        auto = " 🔁" if self.auto_send_enabled else ""
        return f"#{self.invoice_number} {self.client}: {self.amount:,.2f} ({status}){auto}"
