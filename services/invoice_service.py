"""
services/invoice_service.py
----------------------------
Invoice workflow: issuing, editing, copying and deleting invoices,
plus the expenses attached to them and summary statistics.
"""

import uuid
from datetime import datetime
from typing import Optional

from models.errors import NotFound, ValidationError
from models.invoice import (
    Discount,
    Invoice,
    InvoiceExpense,
    InvoiceItem,
    PaymentDetails,
    calculate_totals,
)
from repositories.counter_repo import InvoiceCounterRepository
from repositories.invoice_repo import InvoiceRepository
from services.document_service import DocumentService
from utils.dates import utcnow
from utils.logger import get_logger
from utils.phone import normalize_phone

logger = get_logger(__name__)

EXPENSE_CATEGORIES = [
    "Materials",
    "Labour",
    "Transport",
    "Delivery",
    "Rent",
    "Commission",
    "Other",
]


def new_invoice_id() -> str:
    return uuid.uuid4().hex


class InvoiceService:
    """
    Handles all business logic for issuing and maintaining invoices.

    Responsibilities:
        - Validate operator input and compute the stored total once.
        - Allocate invoice numbers and render documents.
        - Track expenses and report statistics.
    """

    def __init__(
        self,
        repo: InvoiceRepository | None = None,
        counter: InvoiceCounterRepository | None = None,
        documents: DocumentService | None = None,
        clock=utcnow,
    ):
        self.repo = repo or InvoiceRepository()
        self.counter = counter or InvoiceCounterRepository()
        self.documents = documents or DocumentService()
        self.clock = clock

    # ── LOOKUP ────────────────────────────────────────────

    def get(self, invoice_id: str) -> Invoice:
        """Fetch an invoice or raise NotFound."""
        invoice = self.repo.get(invoice_id)
        if invoice is None:
            raise NotFound(invoice_id)
        return invoice

    def get_by_number(self, invoice_number: int) -> Invoice:
        """Fetch the latest invoice with this number or raise NotFound."""
        invoice = self.repo.get_by_number(invoice_number)
        if invoice is None:
            raise NotFound(f"#{invoice_number}")
        return invoice

    def list_invoices(self, paid: Optional[bool] = None) -> list[Invoice]:
        """All invoices, or only paid / unpaid ones."""
        if paid is None:
            return self.repo.get_all()
        return self.repo.query_where(lambda inv: inv.paid == paid)

    def statistics(self) -> dict:
        return self.repo.get_statistics()

    # ── CREATE / UPDATE ───────────────────────────────────

    def create_invoice(
        self,
        client: str,
        items: list[InvoiceItem],
        payment: PaymentDetails,
        discount: Optional[Discount] = None,
        client_phone: str = "",
        invoice_number: Optional[int] = None,
        is_recurring: bool = False,
        auto_send_enabled: bool = False,
        next_send_date: Optional[datetime] = None,
    ) -> Invoice:
        """
        Issue a new invoice: validate, number, price, render and store it.

        Args:
            client: Client name.
            items: At least one line item.
            payment: Card and/or SBP details printed on the document.
            discount: Optional percent/fixed discount.
            client_phone: Recipient for auto-send; stored normalised.
            invoice_number: Explicit number; allocated from the counter when omitted.
            is_recurring: Marks a monthly invoice.
            auto_send_enabled / next_send_date: Arm auto-send right away.

        Raises:
            ValidationError: On missing client, items or payment details.
        """
        self._validate(client, items, payment)
        number = invoice_number if invoice_number is not None else self.counter.next_number()
        now = self.clock()
        invoice = Invoice(
            id=new_invoice_id(),
            invoice_number=number,
            client=client.strip(),
            client_phone=normalize_phone(client_phone),
            items=items,
            discount=discount,
            payment=payment,
            amount=calculate_totals(items, discount).total,
            is_recurring=is_recurring,
            auto_send_enabled=auto_send_enabled,
            next_send_date=next_send_date,
            created_at=now,
        )
        return self._render_and_store(invoice)

    def update_invoice(
        self,
        invoice_id: str,
        client: str,
        items: list[InvoiceItem],
        payment: PaymentDetails,
        discount: Optional[Discount] = None,
        client_phone: str = "",
        invoice_number: Optional[int] = None,
        is_recurring: bool = False,
    ) -> Invoice:
        """
        Replace an invoice's content, recompute its amount and re-render
        the document. Payment and auto-send state are left untouched.
        """
        invoice = self.get(invoice_id)
        self._validate(client, items, payment)
        old_filename = invoice.filename

        if invoice_number is not None:
            invoice.invoice_number = invoice_number
        invoice.client = client.strip()
        invoice.client_phone = normalize_phone(client_phone)
        invoice.items = items
        invoice.discount = discount
        invoice.payment = payment
        invoice.is_recurring = is_recurring
        invoice.amount = calculate_totals(items, discount).total
        invoice.updated_at = self.clock()

        # The old PDF stays until the new one is rendered and recorded
        invoice = self._render_and_store(invoice)
        if old_filename and old_filename != invoice.filename:
            self.documents.remove(old_filename)
        return invoice

    def copy_invoice(
        self,
        source: Invoice,
        auto_send_enabled: bool = False,
        next_send_date: Optional[datetime] = None,
    ) -> Invoice:
        """
        Issue a new invoice with the same content as `source` and a fresh number.
        The amount is recomputed from the copied items and discount.
        """
        invoice = source.copy(
            id=new_invoice_id(),
            invoice_number=self.counter.next_number(),
            amount=calculate_totals(source.items, source.discount).total,
            filename=None,
            paid=False,
            paid_at=None,
            auto_send_enabled=auto_send_enabled,
            next_send_date=next_send_date,
            last_sent_at=None,
            expenses=[],
            created_at=self.clock(),
            updated_at=None,
        )
        return self._render_and_store(invoice)

    def duplicate_invoice(self, invoice_id: str) -> Invoice:
        """Manual duplicate: same content, new number, auto-send off."""
        source = self.get(invoice_id)
        copy = self.copy_invoice(source)
        logger.info(f"Duplicated invoice #{source.invoice_number} as #{copy.invoice_number}")
        return copy

    def delete_invoice(self, invoice_id: str) -> Invoice:
        """Delete an invoice record and its document."""
        invoice = self.get(invoice_id)
        self.repo.delete(invoice_id)
        self.documents.remove(invoice.filename)
        return invoice

    # ── EXPENSES ──────────────────────────────────────────

    def add_expense(
        self,
        invoice_id: str,
        amount: float,
        category: str = "Other",
        description: str = "",
        date: Optional[datetime] = None,
    ) -> InvoiceExpense:
        """Attach an expense to an invoice."""
        self.get(invoice_id)
        if amount <= 0:
            raise ValidationError("Expense amount must be positive")
        expense = InvoiceExpense(
            invoice_id=invoice_id,
            amount=amount,
            category=category or "Other",
            description=description,
            date=date,
        )
        return self.repo.add_expense(expense)

    def delete_expense(self, invoice_id: str, expense_id: int) -> bool:
        self.get(invoice_id)
        return self.repo.delete_expense(invoice_id, expense_id)

    def total_expenses(self, invoice_id: str) -> float:
        return self.get(invoice_id).total_expenses

    def profitability(self, invoice_id: str) -> dict:
        """Revenue, costs and margin for one invoice."""
        invoice = self.get(invoice_id)
        costs = invoice.total_expenses
        margin = (invoice.profit / invoice.amount * 100) if invoice.amount else 0.0
        return {
            "invoice_number": invoice.invoice_number,
            "amount": invoice.amount,
            "expenses": costs,
            "profit": invoice.profit,
            "margin_percent": round(margin, 2),
        }

    # ── NUMBERING ─────────────────────────────────────────

    def current_number(self) -> int:
        return self.counter.current()

    def set_counter(self, value: int) -> None:
        """Continue numbering after `value`. Zero restarts from 1."""
        if value < 0:
            raise ValidationError("Counter value cannot be negative")
        if value == 0:
            self.counter.reset()
        else:
            self.counter.set(value)
        logger.info(f"Invoice numbering continues from {value + 1}")

    # ── HELPERS ───────────────────────────────────────────

    def _render_and_store(self, invoice: Invoice) -> Invoice:
        invoice.filename = self.documents.filename_for(invoice, invoice.created_at.date())
        self.documents.render(invoice, invoice.filename)
        self.repo.put(invoice)
        logger.info(f"Stored invoice #{invoice.invoice_number} for {invoice.client} ({invoice.amount:,.2f})")
        return invoice

    @staticmethod
    def _validate(client: str, items: list[InvoiceItem], payment: PaymentDetails) -> None:
        if not client or not client.strip():
            raise ValidationError("Client name is required")
        if not items:
            raise ValidationError("An invoice needs at least one item")
        if any(i.quantity <= 0 for i in items):
            raise ValidationError("Item quantities must be positive")
        if payment is None or payment.is_empty():
            raise ValidationError("Payment details (card or SBP phone) are required")
