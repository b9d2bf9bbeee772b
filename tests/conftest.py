"""In-memory stand-ins for the PostgreSQL repositories and the PDF renderer."""

from copy import deepcopy
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from models.errors import DocumentNotFound
from models.invoice import Invoice, InvoiceItem, PaymentDetails, calculate_totals
from services.document_service import DocumentService
from services.invoice_service import InvoiceService, new_invoice_id
from services.lifecycle_service import InvoiceLifecycleService

NOW = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)


class FakeInvoiceRepo:
    """Dict-backed InvoiceRepository; returns copies like a real store would."""

    def __init__(self):
        self.rows: dict[str, Invoice] = {}
        self.next_expense_id = 1

    def put(self, invoice):
        self.rows[invoice.id] = deepcopy(invoice)
        return invoice

    def get(self, invoice_id):
        row = self.rows.get(invoice_id)
        return deepcopy(row) if row else None

    def get_by_number(self, invoice_number):
        matches = [r for r in self.rows.values() if r.invoice_number == invoice_number]
        return deepcopy(matches[-1]) if matches else None

    def get_all(self):
        return [deepcopy(r) for r in self.rows.values()]

    def get_due_for_auto_send(self, now):
        due = [r for r in self.rows.values() if r.is_due(now)]
        return [deepcopy(r) for r in sorted(due, key=lambda r: r.next_send_date)]

    def query_where(self, predicate):
        return [inv for inv in self.get_all() if predicate(inv)]

    def delete(self, invoice_id):
        return self.rows.pop(invoice_id, None) is not None

    def add_expense(self, expense):
        expense.id = self.next_expense_id
        self.next_expense_id += 1
        self.rows[expense.invoice_id].expenses.append(deepcopy(expense))
        return expense

    def delete_expense(self, invoice_id, expense_id):
        row = self.rows[invoice_id]
        before = len(row.expenses)
        row.expenses = [e for e in row.expenses if e.id != expense_id]
        return len(row.expenses) < before

    def get_statistics(self):
        rows = list(self.rows.values())
        paid = [r for r in rows if r.paid]
        total_amount = sum(r.amount for r in rows)
        paid_amount = sum(r.amount for r in paid)
        return {
            "total": len(rows),
            "paid": len(paid),
            "unpaid": len(rows) - len(paid),
            "total_amount": total_amount,
            "paid_amount": paid_amount,
            "unpaid_amount": total_amount - paid_amount,
        }


class FakeCounter:
    def __init__(self, start=100):
        self.value = start

    def next_number(self):
        self.value += 1
        return self.value

    def current(self):
        return self.value

    def set(self, value):
        self.value = value

    def reset(self):
        self.value = 0


class FakeDocuments:
    """Records renders instead of writing PDFs; `fail_render` simulates a broken renderer."""

    filename_for = staticmethod(DocumentService.filename_for)

    def __init__(self):
        self.output_dir = Path("/tmp/invoices")
        self.rendered: dict[int, str] = {}
        self.removed: list[str] = []
        self.fail_render = False

    def render(self, invoice, filename=None):
        if self.fail_render:
            raise RuntimeError("renderer crashed")
        filename = filename or self.filename_for(invoice)
        self.rendered[invoice.invoice_number] = filename
        return self.output_dir / filename

    def find_for_invoice_number(self, invoice_number):
        if invoice_number not in self.rendered:
            raise DocumentNotFound(invoice_number)
        return self.output_dir / self.rendered[invoice_number]

    def remove(self, filename):
        if filename:
            self.removed.append(filename)


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now += timedelta(**delta)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def repo():
    return FakeInvoiceRepo()


@pytest.fixture
def documents():
    return FakeDocuments()


@pytest.fixture
def invoice_service(repo, documents, clock):
    return InvoiceService(repo=repo, counter=FakeCounter(), documents=documents, clock=clock)


@pytest.fixture
def lifecycle(repo, invoice_service, clock):
    return InvoiceLifecycleService(repo=repo, invoices=invoice_service, clock=clock)


@pytest.fixture
def make_invoice(repo, documents):
    """Store an invoice directly (bypassing validation) and register its document."""
    counter = iter(range(1, 1000))

    def _make(**fields):
        items = fields.pop("items", [InvoiceItem("Cleaning", 1, 15000, "month")])
        number = fields.pop("invoice_number", next(counter))
        invoice = Invoice(
            id=new_invoice_id(),
            invoice_number=number,
            client=fields.pop("client", f"Client {number}"),
            client_phone=fields.pop("client_phone", f"7900000000{number % 10}"),
            items=items,
            amount=calculate_totals(items, fields.get("discount")).total,
            payment=fields.pop("payment", PaymentDetails(card_number="2202 2000 1111 2222")),
            created_at=NOW,
            **fields,
        )
        repo.put(invoice)
        documents.rendered[invoice.invoice_number] = f"Invoice_{invoice.invoice_number}_x.pdf"
        return invoice

    return _make
