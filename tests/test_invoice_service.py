from datetime import timedelta

import pytest

from models.errors import NotFound, ValidationError
from models.invoice import Discount, InvoiceItem, PaymentDetails

CARD = PaymentDetails(card_number="2202 2000 1111 2222")


def test_create_allocates_number_and_stores_total(invoice_service, repo, documents, clock):
    invoice = invoice_service.create_invoice(
        client="  Acme LLC ",
        items=[InvoiceItem("Paper", 2, 1000), InvoiceItem("Toner", 5, 500)],
        payment=CARD,
        discount=Discount("fixed", 1000),
        client_phone="8 912 345 67 89",
    )

    assert invoice.invoice_number == 101
    assert invoice.client == "Acme LLC"
    assert invoice.client_phone == "79123456789"
    assert invoice.amount == 3500
    assert invoice.filename == "Invoice_101_Acme_LLC_2026-03-15.pdf"
    assert documents.rendered[101] == invoice.filename
    assert repo.get(invoice.id).amount == 3500
    assert invoice.created_at == clock.now


def test_create_with_explicit_number_skips_counter(invoice_service):
    first = invoice_service.create_invoice("A", [InvoiceItem("x", 1, 10)], CARD, invoice_number=7)
    second = invoice_service.create_invoice("B", [InvoiceItem("x", 1, 10)], CARD)
    assert first.invoice_number == 7
    assert second.invoice_number == 101


@pytest.mark.parametrize("client, items, payment", [
    ("", [InvoiceItem("x", 1, 10)], CARD),
    ("Acme", [], CARD),
    ("Acme", [InvoiceItem("x", 0, 10)], CARD),
    ("Acme", [InvoiceItem("x", 1, 10)], PaymentDetails()),
])
def test_create_rejects_incomplete_input(invoice_service, repo, client, items, payment):
    with pytest.raises(ValidationError):
        invoice_service.create_invoice(client, items, payment)
    assert repo.rows == {}


def test_update_recomputes_amount_and_replaces_document(invoice_service, documents, clock):
    invoice = invoice_service.create_invoice("Acme", [InvoiceItem("x", 1, 100)], CARD)
    old_filename = invoice.filename
    invoice_service.repo.rows[invoice.id].paid = True
    invoice_service.repo.rows[invoice.id].paid_at = clock.now

    updated = invoice_service.update_invoice(
        invoice.id, "Globex", [InvoiceItem("y", 3, 100)], CARD, discount=Discount("percent", 50),
    )

    assert updated.amount == 150
    assert updated.client == "Globex"
    assert updated.paid
    assert old_filename in documents.removed
    assert updated.filename.startswith("Invoice_101_Globex_")


def test_duplicate_has_new_number_and_auto_send_off(invoice_service, make_invoice, clock):
    source = make_invoice(auto_send_enabled=True, next_send_date=clock.now + timedelta(days=3))

    copy = invoice_service.duplicate_invoice(source.id)

    assert copy.id != source.id
    assert copy.invoice_number == 101
    assert copy.client == source.client
    assert copy.amount == source.amount
    assert not copy.auto_send_enabled and copy.next_send_date is None
    assert not copy.paid


def test_copy_does_not_share_items_with_source(invoice_service, make_invoice):
    source = make_invoice()
    copy = invoice_service.copy_invoice(source)
    copy.items[0].name = "changed"
    assert source.items[0].name == "Cleaning"


def test_delete_removes_record_and_document(invoice_service, repo, documents):
    invoice = invoice_service.create_invoice("Acme", [InvoiceItem("x", 1, 10)], CARD)

    invoice_service.delete_invoice(invoice.id)

    assert repo.get(invoice.id) is None
    assert documents.removed == [invoice.filename]
    with pytest.raises(NotFound):
        invoice_service.delete_invoice(invoice.id)


def test_get_by_number_returns_latest(invoice_service, make_invoice):
    make_invoice(invoice_number=5, client="Old")
    make_invoice(invoice_number=5, client="New")
    assert invoice_service.get_by_number(5).client == "New"
    with pytest.raises(NotFound):
        invoice_service.get_by_number(404)


# ── expenses ─────────────────────────────────────────────

def test_expenses_and_profitability(invoice_service, make_invoice):
    invoice = make_invoice()
    invoice_service.add_expense(invoice.id, 3000, "Materials", "mops")
    second = invoice_service.add_expense(invoice.id, 1500, "", "fuel")

    report = invoice_service.profitability(invoice.id)

    assert second.category == "Other"
    assert report["expenses"] == 4500
    assert report["profit"] == 10500
    assert report["margin_percent"] == 70.0

    assert invoice_service.delete_expense(invoice.id, second.id)
    assert invoice_service.profitability(invoice.id)["expenses"] == 3000


def test_expense_must_be_positive(invoice_service, make_invoice):
    invoice = make_invoice()
    with pytest.raises(ValidationError):
        invoice_service.add_expense(invoice.id, 0)


def test_expense_on_unknown_invoice(invoice_service):
    with pytest.raises(NotFound):
        invoice_service.add_expense("missing", 100)


def test_statistics(invoice_service, make_invoice, lifecycle):
    paid = make_invoice()
    make_invoice(items=[InvoiceItem("x", 1, 5000)])
    lifecycle.mark_paid(paid.id)

    stats = invoice_service.statistics()

    assert stats["total"] == 2
    assert stats["paid"] == 1
    assert stats["paid_amount"] == 15000
    assert stats["unpaid_amount"] == 5000


def test_list_invoices_filters_by_payment(invoice_service, make_invoice, lifecycle):
    paid = make_invoice()
    open_ = make_invoice()
    lifecycle.mark_paid(paid.id)

    assert [i.id for i in invoice_service.list_invoices(paid=True)] == [paid.id]
    assert [i.id for i in invoice_service.list_invoices(paid=False)] == [open_.id]
    assert len(invoice_service.list_invoices()) == 2


def test_total_expenses(invoice_service, make_invoice):
    invoice = make_invoice()
    assert invoice_service.total_expenses(invoice.id) == 0
    invoice_service.add_expense(invoice.id, 250.5)
    assert invoice_service.total_expenses(invoice.id) == 250.5


# ── numbering ────────────────────────────────────────────

def test_set_counter_and_reset(invoice_service):
    invoice_service.set_counter(499)
    assert invoice_service.create_invoice("A", [InvoiceItem("x", 1, 1)], CARD).invoice_number == 500
    assert invoice_service.current_number() == 500

    invoice_service.set_counter(0)
    assert invoice_service.create_invoice("B", [InvoiceItem("x", 1, 1)], CARD).invoice_number == 1

    with pytest.raises(ValidationError):
        invoice_service.set_counter(-1)


def test_failed_rerender_keeps_old_document(invoice_service, documents, repo):
    invoice = invoice_service.create_invoice("Acme", [InvoiceItem("x", 1, 100)], CARD)
    documents.fail_render = True

    with pytest.raises(RuntimeError):
        invoice_service.update_invoice(invoice.id, "Globex", [InvoiceItem("y", 1, 100)], CARD)

    assert documents.removed == []
    assert repo.get(invoice.id).filename == invoice.filename
    assert repo.get(invoice.id).client == "Acme"


def test_rerender_under_same_name_keeps_file(invoice_service, documents):
    invoice = invoice_service.create_invoice("Acme", [InvoiceItem("x", 1, 100)], CARD)

    updated = invoice_service.update_invoice(invoice.id, "Acme", [InvoiceItem("x", 2, 100)], CARD)

    assert updated.filename == invoice.filename
    assert documents.removed == []


def test_copy_resets_payment_and_delivery_state(invoice_service, make_invoice, clock):
    source = make_invoice(
        discount=Discount("percent", 10), paid=True, paid_at=clock.now,
        last_sent_at=clock.now, filename="Invoice_1_x.pdf",
    )

    copy = invoice_service.copy_invoice(source)

    assert not copy.paid and copy.paid_at is None
    assert copy.last_sent_at is None and copy.expenses == []
    assert copy.filename.startswith("Invoice_101_")
    assert copy.discount == source.discount and copy.discount is not source.discount
    assert copy.payment is not source.payment
    assert copy.amount == 13500
