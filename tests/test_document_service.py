from datetime import date

import pytest

from models.errors import DocumentNotFound
from models.invoice import Discount, Invoice, InvoiceItem, PaymentDetails
from services.document_service import DocumentService, sanitize_filename


@pytest.fixture
def documents(tmp_path):
    return DocumentService(output_dir=tmp_path)


def make(number=12, client="Acme LLC"):
    items = [InvoiceItem("Paper", 2, 1000, "pack"), InvoiceItem("Toner", 5, 500)]
    return Invoice(
        id="abc",
        invoice_number=number,
        client=client,
        items=items,
        amount=3150,
        discount=Discount("percent", 10),
        payment=PaymentDetails(card_number="2202 2000 1111 2222", sbp_phone="+79123456789", sbp_bank="Sber"),
    )


@pytest.mark.parametrize("raw, expected", [
    ("Acme LLC", "Acme_LLC"),
    ("  O'Brien & Sons / Ltd ", "O_Brien_Sons_Ltd"),
    ("ООО Ромашка", "ООО_Ромашка"),
    ("a" * 80, "a" * 50),
])
def test_sanitize_filename(raw, expected):
    assert sanitize_filename(raw) == expected


def test_filename_for():
    assert DocumentService.filename_for(make(), date(2026, 3, 15)) == "Invoice_12_Acme_LLC_2026-03-15.pdf"


def test_render_writes_pdf(documents):
    path = documents.render(make(), "Invoice_12_Acme_LLC_2026-03-15.pdf")
    assert path.is_file()
    assert path.read_bytes().startswith(b"%PDF")


def test_find_current_and_legacy_names(documents, tmp_path):
    (tmp_path / "Invoice_12_Acme_2026-03-15.pdf").write_bytes(b"%PDF")
    (tmp_path / "invoice_7_globex_2025-01-01.pdf").write_bytes(b"%PDF")
    (tmp_path / "Invoice_123_Other_2026-03-15.pdf").write_bytes(b"%PDF")

    assert documents.find_for_invoice_number(12).name == "Invoice_12_Acme_2026-03-15.pdf"
    assert documents.find_for_invoice_number(7).name == "invoice_7_globex_2025-01-01.pdf"
    assert documents.find_for_invoice_number(123).name.startswith("Invoice_123_")


def test_current_name_wins_over_legacy(documents, tmp_path):
    (tmp_path / "invoice_5_old.pdf").write_bytes(b"%PDF")
    (tmp_path / "Invoice_5_new.pdf").write_bytes(b"%PDF")
    assert documents.find_for_invoice_number(5).name == "Invoice_5_new.pdf"


def test_missing_document(documents, tmp_path):
    (tmp_path / "Invoice_1_x.txt").write_text("not a pdf")
    with pytest.raises(DocumentNotFound, match="#1"):
        documents.find_for_invoice_number(1)


def test_remove(documents, tmp_path):
    target = tmp_path / "Invoice_1_x.pdf"
    target.write_bytes(b"%PDF")
    documents.remove("Invoice_1_x.pdf")
    documents.remove("Invoice_404_x.pdf")
    documents.remove(None)
    assert not target.exists()
