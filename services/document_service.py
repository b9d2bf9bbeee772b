"""
services/document_service.py
-----------------------------
Renders invoice PDFs and locates previously rendered ones.
Uses matplotlib's PDF backend to lay out a single A4 page.
"""

import re
from datetime import date
from pathlib import Path

import matplotlib
matplotlib.use("Agg")  # Non-interactive backend for server use
import matplotlib.pyplot as plt

from config import CURRENCY_SYMBOL, INVOICE_OUTPUT_DIR, SELLER_NAME
from models.errors import DocumentNotFound
from models.invoice import Invoice
from utils.logger import get_logger

logger = get_logger(__name__)

_A4_INCHES = (8.27, 11.69)
# Current naming first, then the legacy one
_FILENAME_PATTERNS = (
    re.compile(r"^Invoice_(\d+)_"),
    re.compile(r"^invoice_(\d+)_"),
)


def sanitize_filename(name: str) -> str:
    """Keep letters, digits, dashes; collapse the rest to underscores (max 50 chars)."""
    clean = re.sub(r"[^\w\-]+", "_", name.strip(), flags=re.UNICODE)
    return re.sub(r"_+", "_", clean).strip("_")[:50]


class DocumentService:
    """Produces and finds the PDF document for each invoice number."""

    def __init__(self, output_dir: Path = INVOICE_OUTPUT_DIR):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def filename_for(invoice: Invoice, today: date | None = None) -> str:
        """Invoice_<number>_<client>_<YYYY-MM-DD>.pdf"""
        day = (today or date.today()).isoformat()
        return f"Invoice_{invoice.invoice_number}_{sanitize_filename(invoice.client)}_{day}.pdf"

    def render(self, invoice: Invoice, filename: str | None = None) -> Path:
        """
        Render the invoice to a one-page PDF in the output folder.

        Args:
            invoice: Invoice with items, discount and payment details.
            filename: Target file name; generated when omitted.

        Returns:
            Path of the written PDF.
        """
        filename = filename or self.filename_for(invoice)
        path = self.output_dir / filename
        totals = invoice.totals

        fig = plt.figure(figsize=_A4_INCHES)
        try:
            fig.text(0.08, 0.94, f"Invoice No. {invoice.invoice_number}", fontsize=18, weight="bold")
            fig.text(0.08, 0.91, f"Date: {date.today():%d.%m.%Y}", fontsize=10)
            if SELLER_NAME:
                fig.text(0.08, 0.885, f"Seller: {SELLER_NAME}", fontsize=10)
            fig.text(0.08, 0.86, f"Client: {invoice.client}", fontsize=11)

            rows = [
                [str(n), item.name, item.unit, f"{item.quantity:g}",
                 f"{item.price:,.2f}", f"{item.amount:,.2f}"]
                for n, item in enumerate(invoice.items, start=1)
            ]
            ax = fig.add_axes([0.08, 0.45, 0.84, 0.38])
            ax.axis("off")
            table = ax.table(
                cellText=rows or [["", "", "", "", "", ""]],
                colLabels=["#", "Item", "Unit", "Qty", "Price", "Amount"],
                colWidths=[0.06, 0.42, 0.1, 0.1, 0.16, 0.16],
                loc="upper center",
            )
            table.auto_set_font_size(False)
            table.set_fontsize(9)

            y = 0.40
            fig.text(0.60, y, f"Subtotal: {totals.subtotal:,.2f} {CURRENCY_SYMBOL}", fontsize=10)
            if invoice.discount:
                y -= 0.025
                label = invoice.discount.description or f"Discount {invoice.discount}"
                fig.text(0.60, y, f"{label}: -{totals.discount:,.2f} {CURRENCY_SYMBOL}", fontsize=10)
            y -= 0.03
            fig.text(0.60, y, f"Total: {invoice.amount:,.2f} {CURRENCY_SYMBOL}", fontsize=12, weight="bold")

            payment_lines = []
            if invoice.payment.card_number:
                payment_lines.append(f"Card: {invoice.payment.card_number}")
            if invoice.payment.sbp_phone:
                bank = f" ({invoice.payment.sbp_bank})" if invoice.payment.sbp_bank else ""
                payment_lines.append(f"SBP: {invoice.payment.sbp_phone}{bank}")
            if payment_lines:
                fig.text(0.08, 0.25, "Payment details", fontsize=11, weight="bold")
                fig.text(0.08, 0.22, "\n".join(payment_lines), fontsize=10, va="top")

            fig.savefig(path, format="pdf")
        finally:
            plt.close(fig)

        logger.info(f"Rendered invoice #{invoice.invoice_number} -> {path.name}")
        return path

    def find_for_invoice_number(self, invoice_number: int) -> Path:
        """
        Locate the rendered PDF for an invoice number.

        Raises:
            DocumentNotFound: If no matching file is in the output folder.
        """
        wanted = str(invoice_number)
        for pattern in _FILENAME_PATTERNS:
            for path in sorted(self.output_dir.glob("*.pdf")):
                match = pattern.match(path.name)
                if match and match.group(1) == wanted:
                    return path
        raise DocumentNotFound(invoice_number)

    def remove(self, filename: str | None) -> None:
        """Delete a rendered document if it exists."""
        if not filename:
            return
        path = self.output_dir / filename
        if path.exists():
            path.unlink()
            logger.info(f"Removed document {filename}")
