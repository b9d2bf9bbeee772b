"""
services/export_service.py
---------------------------
Generates CSV and Excel exports of the invoice register.
"""

import io

import pandas as pd

from models.invoice import Invoice
from repositories.invoice_repo import InvoiceRepository
from utils.logger import get_logger

logger = get_logger(__name__)


def _fmt(moment) -> str:
    return moment.strftime("%Y-%m-%d %H:%M") if moment else ""


class ExportService:
    """Generates downloadable invoice registers in CSV and Excel formats."""

    def __init__(self, repo: InvoiceRepository | None = None):
        self.repo = repo or InvoiceRepository()

    @staticmethod
    def _rows(invoices: list[Invoice]) -> list[dict]:
        return [
            {
                "Number": inv.invoice_number,
                "Client": inv.client,
                "Phone": inv.client_phone,
                "Created": _fmt(inv.created_at),
                "Amount": inv.amount,
                "Paid": "yes" if inv.paid else "no",
                "Paid at": _fmt(inv.paid_at),
                "Auto-send": "on" if inv.auto_send_enabled else "off",
                "Next send": _fmt(inv.next_send_date),
                "Last sent": _fmt(inv.last_sent_at),
                "Expenses": inv.total_expenses,
                "Profit": inv.profit,
            }
            for inv in invoices
        ]

    def export_csv(self) -> io.BytesIO:
        """
        Export every invoice as a CSV file.

        Returns:
            A BytesIO buffer containing the CSV data.
        """
        data = self._rows(self.repo.get_all())
        df = pd.DataFrame(data)
        buffer = io.BytesIO()
        df.to_csv(buffer, index=False, encoding="utf-8-sig")
        buffer.seek(0)
        logger.info(f"Exported {len(data)} invoices as CSV")
        return buffer

    def export_excel(self) -> io.BytesIO:
        """
        Export every invoice as an Excel (.xlsx) workbook with an
        "Invoices" sheet, an "Expenses" sheet and a per-client summary.

        Returns:
            A BytesIO buffer containing the Excel data.
        """
        invoices = self.repo.get_all()
        data = self._rows(invoices)
        df = pd.DataFrame(data)

        expenses = pd.DataFrame([
            {
                "Invoice": inv.invoice_number,
                "Date": _fmt(e.date),
                "Category": e.category,
                "Description": e.description,
                "Amount": e.amount,
            }
            for inv in invoices
            for e in inv.expenses
        ])

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="Invoices", index=False)
            if not expenses.empty:
                expenses.to_excel(writer, sheet_name="Expenses", index=False)
            if data:
                summary = df.groupby("Client")[["Amount", "Expenses", "Profit"]].sum().reset_index()
                summary.to_excel(writer, sheet_name="By client", index=False)

        buffer.seek(0)
        logger.info(f"Exported {len(data)} invoices as Excel")
        return buffer
