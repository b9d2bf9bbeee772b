"""
repositories/invoice_repo.py
-----------------------------
Data access layer for invoices and their expenses.
All SQL queries related to the `invoices` and `invoice_expenses` tables live here.
"""

from collections import defaultdict
from datetime import datetime
from typing import Callable, Optional

from psycopg2.extras import Json

from db.connection import get_connection, release_connection
from models.invoice import Discount, Invoice, InvoiceExpense, InvoiceItem, PaymentDetails
from utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = (
    "id, invoice_number, client, client_phone, items, discount, payment, amount, "
    "filename, is_recurring, paid, paid_at, auto_send_enabled, next_send_date, "
    "last_sent_at, created_at, updated_at"
)

_EXPENSE_COLUMNS = "id, invoice_id, amount, category, description, date, created_at"


class InvoiceRepository:
    """Record store for invoices: get / query / put / delete plus expenses."""

    # ── WRITE ─────────────────────────────────────────────

    def put(self, invoice: Invoice) -> Invoice:
        """
        Insert or fully overwrite an invoice row (expenses are stored separately).

        Args:
            invoice: The invoice to persist; `id` must already be assigned.

        Returns:
            The same object with `created_at` populated.
        """
        sql = f"""
            INSERT INTO invoices ({_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, COALESCE(%s, NOW()), %s)
            ON CONFLICT (id) DO UPDATE SET
                invoice_number = EXCLUDED.invoice_number,
                client = EXCLUDED.client,
                client_phone = EXCLUDED.client_phone,
                items = EXCLUDED.items,
                discount = EXCLUDED.discount,
                payment = EXCLUDED.payment,
                amount = EXCLUDED.amount,
                filename = EXCLUDED.filename,
                is_recurring = EXCLUDED.is_recurring,
                paid = EXCLUDED.paid,
                paid_at = EXCLUDED.paid_at,
                auto_send_enabled = EXCLUDED.auto_send_enabled,
                next_send_date = EXCLUDED.next_send_date,
                last_sent_at = EXCLUDED.last_sent_at,
                updated_at = EXCLUDED.updated_at
            RETURNING created_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    invoice.id, invoice.invoice_number, invoice.client, invoice.client_phone,
                    Json([i.to_dict() for i in invoice.items]),
                    Json(invoice.discount.to_dict()) if invoice.discount else None,
                    Json(invoice.payment.to_dict()),
                    invoice.amount, invoice.filename, invoice.is_recurring,
                    invoice.paid, invoice.paid_at, invoice.auto_send_enabled,
                    invoice.next_send_date, invoice.last_sent_at,
                    invoice.created_at, invoice.updated_at,
                ))
                invoice.created_at = cur.fetchone()[0]
            conn.commit()
            return invoice
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to save invoice #{invoice.invoice_number}: {e}")
            raise
        finally:
            release_connection(conn)

    def delete(self, invoice_id: str) -> bool:
        """Delete an invoice (its expenses cascade). Returns False if absent."""
        sql = "DELETE FROM invoices WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (invoice_id,))
                deleted = cur.rowcount > 0
            conn.commit()
            if deleted:
                logger.info(f"Deleted invoice {invoice_id}")
            return deleted
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to delete invoice {invoice_id}: {e}")
            raise
        finally:
            release_connection(conn)

    # ── READ ──────────────────────────────────────────────

    def get(self, invoice_id: str) -> Optional[Invoice]:
        """Fetch one invoice with its expenses, or None."""
        return self._fetch_one(f"SELECT {_COLUMNS} FROM invoices WHERE id = %s;", (invoice_id,))

    def get_by_number(self, invoice_number: int) -> Optional[Invoice]:
        """Fetch the most recent invoice carrying this number, or None."""
        sql = f"""
            SELECT {_COLUMNS} FROM invoices
            WHERE invoice_number = %s
            ORDER BY created_at DESC LIMIT 1;
        """
        return self._fetch_one(sql, (invoice_number,))

    def get_all(self) -> list[Invoice]:
        """All invoices, newest first."""
        return self._fetch_many(f"SELECT {_COLUMNS} FROM invoices ORDER BY created_at DESC;", ())

    def get_due_for_auto_send(self, now: datetime) -> list[Invoice]:
        """
        Invoices armed for auto-send whose next send date is at or before `now`.
        Pure read, ordered by due date.
        """
        sql = f"""
            SELECT {_COLUMNS} FROM invoices
            WHERE auto_send_enabled = TRUE
              AND next_send_date IS NOT NULL
              AND next_send_date <= %s
            ORDER BY next_send_date ASC, created_at ASC;
        """
        return self._fetch_many(sql, (now,))

    def query_where(self, predicate: Callable[[Invoice], bool]) -> list[Invoice]:
        """Every invoice matching an arbitrary Python predicate."""
        return [inv for inv in self.get_all() if predicate(inv)]

    def get_statistics(self) -> dict:
        """Counts and sums by payment status."""
        sql = """
            SELECT
                COUNT(*),
                COUNT(*) FILTER (WHERE paid),
                COALESCE(SUM(amount), 0),
                COALESCE(SUM(amount) FILTER (WHERE paid), 0)
            FROM invoices;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                total, paid, total_amount, paid_amount = cur.fetchone()
        finally:
            release_connection(conn)
        return {
            "total": total,
            "paid": paid,
            "unpaid": total - paid,
            "total_amount": float(total_amount),
            "paid_amount": float(paid_amount),
            "unpaid_amount": float(total_amount) - float(paid_amount),
        }

    # ── EXPENSES ──────────────────────────────────────────

    def add_expense(self, expense: InvoiceExpense) -> InvoiceExpense:
        """Attach an expense to an invoice; fills `id` and `created_at`."""
        sql = """
            INSERT INTO invoice_expenses (invoice_id, amount, category, description, date)
            VALUES (%s, %s, %s, %s, COALESCE(%s, NOW()))
            RETURNING id, date, created_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    expense.invoice_id, expense.amount, expense.category,
                    expense.description, expense.date,
                ))
                expense.id, expense.date, expense.created_at = cur.fetchone()
            conn.commit()
            logger.info(f"Added expense #{expense.id} to invoice {expense.invoice_id}")
            return expense
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to add expense to invoice {expense.invoice_id}: {e}")
            raise
        finally:
            release_connection(conn)

    def delete_expense(self, invoice_id: str, expense_id: int) -> bool:
        """Remove one expense from an invoice."""
        sql = "DELETE FROM invoice_expenses WHERE id = %s AND invoice_id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (expense_id, invoice_id))
                deleted = cur.rowcount > 0
            conn.commit()
            return deleted
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to delete expense #{expense_id}: {e}")
            raise
        finally:
            release_connection(conn)

    # ── HELPERS ───────────────────────────────────────────

    def _fetch_one(self, sql: str, params: tuple) -> Optional[Invoice]:
        found = self._fetch_many(sql, params)
        return found[0] if found else None

    def _fetch_many(self, sql: str, params: tuple) -> list[Invoice]:
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                invoices = [self._row_to_invoice(r) for r in cur.fetchall()]
                if invoices:
                    expenses = self._expenses_for(cur, [inv.id for inv in invoices])
                    for inv in invoices:
                        inv.expenses = expenses.get(inv.id, [])
                return invoices
        finally:
            release_connection(conn)

    @staticmethod
    def _expenses_for(cur, invoice_ids: list[str]) -> dict[str, list[InvoiceExpense]]:
        cur.execute(
            f"SELECT {_EXPENSE_COLUMNS} FROM invoice_expenses "
            "WHERE invoice_id = ANY(%s) ORDER BY date ASC, id ASC;",
            (invoice_ids,),
        )
        grouped: dict[str, list[InvoiceExpense]] = defaultdict(list)
        for row in cur.fetchall():
            grouped[row[1]].append(InvoiceExpense(
                id=row[0],
                invoice_id=row[1],
                amount=float(row[2]),
                category=row[3],
                description=row[4] or "",
                date=row[5],
                created_at=row[6],
            ))
        return grouped

    @staticmethod
    def _row_to_invoice(row: tuple) -> Invoice:
        """Convert a database row tuple to an Invoice domain object."""
        return Invoice(
            id=row[0],
            invoice_number=row[1],
            client=row[2],
            client_phone=row[3] or "",
            items=[InvoiceItem.from_dict(i) for i in row[4] or []],
            discount=Discount.from_dict(row[5]),
            payment=PaymentDetails.from_dict(row[6]),
            amount=float(row[7]),
            filename=row[8],
            is_recurring=row[9],
            paid=row[10],
            paid_at=row[11],
            auto_send_enabled=row[12],
            next_send_date=row[13],
            last_sent_at=row[14],
            created_at=row[15],
            updated_at=row[16],
        )
