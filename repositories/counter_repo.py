"""
repositories/counter_repo.py
-----------------------------
Invoice number allocator backed by the single-row `invoice_counter` table.
"""

from db.connection import get_connection, release_connection
from utils.logger import get_logger

logger = get_logger(__name__)


class InvoiceCounterRepository:
    """Monotonic, process-wide invoice numbers."""

    def next_number(self) -> int:
        """Atomically increment the counter and return the new number."""
        sql = "UPDATE invoice_counter SET current = current + 1 WHERE id = 1 RETURNING current;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                number = cur.fetchone()[0]
            conn.commit()
            return number
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to allocate invoice number: {e}")
            raise
        finally:
            release_connection(conn)

    def current(self) -> int:
        """Last issued number, without incrementing."""
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT current FROM invoice_counter WHERE id = 1;")
                row = cur.fetchone()
                return row[0] if row else 0
        finally:
            release_connection(conn)

    def set(self, value: int) -> None:
        """Force the counter; the next allocated number is value + 1."""
        sql = "UPDATE invoice_counter SET current = %s WHERE id = 1;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (value,))
            conn.commit()
            logger.info(f"Invoice counter set to {value}")
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to set invoice counter: {e}")
            raise
        finally:
            release_connection(conn)

    def reset(self) -> None:
        """Restart numbering from 1."""
        sql = "UPDATE invoice_counter SET current = 0, last_reset = NOW() WHERE id = 1;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
            conn.commit()
            logger.info("Invoice counter reset")
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to reset invoice counter: {e}")
            raise
        finally:
            release_connection(conn)
