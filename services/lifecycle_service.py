"""
services/lifecycle_service.py
------------------------------
Payment and auto-send state transitions of a single invoice.

Payment axis:    unpaid -> paid (creates the follow-on invoice once),
                 paid -> unpaid (no side effects); repeats are no-ops.
Auto-send axis:  disabled -> armed (set_auto_send with a date),
                 armed -> armed (advance_next_send_date after each send),
                 armed -> disabled (set_auto_send off, or the source of a
                 payment-triggered duplicate).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.errors import DuplicationFailure, NotFound
from models.invoice import Invoice
from repositories.invoice_repo import InvoiceRepository
from services.invoice_service import InvoiceService
from utils.dates import add_one_month, utcnow
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PaymentResult:
    """
    Outcome of a payment status change.

    Attributes:
        invoice: The invoice after the change.
        new_invoice: Follow-on invoice created by the payment, if any.
        warning: Set when the payment stood but the follow-on invoice failed.
    """
    invoice: Invoice
    new_invoice: Optional[Invoice] = None
    warning: Optional[str] = None


class InvoiceLifecycleService:
    """Single source of truth for payment and auto-send state."""

    def __init__(
        self,
        repo: InvoiceRepository | None = None,
        invoices: InvoiceService | None = None,
        clock=utcnow,
    ):
        self.repo = repo or InvoiceRepository()
        self.invoices = invoices or InvoiceService(repo=self.repo, clock=clock)
        self.clock = clock

    # ── PAYMENT ───────────────────────────────────────────

    def mark_paid(self, invoice_id: str, now: Optional[datetime] = None) -> Invoice:
        """Set paid/paid_at together. Already paid invoices keep their paid_at."""
        invoice = self._require(invoice_id)
        if invoice.paid:
            return invoice
        invoice.paid = True
        invoice.paid_at = now or self.clock()
        invoice.updated_at = invoice.paid_at
        self.repo.put(invoice)
        logger.info(f"Invoice #{invoice.invoice_number} marked paid")
        return invoice

    def mark_unpaid(self, invoice_id: str) -> Invoice:
        """Clear paid/paid_at together. No other side effects."""
        invoice = self._require(invoice_id)
        if not invoice.paid:
            return invoice
        invoice.paid = False
        invoice.paid_at = None
        invoice.updated_at = self.clock()
        self.repo.put(invoice)
        logger.info(f"Invoice #{invoice.invoice_number} marked unpaid")
        return invoice

    def set_payment_status(self, invoice_id: str, paid: bool) -> PaymentResult:
        """
        Operator entry point for payment changes.

        Only the unpaid -> paid edge runs the duplication rule. A failing
        duplication never undoes the payment: it comes back as `warning`.

        Raises:
            NotFound: If the invoice does not exist.
        """
        if not paid:
            return PaymentResult(invoice=self.mark_unpaid(invoice_id))

        was_unpaid = not self._require(invoice_id).paid
        now = self.clock()
        invoice = self.mark_paid(invoice_id, now)
        if not was_unpaid:
            return PaymentResult(invoice=invoice)

        try:
            new_invoice = self.on_payment_confirmed(invoice_id, now)
        except DuplicationFailure as e:
            logger.error(f"[AutoDuplicate] Invoice #{invoice.invoice_number} paid, follow-on failed: {e}")
            return PaymentResult(
                invoice=invoice,
                warning=f"Invoice paid, but the next month's invoice could not be created: {e}",
            )
        return PaymentResult(invoice=self._require(invoice_id), new_invoice=new_invoice)

    def on_payment_confirmed(self, invoice_id: str, now: Optional[datetime] = None) -> Invoice:
        """
        Duplication rule: issue next month's invoice for a just-paid one.

        The copy gets a fresh number, the same client, phone, items,
        discount and payment details, auto-send armed one calendar month
        from `now`. A source that was itself armed is disarmed so the paid
        invoice stops recurring.

        Raises:
            NotFound: If the source invoice does not exist.
            DuplicationFailure: If numbering, rendering or storing fails.
        """
        source = self._require(invoice_id)
        now = now or self.clock()
        logger.info(f"[AutoDuplicate] Invoice #{source.invoice_number} paid, issuing next month's invoice...")

        try:
            successor = self.invoices.copy_invoice(
                source,
                auto_send_enabled=True,
                next_send_date=add_one_month(now),
            )
        except Exception as e:
            raise DuplicationFailure(str(e)) from e

        if source.auto_send_enabled:
            try:
                self._disarm(source)
            except Exception as e:
                raise DuplicationFailure(
                    f"next invoice #{successor.invoice_number} created, "
                    f"but auto-send stayed on for #{source.invoice_number}: {e}"
                ) from e
            logger.info(f"[AutoDuplicate] Auto-send disabled for paid invoice #{source.invoice_number}")

        logger.info(
            f"[AutoDuplicate] ✅ Invoice #{successor.invoice_number} created, "
            f"auto-send on {successor.next_send_date:%Y-%m-%d}"
        )
        return successor

    # ── AUTO-SEND ─────────────────────────────────────────

    def set_auto_send(
        self,
        invoice_id: str,
        enabled: bool,
        next_send_date: Optional[datetime] = None,
    ) -> Invoice:
        """
        Arm or disarm recurring dispatch. A supplied date overwrites the
        stored one; it is not checked against the current time.
        """
        invoice = self._require(invoice_id)
        invoice.auto_send_enabled = enabled
        if next_send_date is not None:
            invoice.next_send_date = next_send_date
        invoice.updated_at = self.clock()
        self.repo.put(invoice)
        state = "on" if enabled else "off"
        logger.info(f"Auto-send {state} for invoice #{invoice.invoice_number} (next: {invoice.next_send_date})")
        return invoice

    def due_for_auto_send(self, now: Optional[datetime] = None) -> list[Invoice]:
        """Armed invoices whose next send date is at or before `now`. Pure read."""
        return self.repo.get_due_for_auto_send(now or self.clock())

    def advance_next_send_date(self, invoice_id: str, now: Optional[datetime] = None) -> Invoice:
        """
        After a successful send: move next_send_date one calendar month on
        from its current value and stamp last_sent_at. Invoices without a
        next send date are returned unchanged.
        """
        invoice = self._require(invoice_id)
        if invoice.next_send_date is None:
            return invoice
        invoice.next_send_date = add_one_month(invoice.next_send_date)
        invoice.last_sent_at = now or self.clock()
        invoice.updated_at = invoice.last_sent_at
        self.repo.put(invoice)
        return invoice

    # ── HELPERS ───────────────────────────────────────────

    def _disarm(self, invoice: Invoice) -> None:
        invoice.auto_send_enabled = False
        invoice.next_send_date = None
        invoice.updated_at = self.clock()
        self.repo.put(invoice)

    def _require(self, invoice_id: str) -> Invoice:
        invoice = self.repo.get(invoice_id)
        if invoice is None:
            raise NotFound(invoice_id)
        return invoice
