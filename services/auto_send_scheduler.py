"""
services/auto_send_scheduler.py
--------------------------------
Recurring auto-send of invoices.

A background loop wakes every `check_interval`, asks the lifecycle service
which invoices are due, and sends them one by one through the delivery
channel with `send_delay` between consecutive sends. At most one pass runs
at a time: a tick that fires while a pass is still going is dropped.

Store and file lookups run in worker threads so the bot keeps polling
during a pass. Clock and sleep are injectable so tests can drive ticks
without waiting.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

from config import (
    AUTO_SEND_CHECK_INTERVAL_SECONDS,
    AUTO_SEND_DELAY_SECONDS,
    AUTO_SEND_INITIAL_DELAY_SECONDS,
    CURRENCY_SYMBOL,
)
from models.errors import DeliveryFailure, InvoiceError, MissingRecipient
from models.invoice import Invoice
from services.delivery_service import DeliveryChannel
from services.document_service import DocumentService
from services.lifecycle_service import InvoiceLifecycleService
from utils.dates import utcnow
from utils.logger import get_logger
from utils.phone import normalize_phone

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class DispatchReport:
    """What one pass did. `skipped` means another pass was already running."""
    started_at: Optional[datetime] = None
    skipped: bool = False
    due: int = 0
    sent: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)


def compose_message(invoice: Invoice) -> str:
    """Caption sent along with the invoice PDF."""
    return (
        f"Good afternoon! Please find attached invoice No. {invoice.invoice_number} for payment.\n\n"
        f"Client: {invoice.client}\n"
        f"Amount: {invoice.amount:,.2f} {CURRENCY_SYMBOL}"
    )


class AutoSendScheduler:
    """
    Drives due invoices through the delivery channel.

    Created once at startup and handed to whatever needs it (handlers,
    main); there is no module-level instance.
    """

    def __init__(
        self,
        lifecycle: InvoiceLifecycleService,
        channel: DeliveryChannel,
        documents: DocumentService | None = None,
        check_interval: float = AUTO_SEND_CHECK_INTERVAL_SECONDS,
        send_delay: float = AUTO_SEND_DELAY_SECONDS,
        initial_delay: float = AUTO_SEND_INITIAL_DELAY_SECONDS,
        clock: Callable[[], datetime] = utcnow,
        sleep: Sleep = asyncio.sleep,
    ):
        self.lifecycle = lifecycle
        self.channel = channel
        self.documents = documents or DocumentService()
        self.check_interval = check_interval
        self.send_delay = send_delay
        self.initial_delay = initial_delay
        self.clock = clock
        self.sleep = sleep

        self._is_processing = False
        self._loop_task: asyncio.Task | None = None
        self._pass_tasks: set[asyncio.Task] = set()
        self.last_report: DispatchReport | None = None

    # ── CONTROL ───────────────────────────────────────────

    def start(self) -> None:
        """Start the polling loop on the running event loop (idempotent)."""
        if self.is_running:
            return
        self._loop_task = asyncio.get_running_loop().create_task(self._poll_forever(), name="auto-send-loop")
        logger.info(
            f"[AutoSend] Scheduler started: first check in {self.initial_delay:g}s, "
            f"then every {self.check_interval:g}s, {self.send_delay:g}s between sends"
        )

    def stop(self) -> None:
        """Stop future ticks. A pass already in progress runs to completion."""
        if self._loop_task is None:
            return
        self._loop_task.cancel()
        self._loop_task = None
        logger.info("[AutoSend] Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    def check_now(self) -> bool:
        """
        Trigger an out-of-cycle pass in the background.

        Returns:
            False if a pass is already running (the request is dropped).
        """
        if self._is_processing:
            return False
        self._spawn_pass()
        return True

    def status(self) -> dict:
        """Scheduler state for the operator; counts due invoices afresh."""
        return {
            "is_running": self.is_running,
            "is_processing": self._is_processing,
            "check_interval": self.check_interval,
            "send_delay": self.send_delay,
            "initial_delay": self.initial_delay,
            "due_count": len(self.lifecycle.due_for_auto_send(self.clock())),
            "channel_ready": self.channel.is_ready(),
            "last_report": self.last_report,
        }

    # ── PASS ──────────────────────────────────────────────

    async def run_pass(self, now: Optional[datetime] = None) -> DispatchReport:
        """
        One dispatch pass over the invoices due at `now`.

        Invoices are sent sequentially in the order the due query returns
        them. A failure on one invoice is logged and leaves its date
        untouched; the pass moves on. Errors of the due query itself
        propagate to the caller.
        """
        if self._is_processing:
            logger.info("[AutoSend] Previous pass still running, skipping")
            return DispatchReport(skipped=True)

        self._is_processing = True
        try:
            now = now or self.clock()
            report = DispatchReport(started_at=now)
            logger.info("[AutoSend] Checking invoices due for auto-send...")

            due = await asyncio.to_thread(self.lifecycle.due_for_auto_send, now)
            report.due = len(due)
            if not due:
                logger.info("[AutoSend] Nothing to send")
                self.last_report = report
                return report

            logger.info(f"[AutoSend] Invoices to send: {len(due)}")
            for index, invoice in enumerate(due):
                logger.info(
                    f"[AutoSend] Sending {index + 1}/{len(due)}: "
                    f"#{invoice.invoice_number} to {invoice.client}"
                )
                try:
                    await self._dispatch(invoice)
                    advanced = await asyncio.to_thread(self.lifecycle.advance_next_send_date, invoice.id, now)
                    report.sent.append(invoice.invoice_number)
                    # Paid mid-pass: the record was disarmed after the due list was read
                    if advanced.next_send_date is None:
                        logger.info(f"[AutoSend] ✅ Invoice #{invoice.invoice_number} sent, auto-send now off")
                    else:
                        logger.info(
                            f"[AutoSend] ✅ Invoice #{invoice.invoice_number} sent, "
                            f"next send {advanced.next_send_date:%Y-%m-%d %H:%M}"
                        )
                except InvoiceError as e:
                    report.failed[invoice.invoice_number] = str(e)
                    logger.error(f"[AutoSend] ❌ Invoice #{invoice.invoice_number} not sent: {e}")
                except Exception as e:
                    report.failed[invoice.invoice_number] = str(e)
                    logger.exception(f"[AutoSend] ❌ Unexpected error sending invoice #{invoice.invoice_number}: {e}")

                if index < len(due) - 1:
                    logger.info(f"[AutoSend] Waiting {self.send_delay:g}s before the next send...")
                    await self.sleep(self.send_delay)

            logger.info(f"[AutoSend] Pass done: {len(report.sent)} sent, {len(report.failed)} failed")
            self.last_report = report
            return report
        finally:
            self._is_processing = False

    async def _dispatch(self, invoice: Invoice) -> None:
        """
        Send one invoice.

        Raises:
            MissingRecipient: No usable phone on file.
            DocumentNotFound: No rendered PDF for the invoice number.
            DeliveryFailure: The channel reported an error.
        """
        recipient = normalize_phone(invoice.client_phone)
        if not recipient:
            raise MissingRecipient(invoice.invoice_number)

        document = await asyncio.to_thread(self.documents.find_for_invoice_number, invoice.invoice_number)
        result = await self.channel.send_document(recipient, compose_message(invoice), document)
        if not result.success:
            raise DeliveryFailure(result.error or "delivery failed")

    # ── LOOP ──────────────────────────────────────────────

    async def _poll_forever(self) -> None:
        await self.sleep(self.initial_delay)
        while True:
            self._spawn_pass()
            await self.sleep(self.check_interval)

    def _spawn_pass(self) -> None:
        task = asyncio.get_running_loop().create_task(self._guarded_pass(), name="auto-send-pass")
        self._pass_tasks.add(task)
        task.add_done_callback(self._pass_tasks.discard)

    async def _guarded_pass(self) -> None:
        try:
            await self.run_pass()
        except Exception as e:
            logger.exception(f"[AutoSend] Pass aborted: {e}")

    async def wait_idle(self) -> None:
        """Wait for background passes to finish (used on shutdown)."""
        if self._pass_tasks:
            await asyncio.gather(*self._pass_tasks, return_exceptions=True)
