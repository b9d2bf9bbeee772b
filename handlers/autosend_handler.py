"""
handlers/autosend_handler.py
-----------------------------
Operator commands for recurring auto-send: arming/disarming an invoice,
listing due invoices, scheduler status and out-of-cycle checks.
"""

from telegram import Update
from telegram.ext import ContextTypes

from handlers.invoice_handler import parse_invoice_number
from models.errors import InvoiceError
from security.auth import operator_only
from security.rate_limiter import rate_limited
from services.back_office import get_office
from utils.dates import add_one_month, parse_send_date, utcnow
from utils.logger import get_logger

logger = get_logger(__name__)

AUTOSEND_USAGE = (
    "⚠️ Usage:\n"
    "/autosend <number> on [YYYY-MM-DD]\n"
    "/autosend <number> off\n"
    "Without a date, the first send is one month from today."
)


@operator_only
@rate_limited
async def autosend_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /autosend <n> on [date] | off.
    Examples:
        /autosend 12 on 2026-03-15
        /autosend 12 off
    """
    number = parse_invoice_number(context.args)
    if number is None or len(context.args) < 2 or context.args[1].lower() not in ("on", "off"):
        await update.message.reply_text(AUTOSEND_USAGE)
        return

    enabled = context.args[1].lower() == "on"
    office = get_office(context)
    try:
        invoice = office.invoices.get_by_number(number)
        next_send = None
        if enabled:
            if len(context.args) >= 3:
                next_send = parse_send_date(context.args[2])
            elif invoice.next_send_date is None:
                next_send = add_one_month(utcnow())
        invoice = office.lifecycle.set_auto_send(invoice.id, enabled, next_send)
    except ValueError:
        await update.message.reply_text(f"⚠️ '{context.args[2]}' is not a date (YYYY-MM-DD).")
        return
    except InvoiceError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    if enabled:
        msg = f"🔁 Auto-send on for invoice #{number}, next send {invoice.next_send_date:%Y-%m-%d %H:%M} UTC"
        if not invoice.client_phone:
            msg += "\n⚠️ The invoice has no client phone, sends will fail until one is set."
    else:
        msg = f"⏹️ Auto-send off for invoice #{number}."
    await update.message.reply_text(msg)


@operator_only
@rate_limited
async def autosend_due_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /autosend_due - invoices due for sending right now."""
    due = get_office(context).lifecycle.due_for_auto_send()
    if not due:
        await update.message.reply_text("📭 No invoices are due for auto-send.")
        return
    lines = ["📤 Due for auto-send:\n"]
    lines.extend(f"  #{inv.invoice_number} {inv.client}, due {inv.next_send_date:%Y-%m-%d %H:%M}" for inv in due)
    await update.message.reply_text("\n".join(lines))


@operator_only
@rate_limited
async def autosend_status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /autosend_status - scheduler state for the operator."""
    status = get_office(context).scheduler.status()
    lines = [
        "🤖 Auto-send scheduler",
        f"  Running: {'yes' if status['is_running'] else 'no'}",
        f"  Pass in progress: {'yes' if status['is_processing'] else 'no'}",
        f"  Channel ready: {'yes' if status['channel_ready'] else 'no'}",
        f"  Check every {status['check_interval'] / 60:g} min, {status['send_delay'] / 60:g} min between sends",
        f"  Due now: {status['due_count']}",
    ]
    report = status["last_report"]
    if report is not None:
        lines.append(
            f"  Last pass {report.started_at:%Y-%m-%d %H:%M}: "
            f"{len(report.sent)} sent, {len(report.failed)} failed"
        )
        lines.extend(f"    #{number}: {error}" for number, error in report.failed.items())
    await update.message.reply_text("\n".join(lines))


@operator_only
@rate_limited
async def autosend_now_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /autosend_now - start a pass immediately in the background."""
    if get_office(context).scheduler.check_now():
        await update.message.reply_text("▶️ Auto-send check started. See /autosend_status for the result.")
    else:
        await update.message.reply_text("⏳ A pass is already running.")
