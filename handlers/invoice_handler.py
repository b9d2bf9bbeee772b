"""
handlers/invoice_handler.py
----------------------------
Operator commands for invoices: listing, issuing, payment status,
duplication, deletion and expenses.
"""

import re
from typing import Optional

from telegram import Update
from telegram.ext import ContextTypes

from config import CURRENCY_SYMBOL
from models.errors import InvoiceError, ValidationError
from models.invoice import DISCOUNT_FIXED, DISCOUNT_PERCENT, Discount, Invoice, InvoiceItem, PaymentDetails
from security.auth import operator_only
from security.rate_limiter import rate_limited
from services.back_office import get_office
from services.invoice_service import EXPENSE_CATEGORIES
from utils.logger import get_logger

logger = get_logger(__name__)

NEW_INVOICE_USAGE = (
    "📝 *New invoice*\n\n"
    "`/new_invoice Client | phone | item, unit, qty, price; ... | payment | discount`\n\n"
    "*Examples:*\n"
    "• `/new_invoice Acme LLC | +7 912 345-67-89 | Cleaning, month, 1, 15000 | card 2202 2000 1111 2222`\n"
    "• `/new_invoice Acme LLC | - | Paper, pack, 2, 1000; Toner, pcs, 5, 500 | sbp +79123456789 Sberbank | 10%`\n\n"
    "Phone `-` means none. Payment: `card <number>` or `sbp <phone> <bank>`. "
    "Discount: `10%` (percent) or `1000` (fixed)."
)

_NUMBER = re.compile(r"^#?(\d+)$")


def parse_invoice_number(args: list[str]) -> Optional[int]:
    """First command argument as an invoice number ("12" or "#12")."""
    if not args:
        return None
    match = _NUMBER.match(args[0].strip())
    return int(match.group(1)) if match else None


def _parse_float(text: str) -> float:
    return float(text.replace(" ", "").replace(",", "."))


def parse_items(text: str) -> list[InvoiceItem]:
    """
    Parse "name, unit, qty, price; name, qty, price" into line items.
    The unit is optional and defaults to "pcs".
    """
    items = []
    for chunk in filter(None, (c.strip() for c in text.split(";"))):
        fields = [f.strip() for f in chunk.split(",")]
        try:
            if len(fields) == 4:
                name, unit, qty, price = fields
            elif len(fields) == 3:
                (name, qty, price), unit = fields, "pcs"
            else:
                raise ValueError
            items.append(InvoiceItem(name=name, unit=unit, quantity=_parse_float(qty), price=_parse_float(price)))
        except ValueError:
            raise ValidationError(f"Cannot read item '{chunk}': use name, unit, qty, price")
    return items


def parse_payment(text: str) -> PaymentDetails:
    """'card 2202 ...' or 'sbp +7912... Bank name'."""
    words = text.split()
    if not words:
        raise ValidationError("Payment details are required")
    kind = words[0].lower()
    if kind == "card":
        return PaymentDetails(card_number=" ".join(words[1:]))
    if kind == "sbp" and len(words) >= 2:
        return PaymentDetails(sbp_phone=words[1], sbp_bank=" ".join(words[2:]))
    raise ValidationError("Payment must be 'card <number>' or 'sbp <phone> <bank>'")


def parse_discount(text: str) -> Optional[Discount]:
    """'10%' -> percent discount, '1000' -> fixed discount, '' -> none."""
    text = text.strip()
    if not text:
        return None
    try:
        if text.endswith("%"):
            return Discount(type=DISCOUNT_PERCENT, value=_parse_float(text[:-1]))
        return Discount(type=DISCOUNT_FIXED, value=_parse_float(text))
    except ValueError as e:
        raise ValidationError(f"Bad discount '{text}': {e}")


def parse_invoice_text(text: str) -> dict:
    """
    Parse the /new_invoice argument string:
        Client | phone | items | payment [| discount]

    Returns:
        Keyword arguments for InvoiceService.create_invoice.

    Raises:
        ValidationError: If a part is missing or malformed.
    """
    parts = [p.strip() for p in text.split("|")]
    if len(parts) < 4:
        raise ValidationError("Expected: Client | phone | items | payment [| discount]")
    phone = "" if parts[1] in ("", "-") else parts[1]
    return {
        "client": parts[0],
        "client_phone": phone,
        "items": parse_items(parts[2]),
        "payment": parse_payment(parts[3]),
        "discount": parse_discount(parts[4]) if len(parts) > 4 else None,
    }


def format_invoice(invoice: Invoice) -> str:
    """Multi-line card shown for /invoice and after changes."""
    totals = invoice.totals
    lines = [f"🧾 Invoice #{invoice.invoice_number} · {invoice.client}"]
    if invoice.client_phone:
        lines.append(f"📱 +{invoice.client_phone}")
    for item in invoice.items:
        lines.append(f"  • {item.name}: {item.quantity:g} {item.unit} × {item.price:,.2f} = {item.amount:,.2f}")
    if invoice.discount:
        lines.append(f"🏷️ Discount {invoice.discount}: -{totals.discount:,.2f}")
    lines.append(f"💰 Total: {invoice.amount:,.2f} {CURRENCY_SYMBOL}")
    if invoice.paid:
        lines.append(f"✅ Paid {invoice.paid_at:%Y-%m-%d}")
    else:
        lines.append("⏳ Unpaid")
    if invoice.auto_send_enabled and invoice.next_send_date:
        lines.append(f"🔁 Auto-send on, next {invoice.next_send_date:%Y-%m-%d %H:%M}")
    if invoice.last_sent_at:
        lines.append(f"📤 Last sent {invoice.last_sent_at:%Y-%m-%d %H:%M}")
    if invoice.expenses:
        lines.append(f"📉 Expenses {invoice.total_expenses:,.2f}, profit {invoice.profit:,.2f}")
    return "\n".join(lines)


async def _require_number(update: Update, context: ContextTypes.DEFAULT_TYPE, usage: str) -> Optional[int]:
    number = parse_invoice_number(context.args)
    if number is None:
        await update.message.reply_text(f"⚠️ Usage: {usage}")
    return number


@operator_only
@rate_limited
async def invoices_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /invoices [paid|unpaid] - latest invoices and register statistics."""
    office = get_office(context)
    status = context.args[0].lower() if context.args else ""
    paid = {"paid": True, "unpaid": False}.get(status)
    invoices = office.invoices.list_invoices(paid)
    if not invoices:
        await update.message.reply_text("📭 No invoices found.")
        return

    stats = office.invoices.statistics()
    lines = ["🧾 Latest invoices:\n"]
    lines.extend(f"  {inv}" for inv in invoices[:20])
    lines.append(
        f"\nTotal {stats['total']}: paid {stats['paid']} ({stats['paid_amount']:,.2f}), "
        f"unpaid {stats['unpaid']} ({stats['unpaid_amount']:,.2f}) {CURRENCY_SYMBOL}"
    )
    await update.message.reply_text("\n".join(lines))


@operator_only
@rate_limited
async def invoice_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /invoice <n> - show one invoice."""
    number = await _require_number(update, context, "/invoice <number>")
    if number is None:
        return
    try:
        invoice = get_office(context).invoices.get_by_number(number)
    except InvoiceError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return
    await update.message.reply_text(format_invoice(invoice))


@operator_only
@rate_limited
async def new_invoice_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /new_invoice - issue and render a new invoice."""
    if not context.args:
        await update.message.reply_text(NEW_INVOICE_USAGE, parse_mode="Markdown")
        return

    office = get_office(context)
    try:
        fields = parse_invoice_text(" ".join(context.args))
        invoice = office.invoices.create_invoice(**fields)
    except InvoiceError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    path = office.invoices.documents.output_dir / invoice.filename
    with path.open("rb") as document:
        await update.message.reply_document(
            document=document,
            filename=invoice.filename,
            caption=f"✅ Invoice #{invoice.invoice_number} issued: {invoice.amount:,.2f} {CURRENCY_SYMBOL}",
        )


async def _set_paid(update: Update, context: ContextTypes.DEFAULT_TYPE, paid: bool) -> None:
    usage = "/paid <number>" if paid else "/unpaid <number>"
    number = await _require_number(update, context, usage)
    if number is None:
        return

    office = get_office(context)
    try:
        invoice = office.invoices.get_by_number(number)
        result = office.lifecycle.set_payment_status(invoice.id, paid)
    except InvoiceError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    state = "paid ✅" if paid else "unpaid ⏳"
    lines = [f"Invoice #{number} marked {state}"]
    if result.new_invoice:
        lines.append(
            f"🔁 Invoice #{result.new_invoice.invoice_number} created for next month, "
            f"auto-send on {result.new_invoice.next_send_date:%Y-%m-%d}"
        )
    if result.warning:
        lines.append(f"⚠️ {result.warning}")
    await update.message.reply_text("\n".join(lines))


@operator_only
@rate_limited
async def paid_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /paid <n> - mark paid; the first payment issues next month's invoice."""
    await _set_paid(update, context, paid=True)


@operator_only
@rate_limited
async def unpaid_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /unpaid <n>."""
    await _set_paid(update, context, paid=False)


@operator_only
@rate_limited
async def duplicate_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /duplicate <n> - same content under a new number."""
    number = await _require_number(update, context, "/duplicate <number>")
    if number is None:
        return
    office = get_office(context)
    try:
        source = office.invoices.get_by_number(number)
        copy = office.invoices.duplicate_invoice(source.id)
    except InvoiceError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return
    await update.message.reply_text(f"📄 Invoice #{copy.invoice_number} created from #{number}.")


@operator_only
@rate_limited
async def delete_invoice_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delete_invoice <n>."""
    number = await _require_number(update, context, "/delete_invoice <number>")
    if number is None:
        return
    office = get_office(context)
    try:
        invoice = office.invoices.get_by_number(number)
        office.invoices.delete_invoice(invoice.id)
    except InvoiceError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return
    await update.message.reply_text(f"🗑️ Invoice #{number} deleted.")


@operator_only
@rate_limited
async def expense_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /expense - attach a cost to an invoice.
    Usage: /expense 12 | 3500 | Materials | paint and brushes
    """
    parts = [p.strip() for p in " ".join(context.args or []).split("|")]
    if len(parts) < 2:
        await update.message.reply_text(
            "⚠️ Usage: /expense <number> | amount | category | note\n"
            f"Categories: {', '.join(EXPENSE_CATEGORIES)}"
        )
        return

    number = parse_invoice_number([parts[0]])
    office = get_office(context)
    try:
        if number is None:
            raise ValidationError(f"'{parts[0]}' is not an invoice number")
        try:
            amount = _parse_float(parts[1])
        except ValueError:
            raise ValidationError(f"'{parts[1]}' is not an amount")
        category = parts[2] if len(parts) > 2 and parts[2] else "Other"
        note = parts[3] if len(parts) > 3 else ""
        invoice = office.invoices.get_by_number(number)
        expense = office.invoices.add_expense(invoice.id, amount, category, note)
    except InvoiceError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    await update.message.reply_text(
        f"📉 Expense #{expense.id} added to invoice #{number}: {expense.amount:,.2f} ({expense.category})"
    )


@operator_only
@rate_limited
async def delete_expense_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delete_expense <n> <expense id>."""
    number = parse_invoice_number(context.args)
    if number is None or len(context.args) < 2 or not context.args[1].isdigit():
        await update.message.reply_text("⚠️ Usage: /delete_expense <invoice number> <expense id>")
        return
    office = get_office(context)
    try:
        invoice = office.invoices.get_by_number(number)
        deleted = office.invoices.delete_expense(invoice.id, int(context.args[1]))
    except InvoiceError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return
    if deleted:
        await update.message.reply_text(f"🗑️ Expense #{context.args[1]} removed from invoice #{number}.")
    else:
        await update.message.reply_text(f"⚠️ Expense #{context.args[1]} not found on invoice #{number}.")


@operator_only
@rate_limited
async def expenses_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /expenses <n> - list expenses and profitability."""
    number = await _require_number(update, context, "/expenses <number>")
    if number is None:
        return
    office = get_office(context)
    try:
        invoice = office.invoices.get_by_number(number)
        report = office.invoices.profitability(invoice.id)
    except InvoiceError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    lines = [f"📉 Expenses for invoice #{number}:"]
    if not invoice.expenses:
        lines.append("  none")
    for e in invoice.expenses:
        day = f"{e.date:%Y-%m-%d}" if e.date else ""
        lines.append(f"  #{e.id} {day} {e.category}: {e.amount:,.2f} {e.description}".rstrip())
    lines.append(
        f"\nRevenue {report['amount']:,.2f}, costs {report['expenses']:,.2f}, "
        f"profit {report['profit']:,.2f} ({report['margin_percent']}%)"
    )
    await update.message.reply_text("\n".join(lines))


@operator_only
@rate_limited
async def counter_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /counter - show or change invoice numbering.
    Usage: /counter | /counter set <n> | /counter reset
    """
    office = get_office(context)
    args = [a.lower() for a in context.args or []]
    try:
        if not args:
            current = office.invoices.current_number()
            await update.message.reply_text(f"🔢 Last issued number: {current}, next: {current + 1}")
            return
        if args == ["reset"]:
            value = 0
        elif len(args) == 2 and args[0] == "set" and args[1].isdigit():
            value = int(args[1])
        else:
            await update.message.reply_text("⚠️ Usage: /counter | /counter set <n> | /counter reset")
            return
        office.invoices.set_counter(value)
    except InvoiceError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return
    await update.message.reply_text(f"🔢 The next invoice will be #{value + 1}.")
