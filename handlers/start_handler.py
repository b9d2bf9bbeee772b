"""
handlers/start_handler.py
--------------------------
Handles /start, /help, /myid, /clients and contact sharing.
Operators get the command list; clients are asked to share their phone
so invoices can be delivered to their chat.
"""

from telegram import KeyboardButton, ReplyKeyboardMarkup, ReplyKeyboardRemove, Update
from telegram.ext import ContextTypes

from security.auth import is_operator, operator_only
from security.rate_limiter import rate_limited
from services.back_office import get_office
from utils.logger import get_logger
from utils.phone import normalize_phone

logger = get_logger(__name__)

HELP_TEXT = """
🧾 *InvoiceBot - operator commands*

*Invoices:*
/invoices [paid|unpaid] - list invoices and totals
/invoice <n> - invoice details
/new\\_invoice - issue an invoice
/paid <n> - mark paid (issues next month's invoice)
/unpaid <n> - mark unpaid
/duplicate <n> - copy with a new number
/delete\\_invoice <n> - delete invoice and PDF
/counter [set <n>|reset] - invoice numbering
/clients [query] - client directory

*Auto-send:*
/autosend <n> on [YYYY-MM-DD] - arm monthly sending
/autosend <n> off - stop sending
/autosend\\_due - invoices due now
/autosend\\_status - scheduler status
/autosend\\_now - run a check now

*Expenses & export:*
/expense <n> | amount | category | note
/expenses <n> - expenses and profit
/delete\\_expense <n> <id> - remove an expense
/export\\_csv, /export\\_excel - invoice register
/myid - your Telegram ID
"""

_CONTACT_KEYBOARD = ReplyKeyboardMarkup(
    [[KeyboardButton("📱 Share my phone number", request_contact=True)]],
    resize_keyboard=True,
    one_time_keyboard=True,
)


@rate_limited
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start: command list for operators, contact request for clients."""
    user = update.effective_user
    logger.info(f"User {user.id} ({user.first_name}) started the bot.")

    if is_operator(user.id):
        await update.message.reply_text(
            f"Hello {user.first_name}! 👋\nType /help to see the invoicing commands.",
        )
        return

    await update.message.reply_text(
        "Hello! 👋\nShare your phone number and your invoices will arrive in this chat.",
        reply_markup=_CONTACT_KEYBOARD,
    )


@rate_limited
async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command - show all available commands."""
    if not is_operator(update.effective_user.id):
        await update.message.reply_text("Use /start and share your phone number to receive invoices.")
        return
    await update.message.reply_text(HELP_TEXT, parse_mode="Markdown")


async def myid_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /myid command - show the Telegram ID for OPERATOR_IDS."""
    user = update.effective_user
    await update.message.reply_text(
        f"🆔 Your ID: `{user.id}`\nAdd it to `OPERATOR_IDS` in `.env` to get operator access.",
        parse_mode="Markdown",
    )


async def contact_shared(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Link the sender's chat to the phone number they shared."""
    user = update.effective_user
    contact = update.message.contact

    if contact.user_id != user.id:
        await update.message.reply_text("⚠️ Please share your own contact using the button.")
        return

    phone = normalize_phone(contact.phone_number)
    if not phone:
        await update.message.reply_text("⚠️ The contact has no phone number.")
        return

    name = " ".join(filter(None, [contact.first_name, contact.last_name])) or user.full_name
    get_office(context).clients.link_chat(phone, update.effective_chat.id, name)
    await update.message.reply_text(
        f"✅ Thank you! Invoices for +{phone} will be sent to this chat.",
        reply_markup=ReplyKeyboardRemove(),
    )


@operator_only
@rate_limited
async def clients_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /clients [query] - client directory and chat links."""
    clients = get_office(context).clients
    query = " ".join(context.args or [])
    found = clients.search(query) if query else clients.get_all()
    if not found:
        await update.message.reply_text("📭 No clients found.")
        return
    lines = ["👥 Clients (🔗 = receives invoices in Telegram):\n"]
    lines.extend(f"  {client}" for client in found)
    await update.message.reply_text("\n".join(lines))
