"""
main.py
-------
Entry point for InvoiceBot.

Responsibilities:
    - Initialize the database connection pool and schema.
    - Build the back-office services once and share them via bot_data.
    - Configure and start the Telegram bot with all handlers.
    - Start/stop the recurring auto-send scheduler with the bot.
"""

from telegram import BotCommand
from telegram.ext import (
    Application,
    CommandHandler,
    MessageHandler,
    filters,
)

from config import AUTO_SEND_ENABLED, TELEGRAM_BOT_TOKEN
from db.connection import close_pool, init_pool
from db.init_db import create_tables
from handlers.autosend_handler import (
    autosend_command,
    autosend_due_command,
    autosend_now_command,
    autosend_status_command,
)
from handlers.export_handler import export_csv_command, export_excel_command
from handlers.invoice_handler import (
    counter_command,
    delete_expense_command,
    delete_invoice_command,
    duplicate_command,
    expense_command,
    expenses_command,
    invoice_command,
    invoices_command,
    new_invoice_command,
    paid_command,
    unpaid_command,
)
from handlers.start_handler import clients_command, contact_shared, help_command, myid_command, start_command
from services.back_office import BOT_DATA_KEY, BackOffice, build_back_office
from utils.logger import get_logger

logger = get_logger(__name__)


async def on_startup(application: Application) -> None:
    """Register the command menu, attach the delivery channel, start auto-send."""
    commands = [
        BotCommand("start", "🚀 Start"),
        BotCommand("help", "📖 Help"),
        BotCommand("invoices", "🧾 Invoice list"),
        BotCommand("invoice", "🔎 Invoice details"),
        BotCommand("new_invoice", "➕ New invoice"),
        BotCommand("paid", "✅ Mark paid"),
        BotCommand("unpaid", "⏳ Mark unpaid"),
        BotCommand("duplicate", "📄 Duplicate invoice"),
        BotCommand("delete_invoice", "🗑️ Delete invoice"),
        BotCommand("autosend", "🔁 Auto-send on/off"),
        BotCommand("autosend_due", "📤 Due for auto-send"),
        BotCommand("autosend_status", "🤖 Scheduler status"),
        BotCommand("autosend_now", "▶️ Run auto-send check"),
        BotCommand("expense", "📉 Add expense"),
        BotCommand("expenses", "📉 Expenses & profit"),
        BotCommand("counter", "🔢 Invoice numbering"),
        BotCommand("clients", "👥 Clients"),
        BotCommand("export_csv", "📄 Export CSV"),
        BotCommand("export_excel", "📊 Export Excel"),
        BotCommand("myid", "🆔 My ID"),
    ]
    await application.bot.set_my_commands(commands)
    logger.info("Bot commands menu registered.")

    office: BackOffice = application.bot_data[BOT_DATA_KEY]
    office.channel.attach(application.bot)
    if AUTO_SEND_ENABLED:
        office.scheduler.start()
    else:
        logger.info("Auto-send scheduler disabled (AUTO_SEND_ENABLED=false).")


async def on_shutdown(application: Application) -> None:
    """Stop future ticks and let an in-flight pass finish."""
    office: BackOffice = application.bot_data[BOT_DATA_KEY]
    office.scheduler.stop()
    await office.scheduler.wait_idle()
    office.channel.detach()


def main() -> None:
    """Initialize and run the bot."""

    # ── 1. Database setup ─────────────────────────────────
    logger.info("Initializing database...")
    init_pool()
    create_tables()

    # ── 2. Build the Telegram application ─────────────────
    logger.info("Starting Telegram bot...")
    app = (
        Application.builder()
        .token(TELEGRAM_BOT_TOKEN)
        .post_init(on_startup)
        .post_shutdown(on_shutdown)
        .build()
    )
    app.bot_data[BOT_DATA_KEY] = build_back_office()

    # ── 3. Register command handlers ──────────────────────
    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("myid", myid_command))
    app.add_handler(CommandHandler("invoices", invoices_command))
    app.add_handler(CommandHandler("invoice", invoice_command))
    app.add_handler(CommandHandler("new_invoice", new_invoice_command))
    app.add_handler(CommandHandler("paid", paid_command))
    app.add_handler(CommandHandler("unpaid", unpaid_command))
    app.add_handler(CommandHandler("duplicate", duplicate_command))
    app.add_handler(CommandHandler("delete_invoice", delete_invoice_command))
    app.add_handler(CommandHandler("autosend", autosend_command))
    app.add_handler(CommandHandler("autosend_due", autosend_due_command))
    app.add_handler(CommandHandler("autosend_status", autosend_status_command))
    app.add_handler(CommandHandler("autosend_now", autosend_now_command))
    app.add_handler(CommandHandler("expense", expense_command))
    app.add_handler(CommandHandler("expenses", expenses_command))
    app.add_handler(CommandHandler("delete_expense", delete_expense_command))
    app.add_handler(CommandHandler("counter", counter_command))
    app.add_handler(CommandHandler("clients", clients_command))
    app.add_handler(CommandHandler("export_csv", export_csv_command))
    app.add_handler(CommandHandler("export_excel", export_excel_command))

    # ── 4. Clients sharing their phone number ─────────────
    app.add_handler(MessageHandler(filters.CONTACT, contact_shared))

    # ── 5. Start polling ──────────────────────────────────
    logger.info("🚀 InvoiceBot is running! Press Ctrl+C to stop.")
    app.run_polling(drop_pending_updates=True, allowed_updates=["message"])

    # ── 6. Cleanup on shutdown ────────────────────────────
    close_pool()
    logger.info("InvoiceBot stopped.")


if __name__ == "__main__":
    main()
