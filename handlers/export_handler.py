"""
handlers/export_handler.py
---------------------------
Handles invoice register exports (CSV, Excel).
Delegates to ExportService.
"""

from datetime import date

from telegram import Update
from telegram.ext import ContextTypes

from security.auth import operator_only
from security.rate_limiter import rate_limited
from services.back_office import get_office
from utils.logger import get_logger

logger = get_logger(__name__)


@operator_only
@rate_limited
async def export_csv_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /export_csv - send the invoice register as CSV."""
    await update.message.reply_text("📄 Preparing CSV...")
    try:
        buffer = get_office(context).exports.export_csv()
    except Exception as e:
        logger.error(f"CSV export failed: {e}")
        await update.message.reply_text("❌ Export failed. Please try again.")
        return
    await update.message.reply_document(
        document=buffer,
        filename=f"invoices_{date.today():%Y_%m_%d}.csv",
        caption="📊 Invoice register - CSV",
    )


@operator_only
@rate_limited
async def export_excel_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /export_excel - send the invoice register as an Excel workbook."""
    await update.message.reply_text("📊 Preparing Excel...")
    try:
        buffer = get_office(context).exports.export_excel()
    except Exception as e:
        logger.error(f"Excel export failed: {e}")
        await update.message.reply_text("❌ Export failed. Please try again.")
        return
    await update.message.reply_document(
        document=buffer,
        filename=f"invoices_{date.today():%Y_%m_%d}.xlsx",
        caption="📊 Invoice register - Excel",
    )
