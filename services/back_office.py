"""
services/back_office.py
-----------------------
Builds the service graph once at startup. Handlers reach it through
`context.bot_data["office"]`; nothing is kept in module globals.
"""

from dataclasses import dataclass

from telegram.ext import ContextTypes

from repositories.client_repo import ClientRepository
from repositories.counter_repo import InvoiceCounterRepository
from repositories.invoice_repo import InvoiceRepository
from services.auto_send_scheduler import AutoSendScheduler
from services.delivery_service import TelegramDeliveryChannel
from services.document_service import DocumentService
from services.export_service import ExportService
from services.invoice_service import InvoiceService
from services.lifecycle_service import InvoiceLifecycleService

BOT_DATA_KEY = "office"


@dataclass
class BackOffice:
    invoices: InvoiceService
    lifecycle: InvoiceLifecycleService
    scheduler: AutoSendScheduler
    exports: ExportService
    clients: ClientRepository
    channel: TelegramDeliveryChannel


def build_back_office() -> BackOffice:
    """Wire repositories, services and the scheduler together."""
    repo = InvoiceRepository()
    documents = DocumentService()
    clients = ClientRepository()
    invoices = InvoiceService(repo=repo, counter=InvoiceCounterRepository(), documents=documents)
    lifecycle = InvoiceLifecycleService(repo=repo, invoices=invoices)
    channel = TelegramDeliveryChannel(client_repo=clients)
    scheduler = AutoSendScheduler(lifecycle=lifecycle, channel=channel, documents=documents)
    return BackOffice(
        invoices=invoices,
        lifecycle=lifecycle,
        scheduler=scheduler,
        exports=ExportService(repo=repo),
        clients=clients,
        channel=channel,
    )


def get_office(context: ContextTypes.DEFAULT_TYPE) -> BackOffice:
    return context.bot_data[BOT_DATA_KEY]
