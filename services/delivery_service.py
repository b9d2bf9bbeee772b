"""
services/delivery_service.py
-----------------------------
Delivery channel: sends a text plus an attached invoice PDF to a
phone-number recipient.

The Telegram implementation resolves the normalised phone to the chat the
client linked by sharing their contact with the bot (see ClientRepository).
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from telegram import Bot
from telegram.error import BadRequest, Forbidden, TelegramError

from repositories.client_repo import ClientRepository
from utils.logger import get_logger

logger = get_logger(__name__)

CHANNEL_NOT_READY = "channel not ready"
RECIPIENT_REJECTED = "recipient rejected"
ATTACHMENT_REJECTED = "attachment rejected"


@dataclass
class DeliveryResult:
    success: bool
    error: Optional[str] = None


class DeliveryChannel(Protocol):
    """Anything able to send a document to a phone-number recipient."""

    def is_ready(self) -> bool:
        ...

    async def send_document(self, recipient: str, text: str, path: Path) -> DeliveryResult:
        ...


class TelegramDeliveryChannel:
    """
    Sends invoices through the bot to the client's linked Telegram chat.

    The bot is attached after the Application starts (post_init), so the
    channel reports "not ready" until then.
    """

    def __init__(self, client_repo: ClientRepository | None = None, bot: Bot | None = None):
        self.client_repo = client_repo or ClientRepository()
        self.bot = bot

    def attach(self, bot: Bot) -> None:
        self.bot = bot
        logger.info("Telegram delivery channel is ready.")

    def detach(self) -> None:
        self.bot = None

    def is_ready(self) -> bool:
        return self.bot is not None

    async def send_document(self, recipient: str, text: str, path: Path) -> DeliveryResult:
        """
        Send `text` as caption of the PDF at `path` to the chat linked to `recipient`.

        Args:
            recipient: Normalised phone digits.
            text: Message / caption.
            path: Local PDF file.

        Returns:
            DeliveryResult; errors carry one of the reasons defined above.
        """
        if not self.is_ready():
            return DeliveryResult(False, CHANNEL_NOT_READY)

        client = await asyncio.to_thread(self.client_repo.get_by_phone, recipient)
        if client is None or not client.is_linked():
            return DeliveryResult(False, f"{RECIPIENT_REJECTED}: +{recipient} has not shared a contact with the bot")

        if not path.is_file():
            return DeliveryResult(False, f"{ATTACHMENT_REJECTED}: {path.name} is missing")

        try:
            with path.open("rb") as document:
                await self.bot.send_document(
                    chat_id=client.chat_id,
                    document=document,
                    filename=path.name,
                    caption=text,
                )
        except Forbidden as e:
            return DeliveryResult(False, f"{RECIPIENT_REJECTED}: {e}")
        except BadRequest as e:
            return DeliveryResult(False, f"{ATTACHMENT_REJECTED}: {e}")
        except TelegramError as e:
            return DeliveryResult(False, f"{CHANNEL_NOT_READY}: {e}")

        logger.info(f"Delivered {path.name} to +{recipient} (chat {client.chat_id})")
        return DeliveryResult(True)
