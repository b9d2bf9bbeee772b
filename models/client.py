"""
models/client.py
----------------
Domain model for invoice recipients.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class Client:
    """
    A recipient in the client directory.

    Attributes:
        name: Client name as printed on invoices.
        phone: Normalised phone digits (see utils.phone).
        chat_id: Telegram chat linked when the client shared their contact.
    """
    name: str
    phone: str = ""
    chat_id: Optional[int] = None
    note: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def is_linked(self) -> bool:
        return self.chat_id is not None

    def __str__(self) -> str:
        link = "🔗" if self.is_linked() else "·"
        return f"{link} {self.name} (+{self.phone})" if self.phone else f"{link} {self.name}"
