"""
repositories/client_repo.py
----------------------------
Data access layer for the client directory.
"""

from typing import Optional

from db.connection import get_connection, release_connection
from models.client import Client
from utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = "id, name, phone, chat_id, note, created_at"


class ClientRepository:
    """Repository for CRUD operations on the clients table."""

    def link_chat(self, phone: str, chat_id: int, name: str) -> Client:
        """
        Upsert a client by normalised phone and bind it to a Telegram chat.
        Called when a client shares their contact with the bot.

        Args:
            phone: Normalised phone digits.
            chat_id: Telegram chat the documents will be sent to.
            name: Name to store when the client is new.
        """
        sql = f"""
            INSERT INTO clients (name, phone, chat_id)
            VALUES (%s, %s, %s)
            ON CONFLICT (phone) DO UPDATE SET chat_id = EXCLUDED.chat_id
            RETURNING {_COLUMNS};
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (name, phone, chat_id))
                row = cur.fetchone()
            conn.commit()
            logger.info(f"Linked chat {chat_id} to client phone +{phone}")
            return self._row_to_client(row)
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to link chat for +{phone}: {e}")
            raise
        finally:
            release_connection(conn)

    def get_by_phone(self, phone: str) -> Optional[Client]:
        """Fetch a client by normalised phone."""
        sql = f"SELECT {_COLUMNS} FROM clients WHERE phone = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (phone,))
                row = cur.fetchone()
                return self._row_to_client(row) if row else None
        finally:
            release_connection(conn)

    def get_all(self) -> list[Client]:
        """All clients ordered by name."""
        sql = f"SELECT {_COLUMNS} FROM clients ORDER BY name;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                return [self._row_to_client(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def search(self, query: str) -> list[Client]:
        """Case-insensitive search by name or phone fragment."""
        sql = f"SELECT {_COLUMNS} FROM clients WHERE name ILIKE %s OR phone LIKE %s ORDER BY name;"
        pattern = f"%{query.strip()}%"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (pattern, pattern))
                return [self._row_to_client(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    @staticmethod
    def _row_to_client(row: tuple) -> Client:
        return Client(
            id=row[0],
            name=row[1],
            phone=row[2] or "",
            chat_id=row[3],
            note=row[4],
            created_at=row[5],
        )
