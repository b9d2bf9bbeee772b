"""
db/init_db.py
-------------
Creates the invoice store schema if it does not already exist.
Run this module directly to initialize a fresh database:
    python -m db.init_db
"""

from db.connection import get_connection, release_connection
from utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
-- Invoices: one row per issued invoice, with its payment and auto-send state
CREATE TABLE IF NOT EXISTS invoices (
    id                  VARCHAR(32) PRIMARY KEY,
    invoice_number      INT NOT NULL,
    client              VARCHAR(200) NOT NULL,
    client_phone        VARCHAR(32) DEFAULT '',
    items               JSONB NOT NULL DEFAULT '[]'::jsonb,
    discount            JSONB,
    payment             JSONB NOT NULL DEFAULT '{}'::jsonb,
    amount              NUMERIC(14,2) NOT NULL,
    filename            VARCHAR(255),
    is_recurring        BOOLEAN DEFAULT FALSE,
    paid                BOOLEAN NOT NULL DEFAULT FALSE,
    paid_at             TIMESTAMPTZ,
    auto_send_enabled   BOOLEAN NOT NULL DEFAULT FALSE,
    next_send_date      TIMESTAMPTZ,
    last_sent_at        TIMESTAMPTZ,
    created_at          TIMESTAMPTZ DEFAULT NOW(),
    updated_at          TIMESTAMPTZ,
    CHECK (paid = (paid_at IS NOT NULL))
);

-- Expenses attached to an invoice (profitability reporting)
CREATE TABLE IF NOT EXISTS invoice_expenses (
    id              SERIAL PRIMARY KEY,
    invoice_id      VARCHAR(32) NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
    amount          NUMERIC(14,2) NOT NULL,
    category        VARCHAR(50) DEFAULT 'Other',
    description     TEXT DEFAULT '',
    date            TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    created_at      TIMESTAMPTZ DEFAULT NOW()
);

-- Single-row invoice number counter
CREATE TABLE IF NOT EXISTS invoice_counter (
    id              INT PRIMARY KEY DEFAULT 1 CHECK (id = 1),
    current         INT NOT NULL DEFAULT 0,
    last_reset      TIMESTAMPTZ DEFAULT NOW()
);
INSERT INTO invoice_counter (id, current) VALUES (1, 0) ON CONFLICT (id) DO NOTHING;

-- Client directory: phone -> Telegram chat used by the delivery channel
CREATE TABLE IF NOT EXISTS clients (
    id              SERIAL PRIMARY KEY,
    name            VARCHAR(200) NOT NULL,
    phone           VARCHAR(32) UNIQUE,
    chat_id         BIGINT,
    note            TEXT,
    created_at      TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_invoices_number ON invoices(invoice_number);
CREATE INDEX IF NOT EXISTS idx_invoices_autosend ON invoices(next_send_date) WHERE auto_send_enabled = TRUE;
CREATE INDEX IF NOT EXISTS idx_expenses_invoice ON invoice_expenses(invoice_id);
"""


def create_tables() -> None:
    """
    Execute the schema SQL to create all tables.
    Safe to call multiple times (uses IF NOT EXISTS / ON CONFLICT).
    """
    conn = get_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        conn.commit()
        logger.info("Invoice store schema initialized.")
    except Exception as e:
        conn.rollback()
        logger.error(f"Failed to initialize schema: {e}")
        raise
    finally:
        release_connection(conn)


if __name__ == "__main__":
    from db.connection import init_pool
    init_pool()
    create_tables()
    print("✅ Invoice store schema created.")
