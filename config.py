"""
config.py
---------
Central configuration module. Loads all environment variables
from the .env file and exposes them as typed constants.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent

# ── Telegram ──────────────────────────────────────────────
TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

# ── PostgreSQL ────────────────────────────────────────────
DB_HOST: str = os.getenv("DB_HOST", "localhost")
DB_PORT: int = int(os.getenv("DB_PORT", "5432"))
DB_NAME: str = os.getenv("DB_NAME", "invoicebot")
DB_USER: str = os.getenv("DB_USER", "invoicebot_user")
DB_PASS: str = os.getenv("DB_PASS", "")

DATABASE_URL: str = (
    f"postgresql://{DB_USER}:{DB_PASS}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)

# ── Security ──────────────────────────────────────────────
# Telegram IDs allowed to run operator commands. Empty = everyone (dev mode).
_raw_ids = os.getenv("OPERATOR_IDS", "")
OPERATOR_IDS: list[int] = (
    [int(uid.strip()) for uid in _raw_ids.split(",") if uid.strip()]
    if _raw_ids
    else []
)

# ── Rate Limiting ─────────────────────────────────────────
RATE_LIMIT_MESSAGES: int = int(os.getenv("RATE_LIMIT_MESSAGES", "30"))
RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# ── Invoices ──────────────────────────────────────────────
INVOICE_OUTPUT_DIR: Path = Path(os.getenv("INVOICE_OUTPUT_DIR", str(BASE_DIR / "output")))
CURRENCY_SYMBOL: str = os.getenv("CURRENCY_SYMBOL", "₽")
SELLER_NAME: str = os.getenv("SELLER_NAME", "")

# ── Auto-send scheduler ───────────────────────────────────
AUTO_SEND_ENABLED: bool = os.getenv("AUTO_SEND_ENABLED", "true").lower() in ("1", "true", "yes")
AUTO_SEND_CHECK_INTERVAL_SECONDS: int = int(os.getenv("AUTO_SEND_CHECK_INTERVAL_SECONDS", "600"))
AUTO_SEND_DELAY_SECONDS: int = int(os.getenv("AUTO_SEND_DELAY_SECONDS", "600"))
AUTO_SEND_INITIAL_DELAY_SECONDS: int = int(os.getenv("AUTO_SEND_INITIAL_DELAY_SECONDS", "60"))

# ── Logging ───────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE: str = os.getenv("LOG_FILE", "")
