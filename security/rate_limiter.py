"""
security/rate_limiter.py
-------------------------
Per-user sliding-window rate limiting for bot commands.
"""

import time
from collections import defaultdict, deque
from functools import wraps
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from config import RATE_LIMIT_MESSAGES, RATE_LIMIT_WINDOW_SECONDS
from utils.logger import get_logger

logger = get_logger(__name__)

# {user_id: deque of request timestamps inside the window}
_requests: dict[int, deque] = defaultdict(deque)


def allow_request(user_id: int, now: float | None = None) -> bool:
    """
    Record a request and tell whether it fits in the current window.

    Args:
        user_id: Telegram user ID.
        now: Monotonic timestamp; taken from time.monotonic() when omitted.
    """
    now = time.monotonic() if now is None else now
    window = _requests[user_id]
    while window and window[0] <= now - RATE_LIMIT_WINDOW_SECONDS:
        window.popleft()
    if len(window) >= RATE_LIMIT_MESSAGES:
        return False
    window.append(now)
    return True


def rate_limited(func: Callable):
    """
    Decorator that enforces RATE_LIMIT_MESSAGES per RATE_LIMIT_WINDOW_SECONDS
    per user; over-limit requests get a warning and are not handled.
    """
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        user = update.effective_user
        if not user:
            return

        if not allow_request(user.id):
            logger.warning(f"⚠️ Rate limit hit for user {user.id}")
            await update.message.reply_text("⚠️ Too many requests. Please wait a moment and try again.")
            return

        return await func(update, context, *args, **kwargs)

    return wrapper
