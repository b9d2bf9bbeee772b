"""
security/auth.py
-----------------
Operator authentication for the Telegram bot.
Invoice commands are only available to whitelisted operators.
"""

from functools import wraps
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from config import OPERATOR_IDS
from utils.logger import get_logger

logger = get_logger(__name__)


def is_operator(user_id: int) -> bool:
    """True if the user may run operator commands (everyone when the list is empty)."""
    return not OPERATOR_IDS or user_id in OPERATOR_IDS


def operator_only(func: Callable):
    """
    Decorator that restricts a handler to operators listed in OPERATOR_IDS.

    Usage:
        @operator_only
        async def paid_command(update, context):
            ...

    Behavior:
        - If OPERATOR_IDS is empty, ALL users are operators (dev mode).
        - Otherwise non-operators get a refusal and the attempt is logged.
    """
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        user = update.effective_user
        if not user:
            return

        if is_operator(user.id):
            return await func(update, context, *args, **kwargs)

        logger.warning(
            f"🚫 Non-operator tried {func.__name__}: user_id={user.id}, "
            f"username={user.username}"
        )
        await update.message.reply_text("⛔ This command is available to operators only.")

    return wrapper
