"""
handlers/ - Presentation Layer
================================
Telegram bot handlers for operators and clients. Each handler parses the
command, delegates to the services in `context.bot_data["office"]`, and
replies. No business logic lives here.
"""
