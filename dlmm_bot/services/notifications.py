"""Fire-and-forget operator notifications."""

import asyncio
import logging

logger = logging.getLogger(__name__)


def notify(message: str):
    """Send a Telegram notification if the bot is running."""
    try:
        from dlmm_bot.services.telegram_bot import get_bot
        bot = get_bot()
        if bot and bot._loop:
            asyncio.run_coroutine_threadsafe(bot.send_notification(message), bot._loop)
    except Exception as e:
        logger.debug(f"Notification not sent: {e}")
