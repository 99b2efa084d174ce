import asyncio
import logging

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramNetworkError, TelegramRetryAfter

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY = 1


async def register_webhook(bot: Bot, url: str, max_retries: int = MAX_RETRIES) -> bool:
    """Point the bot at ``url``. Rate limits honour the server's retry_after hint."""
    for attempt in range(1, max_retries + 1):
        try:
            await bot.set_webhook(url)
        except TelegramRetryAfter as exc:
            logger.warning("Rate limited setting webhook (attempt %d), retry_after=%ss", attempt, exc.retry_after)
            if attempt < max_retries:
                await asyncio.sleep(exc.retry_after)
        except TelegramNetworkError as exc:
            logger.warning("Network error setting webhook (attempt %d): %s", attempt, exc)
            if attempt < max_retries:
                await asyncio.sleep(RETRY_DELAY)
        except TelegramAPIError as exc:
            logger.error("Failed to set webhook: %s", exc)
            return False
        else:
            logger.info("Webhook set: %s", url)
            return True

    logger.error("Failed to set webhook after %d attempts", max_retries)
    return False
