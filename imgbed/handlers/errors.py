import logging

from aiogram.types import ErrorEvent

logger = logging.getLogger(__name__)


async def log_update_error(event: ErrorEvent) -> bool:
    # The webhook has already been acknowledged; failures stop here.
    logger.error(
        "Unhandled error while processing update %s",
        event.update.update_id,
        exc_info=event.exception,
    )
    return True
