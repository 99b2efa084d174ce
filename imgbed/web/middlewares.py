import logging
from dataclasses import dataclass

from aiohttp import web

from imgbed.context import AppContext
from imgbed.errors import ImgbedError

logger = logging.getLogger(__name__)


@dataclass
class BootState:
    error: ImgbedError | None = None


CTX_KEY = web.AppKey("ctx", AppContext)
BOOT_KEY = web.AppKey("boot", BootState)


@web.middleware
async def boot_guard(request: web.Request, handler):
    """Refuse every request while the boot sequence has recorded a fatal error."""
    boot: BootState = request.app[BOOT_KEY]
    if boot.error is None:
        return await handler(request)
    if request.path == request.app[CTX_KEY].settings.webhook_path:
        # The upstream platform retries on failure statuses; acknowledge and drop.
        return web.Response(text="received")
    return web.json_response(
        {"status": 0, "message": f"Service unavailable: {boot.error.message}"},
        status=500,
    )


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ImgbedError as exc:
        if exc.status >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, exc)
        return web.json_response({"status": 0, "message": exc.message}, status=exc.status)
    except Exception:
        logger.exception("%s %s failed", request.method, request.path)
        return web.json_response({"status": 0, "message": "Internal server error"}, status=500)
