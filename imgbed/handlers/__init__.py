from aiogram import Dispatcher

from imgbed.handlers import callbacks, errors, panel, text, uploads


def register_all_handlers(dp: Dispatcher) -> None:
    dp.errors.register(errors.log_update_error)
    dp.include_router(panel.router)
    dp.include_router(callbacks.router)
    dp.include_router(uploads.router)
    # text must stay last, it catches every plain message
    dp.include_router(text.router)
