"""Tests for webhook registration retries."""
import pytest
from aiogram.exceptions import TelegramBadRequest, TelegramRetryAfter
from aiogram.methods import SetWebhook

from imgbed.services import webhook
from imgbed.services.webhook import register_webhook

URL = "https://img.example.com/webhook"


class _Bot:
    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def set_webhook(self, url):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return True


def _rate_limited():
    return TelegramRetryAfter(method=SetWebhook(url=URL), message="Too Many Requests", retry_after=0)


@pytest.mark.asyncio
async def test_retries_after_rate_limit():
    bot = _Bot(_rate_limited(), _rate_limited())

    assert await register_webhook(bot, URL) is True
    assert bot.calls == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    bot = _Bot(*[_rate_limited() for _ in range(5)])

    assert await register_webhook(bot, URL) is False
    assert bot.calls == 3


@pytest.mark.asyncio
async def test_api_error_is_not_retried():
    bot = _Bot(TelegramBadRequest(method=SetWebhook(url=URL), message="bad webhook"))

    assert await register_webhook(bot, URL) is False
    assert bot.calls == 1


@pytest.mark.asyncio
async def test_no_wait_after_final_rate_limit(monkeypatch):
    waits = []

    async def fake_sleep(delay):
        waits.append(delay)

    monkeypatch.setattr(webhook.asyncio, "sleep", fake_sleep)
    limited = TelegramRetryAfter(method=SetWebhook(url=URL), message="Too Many Requests", retry_after=5)
    bot = _Bot(limited, limited, limited)

    assert await register_webhook(bot, URL) is False
    assert bot.calls == 3
    assert waits == [5, 5]
