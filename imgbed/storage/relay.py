"""Relay backend transport: files live as attachments of messages in a storage chat.

Attachment paths handed out by the Bot API expire, so nothing here caches
them; every read asks for a fresh path.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Protocol

import aiohttp
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramNetworkError
from aiogram.types import BufferedInputFile, Message

from imgbed.errors import RelayResponseError, UpstreamError, UpstreamTimeoutError
from imgbed.storage.naming import CoarseType

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_DOWNLOAD_TIMEOUT = aiohttp.ClientTimeout(total=120)


@dataclass(frozen=True)
class RelayReceipt:
    attachment_ref: str
    message_id: int


class RelayClient(Protocol):
    async def send(
        self, destination: str, data: bytes, file_name: str, coarse: CoarseType
    ) -> RelayReceipt: ...

    async def resolve_current_path(self, attachment_ref: str) -> str: ...

    async def open_stream(self, transient_url: str) -> AsyncIterator[bytes]: ...

    async def delete_message(self, destination: str, message_id: int) -> None: ...


def _attachment_ref(message: Message) -> str | None:
    if message.document:
        return message.document.file_id
    if message.video:
        return message.video.file_id
    if message.audio:
        return message.audio.file_id
    if message.photo:
        return message.photo[-1].file_id
    return None


async def _iter_body(response: aiohttp.ClientResponse) -> AsyncIterator[bytes]:
    try:
        async for chunk in response.content.iter_chunked(_CHUNK_SIZE):
            yield chunk
    finally:
        response.release()


class TelegramRelay:
    def __init__(self, bot: Bot) -> None:
        self._bot = bot
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
            self._session = None

    async def send(
        self, destination: str, data: bytes, file_name: str, coarse: CoarseType
    ) -> RelayReceipt:
        upload = BufferedInputFile(data, filename=file_name)
        try:
            if coarse is CoarseType.PHOTO:
                message = await self._bot.send_photo(destination, upload)
            elif coarse is CoarseType.VIDEO:
                message = await self._bot.send_video(destination, upload)
            elif coarse is CoarseType.AUDIO:
                message = await self._bot.send_audio(destination, upload)
            else:
                message = await self._bot.send_document(destination, upload)
        except TelegramNetworkError as exc:
            raise UpstreamTimeoutError(f"relay upload failed: {exc}") from exc
        except TelegramAPIError as exc:
            raise UpstreamError(f"relay rejected the upload: {exc}") from exc

        attachment_ref = _attachment_ref(message)
        if not attachment_ref:
            raise RelayResponseError("relay response carries no attachment reference")
        if not message.message_id:
            raise RelayResponseError("relay response carries no message id")
        return RelayReceipt(attachment_ref=attachment_ref, message_id=message.message_id)

    async def resolve_current_path(self, attachment_ref: str) -> str:
        try:
            file = await self._bot.get_file(attachment_ref)
        except TelegramNetworkError as exc:
            raise UpstreamTimeoutError(f"relay getFile failed: {exc}") from exc
        except TelegramAPIError as exc:
            raise UpstreamError(f"relay getFile failed: {exc}") from exc
        if not file.file_path:
            raise UpstreamError(f"relay returned no path for {attachment_ref}")
        return self._bot.session.api.file_url(self._bot.token, file.file_path)

    async def open_stream(self, transient_url: str) -> AsyncIterator[bytes]:
        session = self._get_session()
        try:
            response = await session.get(transient_url, timeout=_DOWNLOAD_TIMEOUT)
        except asyncio.TimeoutError as exc:
            raise UpstreamTimeoutError("relay download timed out") from exc
        except aiohttp.ClientError as exc:
            raise UpstreamError(f"relay download failed: {exc}") from exc
        if response.status != 200:
            response.release()
            raise UpstreamError(f"relay download returned HTTP {response.status}")
        return _iter_body(response)

    async def delete_message(self, destination: str, message_id: int) -> None:
        try:
            await self._bot.delete_message(destination, message_id)
        except TelegramAPIError as exc:
            raise UpstreamError(f"relay deleteMessage failed: {exc}") from exc
