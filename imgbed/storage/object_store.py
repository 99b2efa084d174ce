"""S3-compatible object store (R2, MinIO, AWS) behind a small async interface."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError

from imgbed.config import Settings
from imgbed.errors import UpstreamError, UpstreamTimeoutError

logger = logging.getLogger(__name__)

_MISSING_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


@dataclass(frozen=True)
class StoredObject:
    body: bytes
    content_type: str | None = None
    etag: str | None = None


class ObjectStore(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> None: ...

    async def get(self, key: str) -> StoredObject | None: ...

    async def delete(self, key: str) -> None: ...


def _upstream(action: str, key: str, exc: Exception) -> UpstreamError:
    if isinstance(exc, (ConnectTimeoutError, ReadTimeoutError)):
        return UpstreamTimeoutError(f"object store {action} timed out for {key}")
    return UpstreamError(f"object store {action} failed for {key}: {exc}")


class S3ObjectStore:
    def __init__(self, bucket: str, client) -> None:
        self._bucket = bucket
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore | None":
        if not settings.s3_bucket:
            return None
        client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=settings.s3_region,
        )
        return cls(settings.s3_bucket, client)

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise _upstream("put", key, exc) from exc

    async def get(self, key: str) -> StoredObject | None:
        try:
            response = await asyncio.to_thread(self._client.get_object, Bucket=self._bucket, Key=key)
            body = await asyncio.to_thread(response["Body"].read)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return None
            raise _upstream("get", key, exc) from exc
        except BotoCoreError as exc:
            raise _upstream("get", key, exc) from exc
        return StoredObject(
            body=body,
            content_type=response.get("ContentType"),
            etag=response.get("ETag"),
        )

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise _upstream("delete", key, exc) from exc
