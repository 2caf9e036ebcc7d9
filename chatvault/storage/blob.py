"""Blob storage for conversation content.

Design:
- One blob per conversation, keyed ``conversations/{id}.html``
- ``store`` is atomic: readers never observe a partially written blob
- Local filesystem backend for development and tests, S3 for deployment
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

import aiofiles
import aiofiles.os
import boto3

from chatvault.config import Settings
from chatvault.errors import BlobNotFoundError, StorageError

logger = logging.getLogger(__name__)

KEY_PREFIX = "conversations/"
KEY_SUFFIX = ".html"


def content_key_for(conversation_id: str) -> str:
    """Blob key for a conversation id."""
    return f"{KEY_PREFIX}{conversation_id}{KEY_SUFFIX}"


class BlobStore(ABC):
    """Abstract blob store interface."""

    @abstractmethod
    async def store(self, conversation_id: str, content: str) -> str:
        """Write content for a conversation and return its content key."""
        pass

    @abstractmethod
    async def read(self, key: str) -> str:
        """Read content by key. Raises BlobNotFoundError if missing."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a blob. Missing keys are ignored."""
        pass

    @abstractmethod
    async def list_keys(self) -> list[str]:
        """List every conversation content key in the store."""
        pass


class LocalBlobStore(BlobStore):
    """Filesystem blob store rooted at a directory.

    Content is written and read as UTF-8 bytes so it round-trips exactly,
    line endings included.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Invalid content key: {key}")
        return path

    async def store(self, conversation_id: str, content: str) -> str:
        key = content_key_for(conversation_id)
        target = self._path(key)
        tmp = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        try:
            await aiofiles.os.makedirs(target.parent, exist_ok=True)
            async with aiofiles.open(tmp, "wb") as f:
                await f.write(content.encode("utf-8"))
            await aiofiles.os.replace(tmp, target)
        except OSError as e:
            if await aiofiles.os.path.exists(tmp):
                await aiofiles.os.remove(tmp)
            raise StorageError(f"Failed to write blob {key}: {e}") from e
        return key

    async def read(self, key: str) -> str:
        path = self._path(key)
        try:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
        except FileNotFoundError:
            raise BlobNotFoundError(key)
        except OSError as e:
            raise StorageError(f"Failed to read blob {key}: {e}") from e
        return data.decode("utf-8")

    async def delete(self, key: str) -> None:
        try:
            await aiofiles.os.remove(self._path(key))
        except FileNotFoundError:
            pass

    async def list_keys(self) -> list[str]:
        try:
            names = await aiofiles.os.listdir(self.root / KEY_PREFIX)
        except FileNotFoundError:
            return []
        return sorted(
            f"{KEY_PREFIX}{name}"
            for name in names
            if name.endswith(KEY_SUFFIX) and not name.startswith(".")
        )


class S3BlobStore(BlobStore):
    """S3 blob store. boto3 calls run in a worker thread."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region: str | None = None,
        endpoint_url: str | None = None,
        client=None,
    ):
        if not bucket:
            raise StorageError("S3 blob store requires a bucket name")
        self.bucket = bucket
        self.prefix = prefix.strip("/") + "/" if prefix.strip("/") else ""
        self._client = client or boto3.client(
            "s3", region_name=region, endpoint_url=endpoint_url
        )

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def store(self, conversation_id: str, content: str) -> str:
        key = content_key_for(conversation_id)
        try:
            # PutObject is atomic: the object is visible only once fully written
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=self._object_key(key),
                Body=content.encode("utf-8"),
                ContentType="text/html; charset=utf-8",
            )
        except Exception as e:
            raise StorageError(f"Failed to write blob {key}: {e}") from e
        return key

    async def read(self, key: str) -> str:
        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=self.bucket, Key=self._object_key(key)
            )
            body = await asyncio.to_thread(response["Body"].read)
        except self._client.exceptions.NoSuchKey:
            raise BlobNotFoundError(key)
        except Exception as e:
            raise StorageError(f"Failed to read blob {key}: {e}") from e
        return body.decode("utf-8")

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.delete_object, Bucket=self.bucket, Key=self._object_key(key)
            )
        except Exception as e:
            raise StorageError(f"Failed to delete blob {key}: {e}") from e

    async def list_keys(self) -> list[str]:
        def _list() -> list[str]:
            keys = []
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(
                Bucket=self.bucket, Prefix=self._object_key(KEY_PREFIX)
            ):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"][len(self.prefix):])
            return keys

        try:
            return sorted(await asyncio.to_thread(_list))
        except Exception as e:
            raise StorageError(f"Failed to list blobs: {e}") from e


def create_blob_store(settings: Settings) -> BlobStore:
    """Build the blob store selected by configuration."""
    if settings.blob_backend == "s3":
        logger.info("Using S3 blob store bucket=%s prefix=%s", settings.s3_bucket, settings.s3_prefix)
        return S3BlobStore(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
        )
    logger.info("Using local blob store at %s", settings.blob_dir)
    return LocalBlobStore(settings.blob_dir)
