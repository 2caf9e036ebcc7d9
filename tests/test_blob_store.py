import aiofiles.os
import pytest

from chatvault.config import Settings
from chatvault.errors import BlobNotFoundError, StorageError
from chatvault.storage.blob import LocalBlobStore, S3BlobStore, content_key_for, create_blob_store


async def test_store_and_read_round_trip(blob_store):
    key = await blob_store.store("abc", "<p>héllo</p>")

    assert key == "conversations/abc.html"
    assert await blob_store.read(key) == "<p>héllo</p>"


async def test_line_endings_round_trip_exactly(blob_store):
    content = "<p>hi</p>\r\n<p>there</p>\r<p>end</p>\n"

    key = await blob_store.store("crlf", content)

    assert await blob_store.read(key) == content
    assert (blob_store.root / key).read_bytes() == content.encode("utf-8")


async def test_fresh_store_has_no_keys(tmp_path):
    store = LocalBlobStore(tmp_path / "empty")

    assert await store.list_keys() == []
    assert not (tmp_path / "empty").exists()


async def test_store_overwrites_nothing_else(blob_store):
    await blob_store.store("one", "1")
    await blob_store.store("two", "2")

    assert await blob_store.list_keys() == [content_key_for("one"), content_key_for("two")]


async def test_read_missing_key(blob_store):
    with pytest.raises(BlobNotFoundError):
        await blob_store.read(content_key_for("missing"))


async def test_keys_outside_root_are_rejected(blob_store):
    with pytest.raises(StorageError):
        await blob_store.read("../../etc/passwd")


async def test_delete_is_idempotent(blob_store):
    key = await blob_store.store("gone", "x")

    await blob_store.delete(key)
    await blob_store.delete(key)

    assert await blob_store.list_keys() == []


async def test_failed_write_leaves_nothing_visible(blob_store, monkeypatch):
    async def failing_replace(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(aiofiles.os, "replace", failing_replace)

    with pytest.raises(StorageError):
        await blob_store.store("partial", "content")

    assert await blob_store.list_keys() == []
    assert list((blob_store.root / "conversations").iterdir()) == []


class _NoSuchKey(Exception):
    pass


class _FakePaginator:
    def __init__(self, objects):
        self.objects = objects

    def paginate(self, Bucket, Prefix):
        yield {"Contents": [{"Key": k} for k in sorted(self.objects) if k.startswith(Prefix)]}


class _FakeBody:
    def __init__(self, data):
        self.data = data

    def read(self):
        return self.data


class FakeS3Client:
    class exceptions:
        NoSuchKey = _NoSuchKey

    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[Key] = Body

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise _NoSuchKey(Key)
        return {"Body": _FakeBody(self.objects[Key])}

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)

    def get_paginator(self, name):
        return _FakePaginator(self.objects)


async def test_s3_store_uses_prefix_and_round_trips():
    fake = FakeS3Client()
    store = S3BlobStore(bucket="archive", prefix="/prod/", client=fake)

    key = await store.store("abc", "<p>hi</p>")

    assert key == "conversations/abc.html"
    assert fake.objects == {"prod/conversations/abc.html": b"<p>hi</p>"}
    assert await store.read(key) == "<p>hi</p>"
    assert await store.list_keys() == [key]

    await store.delete(key)
    with pytest.raises(BlobNotFoundError):
        await store.read(key)


def test_s3_store_requires_bucket():
    with pytest.raises(StorageError):
        S3BlobStore(bucket="", client=FakeS3Client())


def test_create_blob_store_defaults_to_local(tmp_path):
    store = create_blob_store(Settings(_env_file=None, blob_dir=tmp_path / "b"))

    assert isinstance(store, LocalBlobStore)
    assert (tmp_path / "b" / "conversations").is_dir()
