"""Blob storage for conversation content."""

from .blob import (
    BlobStore,
    LocalBlobStore,
    S3BlobStore,
    content_key_for,
    create_blob_store,
)

__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "content_key_for",
    "create_blob_store",
]
