"""Ingestion module for parsing and persisting conversations."""

from .service import IngestionService, decode_payload
from .reconcile import BlobReconciler, ReconcileReport

__all__ = [
    "IngestionService",
    "decode_payload",
    "BlobReconciler",
    "ReconcileReport",
]
