"""Persistence module for the VU course monitor."""

from vu_monitor.db.document_store import DocumentStore, JsonFileStore, SupabaseDocumentStore
from vu_monitor.db.state_repository import StateRepository

__all__ = [
    "DocumentStore",
    "JsonFileStore",
    "SupabaseDocumentStore",
    "StateRepository",
]
