"""
Key-value document storage.

Every state document is a flat JSON object that is rewritten in full on
each save. Two backends are provided: JSON files on local disk and a
Supabase table with one row per document.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from supabase import Client

from vu_monitor.exceptions import StoreError

logger = logging.getLogger(__name__)

# Table name in Supabase
TABLE_NAME = "monitor_documents"


class DocumentStore(ABC):
    """Loads and saves whole documents by key."""

    @abstractmethod
    def load(self, key: str) -> Optional[dict]:
        """Return the stored document, or None if it was never saved."""
        pass

    @abstractmethod
    def save(self, key: str, document: dict) -> None:
        """Replace the stored document."""
        pass


class JsonFileStore(DocumentStore):
    """
    Stores each document as ``<directory>/<key>.json``.

    Writes go through a temporary file and an atomic rename so a crash
    never leaves a truncated document behind.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> Optional[dict]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt document {path}: {e}")
            raise StoreError(f"Corrupt document {path}: {e}") from e
        except OSError as e:
            raise StoreError(f"Could not read {path}: {e}") from e

    def save(self, key: str, document: dict) -> None:
        path = self._path(key)
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, path)
        except OSError as e:
            raise StoreError(f"Could not write {path}: {e}") from e


class SupabaseDocumentStore(DocumentStore):
    """Stores documents in a Supabase table keyed by document name."""

    def __init__(self, client: Client):
        """
        Initialize the Supabase-backed store.

        Args:
            client: Configured Supabase client
        """
        self.client = client
        self.table = self.client.table(TABLE_NAME)

    def load(self, key: str) -> Optional[dict]:
        try:
            result = (
                self.table
                .select("body")
                .eq("key", key)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Error loading document {key}: {e}") from e

        if not result.data:
            return None
        return result.data[0]["body"]

    def save(self, key: str, document: dict) -> None:
        try:
            self.table.upsert(
                {
                    "key": key,
                    "body": document,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                },
                on_conflict="key",
            ).execute()
        except Exception as e:
            raise StoreError(f"Error saving document {key}: {e}") from e

        logger.debug(f"Saved document: {key}")


# SQL for creating the Supabase table (run this in Supabase SQL Editor)
CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS monitor_documents (
    key TEXT PRIMARY KEY,
    body JSONB NOT NULL,
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

ALTER TABLE monitor_documents ENABLE ROW LEVEL SECURITY;

CREATE POLICY "Service role has full access" ON monitor_documents
    FOR ALL
    USING (true)
    WITH CHECK (true);
"""
