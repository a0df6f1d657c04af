"""
Document Store - JSON-file backed collections.

One file per collection under the data directory, holding an object of
{doc_id: document}. Writes go through a temp file and an atomic replace so
a failed write never leaves a half-written collection behind.
"""
import json
import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import Optional

from ..engine.errors import PersistenceFailure, NotFound

logger = logging.getLogger(__name__)

ORDERS = 'orders'
CUSTOMERS = 'customers'
ACCOUNTS = 'accounts'
MERGED_GROUPS = 'mergedGroups'
COUNTERS = 'counters'
SETTINGS = 'systemSettings'
UPLOADS = 'uploads'
SHEETS = 'sheets'


class DocumentStore:
    """Keyed document collections with partial-merge updates."""

    COLLECTIONS = (ORDERS, CUSTOMERS, ACCOUNTS, MERGED_GROUPS, COUNTERS, SETTINGS, UPLOADS)

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def _path(self, collection: str) -> Path:
        if collection not in self.COLLECTIONS:
            raise ValueError(f"Unknown collection '{collection}'")
        return self.data_dir / f"{collection}.json"

    def _read(self, collection: str) -> dict[str, dict]:
        path = self._path(collection)
        if not path.exists():
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read %s: %s", path, e)
            raise PersistenceFailure(f"Could not read {collection}: {e}") from e

    def _write(self, collection: str, docs: dict[str, dict]):
        path = self._path(collection)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{collection}.", suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(docs, f, ensure_ascii=False, indent=2, default=str)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to write %s: %s", path, e)
            raise PersistenceFailure(f"Could not write {collection}: {e}") from e

    def list(self, collection: str) -> list[tuple[str, dict]]:
        """All documents of a collection in insertion order."""
        return list(self._read(collection).items())

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        return self._read(collection).get(doc_id)

    def require(self, collection: str, doc_id: str) -> dict:
        doc = self.get(collection, doc_id)
        if doc is None:
            raise NotFound(f"{collection} document '{doc_id}' not found")
        return doc

    def create(self, collection: str, doc: dict, doc_id: Optional[str] = None) -> str:
        """Insert a new document, generating an id when none is given."""
        docs = self._read(collection)
        doc_id = doc_id or uuid.uuid4().hex[:20]
        if doc_id in docs:
            raise ValueError(f"{collection} document '{doc_id}' already exists")
        docs[doc_id] = dict(doc)
        self._write(collection, docs)
        return doc_id

    def set(self, collection: str, doc_id: str, doc: dict, merge: bool = False):
        docs = self._read(collection)
        if merge and doc_id in docs:
            docs[doc_id] = {**docs[doc_id], **doc}
        else:
            docs[doc_id] = dict(doc)
        self._write(collection, docs)

    def update(self, collection: str, doc_id: str, changes: dict) -> dict:
        """Merge `changes` into an existing document and return the result."""
        docs = self._read(collection)
        if doc_id not in docs:
            raise NotFound(f"{collection} document '{doc_id}' not found")
        docs[doc_id] = {**docs[doc_id], **changes}
        self._write(collection, docs)
        return docs[doc_id]

    def delete(self, collection: str, doc_id: str) -> bool:
        docs = self._read(collection)
        if doc_id not in docs:
            raise NotFound(f"{collection} document '{doc_id}' not found")
        del docs[doc_id]
        self._write(collection, docs)
        return True

    def next_counter(self, name: str) -> int:
        """Increment and return a named sequence (order codes per channel)."""
        counters = self._read(COUNTERS)
        current = int(counters.get(name, {}).get('lastNumber', 0))
        counters[name] = {'lastNumber': current + 1}
        self._write(COUNTERS, counters)
        return current + 1
