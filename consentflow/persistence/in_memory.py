from __future__ import annotations

"""
In-process implementations of the wizard's external collaborators.

Design intent:
- Serve the API and tests without a database.
- Mirror the remote contract: drafts are owner-scoped and only "draft" rows update.
"""

import json
import logging
import time
import uuid
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Iterable, List, Mapping, Optional

from consentflow.internal_core.contracts import Contact, DraftRecord

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = set(DraftRecord.model_fields) - {"id", "user_id"}


class InMemoryDraftPersistence:
    def __init__(self) -> None:
        self._lock = RLock()
        self._drafts: Dict[str, Dict[str, Any]] = {}

    def create(self, draft: Mapping[str, Any]) -> DraftRecord:
        owner_id = str(draft.get("user_id") or "").strip()
        if not owner_id:
            raise ValueError("user_id is required to create a draft")
        if not str(draft.get("encounter_type") or "").strip():
            raise ValueError("Encounter type is required")
        draft_id = uuid.uuid4().hex
        row = {key: value for key, value in draft.items() if key in _UPDATABLE_FIELDS}
        row.update(id=draft_id, user_id=owner_id, created_at=time.time())
        with self._lock:
            self._drafts[draft_id] = row
        return DraftRecord.model_validate(row)

    def update(self, draft_id: str, owner_id: str, patch: Mapping[str, Any]) -> Optional[DraftRecord]:
        with self._lock:
            row = self._drafts.get(draft_id)
            if row is None or row.get("user_id") != owner_id:
                return None
            if row.get("status", "draft") != "draft":
                return None
            row.update({key: value for key, value in patch.items() if key in _UPDATABLE_FIELDS})
            return DraftRecord.model_validate(row)

    def fetch(self, draft_id: str, owner_id: str) -> Optional[DraftRecord]:
        with self._lock:
            row = self._drafts.get(draft_id)
            if row is None or row.get("user_id") != owner_id:
                return None
            return DraftRecord.model_validate(dict(row))

    def put(self, record: DraftRecord) -> DraftRecord:
        """Seed a stored row as-is, bypassing create-time checks."""
        with self._lock:
            self._drafts[record.id] = record.model_dump()
        return record

    def list_drafts(self, owner_id: str) -> List[DraftRecord]:
        with self._lock:
            rows = [dict(row) for row in self._drafts.values() if row.get("user_id") == owner_id]
        return [DraftRecord.model_validate(row) for row in rows if row.get("status") == "draft"]


class InMemoryContactDirectory:
    def __init__(self, contacts: Optional[Mapping[str, Iterable[Contact]]] = None) -> None:
        self._lock = RLock()
        self._contacts: Dict[str, List[Contact]] = {
            owner: list(items) for owner, items in (contacts or {}).items()
        }

    def add(self, owner_id: str, contact: Contact) -> None:
        with self._lock:
            self._contacts.setdefault(owner_id, []).append(contact)

    def list(self, owner_id: str) -> List[Contact]:
        with self._lock:
            return list(self._contacts.get(owner_id, []))


class InMemorySnapshotStorage:
    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, str] = {}

    def load(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def save(self, key: str, payload: str) -> None:
        with self._lock:
            self._items[key] = payload

    def remove(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)


class JsonFileSnapshotStorage:
    """One JSON file per key under a root directory."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._lock = RLock()

    def _path(self, key: str) -> Path:
        safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in key)
        return self._root / f"{safe}.json"

    def load(self, key: str) -> Optional[str]:
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return None
            return path.read_text(encoding="utf-8")

    def save(self, key: str, payload: str) -> None:
        # Reject non-JSON early so a later load never has to.
        json.loads(payload)
        path = self._path(key)
        with self._lock:
            self._root.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(path)

    def remove(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to remove snapshot %s: %s", path, exc)
