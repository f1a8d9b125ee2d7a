from __future__ import annotations

"""
Interfaces of the collaborators the wizard core consumes.

Design intent:
- The core depends on these protocols only; implementations live elsewhere.
- All calls are synchronous; callers treat any raised exception as a remote failure.
"""

from typing import Any, Mapping, Optional, Protocol, Sequence

from consentflow.internal_core.contracts import Contact, DraftRecord, University, UsState


class DraftPersistence(Protocol):
    def create(self, draft: Mapping[str, Any]) -> DraftRecord: ...

    def update(self, draft_id: str, owner_id: str, patch: Mapping[str, Any]) -> Optional[DraftRecord]: ...

    def fetch(self, draft_id: str, owner_id: str) -> Optional[DraftRecord]: ...


class ContactDirectory(Protocol):
    def list(self, owner_id: str) -> Sequence[Contact]: ...


class JurisdictionDirectory(Protocol):
    def list_universities(self) -> Sequence[University]: ...

    def list_states(self) -> Sequence[UsState]: ...


class SnapshotStorage(Protocol):
    def load(self, key: str) -> Optional[str]: ...

    def save(self, key: str, payload: str) -> None: ...

    def remove(self, key: str) -> None: ...
