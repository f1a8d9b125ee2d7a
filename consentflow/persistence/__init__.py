"""
Reference implementations of the wizard's external collaborators.

Design intent:
- Satisfy the protocols in consentflow.flow.ports without a database.
- Keep remote-store semantics (owner scoping, draft-only updates) observable in tests.
"""

from .in_memory import (
    InMemoryContactDirectory,
    InMemoryDraftPersistence,
    InMemorySnapshotStorage,
    JsonFileSnapshotStorage,
)

__all__ = [
    "InMemoryContactDirectory",
    "InMemoryDraftPersistence",
    "InMemorySnapshotStorage",
    "JsonFileSnapshotStorage",
]
