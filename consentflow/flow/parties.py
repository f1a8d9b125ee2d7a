from __future__ import annotations

"""
Normalize and validate the participant list of a consent draft.

Design intent:
- "@name" entries are canonical usernames compared case-insensitively.
- Anything else is a free-text legal name kept as typed (trimmed).
- Errors live in a position-indexed map that tracks slot removals.
"""

import re
from typing import Mapping, Sequence

from consentflow.internal_core.contracts import PartyErrors

DUPLICATE_PARTY_MESSAGE = "This participant has already been added"
MALFORMED_USERNAME_MESSAGE = "Usernames cannot contain spaces"

_WS_RE = re.compile(r"\s")


def normalize_party(raw: str) -> str:
    trimmed = (raw or "").strip()
    if not trimmed:
        return ""
    if trimmed.startswith("@"):
        return "@" + trimmed[1:].lower()
    return trimmed


def is_username(value: str) -> bool:
    return value.strip().startswith("@")


def canonical_username(username: str) -> str:
    return "@" + (username or "").strip().lstrip("@").lower()


def valid_parties(parties: Sequence[str]) -> list[str]:
    return [party for party in parties if party.strip()]


def has_legal_names(parties: Sequence[str]) -> bool:
    return any(party.strip() and not is_username(party) for party in parties)


def validate_parties(parties: Sequence[str]) -> PartyErrors:
    errors: PartyErrors = {}
    seen: set[str] = set()
    for index, party in enumerate(parties):
        value = normalize_party(party)
        if not value or not is_username(value):
            continue
        if _WS_RE.search(value):
            errors[index] = MALFORMED_USERNAME_MESSAGE
            continue
        key = value.lower()
        if key in seen:
            errors[index] = DUPLICATE_PARTY_MESSAGE
        else:
            seen.add(key)
    return errors


def reindex_errors(errors: Mapping[int, str], removed_index: int) -> PartyErrors:
    shifted: PartyErrors = {}
    for index, message in errors.items():
        if index < removed_index:
            shifted[index] = message
        elif index > removed_index:
            shifted[index - 1] = message
    return shifted


def add_slot(parties: Sequence[str]) -> tuple[str, ...]:
    return tuple(parties) + ("",)


def update_party(parties: Sequence[str], index: int, raw: str) -> tuple[str, ...]:
    if not 0 <= index < len(parties):
        raise IndexError(f"Party index out of range: {index}")
    updated = list(parties)
    updated[index] = normalize_party(raw)
    return tuple(updated)


def remove_party(parties: Sequence[str], index: int) -> tuple[str, ...]:
    if not 0 <= index < len(parties):
        raise IndexError(f"Party index out of range: {index}")
    remaining = tuple(party for i, party in enumerate(parties) if i != index)
    return remaining or ("",)


def contains_username(parties: Sequence[str], username: str) -> bool:
    wanted = canonical_username(username).lower()
    return any(party.strip().lower() == wanted for party in parties)


def add_contact(parties: Sequence[str], username: str) -> tuple[str, ...]:
    """Place a contact's canonical @username in the first blank slot after 0."""
    if contains_username(parties, username):
        return tuple(parties)
    handle = canonical_username(username)
    for index, party in enumerate(parties):
        if index > 0 and not party.strip():
            updated = list(parties)
            updated[index] = handle
            return tuple(updated)
    return tuple(parties) + (handle,)


class PartyValidator:
    """Owns the error map for one party list."""

    def __init__(self, errors: Mapping[int, str] | None = None) -> None:
        self._errors: PartyErrors = dict(errors or {})

    @property
    def errors(self) -> PartyErrors:
        return dict(self._errors)

    def has_errors(self) -> bool:
        return bool(self._errors)

    def validate(self, parties: Sequence[str]) -> PartyErrors:
        self._errors = validate_parties(parties)
        return self.errors

    def validate_party(self, index: int, parties: Sequence[str]) -> bool:
        self.validate(parties)
        return index not in self._errors

    def remove(self, index: int) -> PartyErrors:
        self._errors = reindex_errors(self._errors, index)
        return self.errors
