from __future__ import annotations

"""
Map between persisted drafts, local snapshots and FlowState.

Design intent:
- Hydration never aborts on one bad field; it logs and falls back per field.
- Outgoing payloads use the persisted snake_case schema and drop blank parties.
- Fresh states start from the user's saved preferences.
"""

import json
import logging
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from consentflow.catalog.jurisdictions import state_name as lookup_state_name
from consentflow.internal_core.contracts import (
    ActState,
    DraftRecord,
    FlowState,
    RecordingMethod,
    UserPreferences,
)

from .parties import canonical_username, normalize_party, valid_parties

logger = logging.getLogger(__name__)

SNAPSHOT_KEY_PREFIX = "pmy_consent_flow_state"

_VALID_METHODS: set[str] = {"signature", "voice", "photo", "biometric"}
_VALID_MODES: set[str] = {"select-university", "select-state", "not-applicable"}
_VALID_ACT_STATES: set[str] = {"yes", "no"}


def snapshot_key(owner_id: str) -> str:
    return f"{SNAPSHOT_KEY_PREFIX}:{owner_id}"


def _non_empty_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value != "":
        return value
    return None


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int) and value > 0:
        return value
    if isinstance(value, float) and value > 0 and value.is_integer():
        return int(value)
    return None


def _method(value: Any) -> Optional[RecordingMethod]:
    if isinstance(value, str) and value in _VALID_METHODS:
        return value  # type: ignore[return-value]
    return None


def _clean_acts(raw: Mapping[Any, Any]) -> dict[str, ActState]:
    acts: dict[str, ActState] = {}
    for name, value in raw.items():
        if isinstance(name, str) and name and value in _VALID_ACT_STATES:
            acts[name] = value
    return acts


def parse_intimate_acts(raw: Any) -> dict[str, ActState]:
    """Decode the stored act mapping; malformed content means no acts recorded."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Failed to parse intimate_acts, treating as empty: %s", exc)
            return {}
    if not isinstance(raw, dict):
        logger.warning("intimate_acts is not a mapping (got %s), treating as empty", type(raw).__name__)
        return {}
    return _clean_acts(raw)


def fresh_state(
    preferences: UserPreferences | None = None,
    *,
    username: str = "",
    party_slots: int = 2,
) -> FlowState:
    prefs = preferences or UserPreferences()
    slots = [""] * max(1, party_slots)
    if username.strip():
        slots[0] = canonical_username(username)

    university_id = prefs.default_university_id or ""
    state_code = "" if university_id else (prefs.state_of_residence or "").strip().upper()

    return FlowState(
        encounter_type=prefs.default_encounter_type or "",
        university_id=university_id,
        university_name=(prefs.default_university_name or "") if university_id else "",
        state_code=state_code,
        state_name=lookup_state_name(state_code) if state_code else "",
        parties=tuple(slots),
        contract_duration=_positive_int(prefs.default_contract_duration),
    )


def draft_to_state(draft: DraftRecord) -> FlowState:
    parties = tuple(normalize_party(party) for party in (draft.parties or []) if isinstance(party, str))
    return FlowState(
        draft_id=draft.id,
        encounter_type=draft.encounter_type or "",
        university_id=draft.university_id or "",
        university_name=draft.university_name or "",
        parties=parties or ("", ""),
        intimate_acts=parse_intimate_acts(draft.intimate_acts),
        contract_start_time=draft.contract_start_time or None,
        contract_duration=_positive_int(draft.contract_duration),
        contract_end_time=draft.contract_end_time or None,
        method=_method(draft.method),
        is_collaborative=draft.is_collaborative == "true",
        contract_text=draft.contract_text or None,
        signature_1=draft.signature_1 or None,
        signature_2=draft.signature_2 or None,
        photo_url=draft.photo_url or None,
    )


def default_contract_text(state: FlowState) -> str:
    return (
        "Consent Contract\n\n"
        f"Encounter Type: {state.encounter_type}\n"
        f"Parties: {', '.join(valid_parties(state.parties))}\n"
        f"Intimate Acts: {', '.join(state.intimate_acts.keys())}\n"
        f"University: {state.university_name or 'N/A'}\n"
    )


def state_to_draft_payload(state: FlowState, *, status: str = "draft") -> dict[str, Any]:
    return {
        "contract_text": state.contract_text or default_contract_text(state),
        "university_id": state.university_id or None,
        "university_name": state.university_name or None,
        "encounter_type": state.encounter_type,
        "parties": valid_parties(state.parties),
        "intimate_acts": json.dumps(state.intimate_acts),
        "contract_start_time": state.contract_start_time or None,
        "contract_duration": state.contract_duration or None,
        "contract_end_time": state.contract_end_time or None,
        "method": state.method,
        "status": status,
        "is_collaborative": "false",
        "signature_1": state.signature_1 or None,
        "signature_2": state.signature_2 or None,
        "photo_url": state.photo_url or None,
    }


def dump_snapshot(state: FlowState) -> str:
    return state.model_dump_json()


def restore_snapshot(
    raw: Optional[str],
    preferences: UserPreferences | None = None,
    *,
    username: str = "",
    party_slots: int = 2,
) -> FlowState:
    """Rebuild a FlowState from a local snapshot, field by field.

    Each saved field is kept only when it has the expected shape; otherwise
    the preference-backed default for that field is used. Anything that still
    fails model validation falls back to a fresh state.
    """
    defaults = fresh_state(preferences, username=username, party_slots=party_slots)
    if not raw:
        return defaults
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error("Failed to restore flow snapshot: %s", exc)
        return defaults
    if not isinstance(parsed, dict):
        logger.error("Flow snapshot is not an object, starting fresh")
        return defaults

    state_code = _non_empty_str(parsed.get("state_code")) or defaults.state_code
    saved_state_name = _non_empty_str(parsed.get("state_name")) or defaults.state_name
    if state_code and not saved_state_name:
        saved_state_name = lookup_state_name(state_code)

    mode = parsed.get("selection_mode")
    selection_mode = mode if mode in _VALID_MODES else None

    raw_parties = parsed.get("parties")
    if isinstance(raw_parties, list) and raw_parties and all(isinstance(p, str) for p in raw_parties):
        parties = tuple(raw_parties)
    else:
        parties = defaults.parties

    raw_acts = parsed.get("intimate_acts")
    acts = _clean_acts(raw_acts) if isinstance(raw_acts, dict) else {}

    candidate: dict[str, Any] = {
        "university_id": _non_empty_str(parsed.get("university_id")) or defaults.university_id,
        "university_name": _non_empty_str(parsed.get("university_name")) or defaults.university_name,
        "state_code": state_code,
        "state_name": saved_state_name,
        "selection_mode": selection_mode,
        "encounter_type": _non_empty_str(parsed.get("encounter_type")) or defaults.encounter_type,
        "parties": parties,
        "intimate_acts": acts or dict(defaults.intimate_acts),
        "contract_start_time": _non_empty_str(parsed.get("contract_start_time")) or defaults.contract_start_time,
        "contract_duration": _positive_int(parsed.get("contract_duration")) or defaults.contract_duration,
        "contract_end_time": _non_empty_str(parsed.get("contract_end_time")) or defaults.contract_end_time,
        "method": _method(parsed.get("method")),
        "draft_id": _non_empty_str(parsed.get("draft_id")),
        "is_collaborative": parsed.get("is_collaborative") is True,
        "contract_text": _non_empty_str(parsed.get("contract_text")),
        "signature_1": _non_empty_str(parsed.get("signature_1")),
        "signature_2": _non_empty_str(parsed.get("signature_2")),
        "photo_url": _non_empty_str(parsed.get("photo_url")),
    }
    _settle_jurisdiction(candidate)

    try:
        return FlowState.model_validate(candidate)
    except ValidationError as exc:
        logger.error("Flow snapshot failed validation, starting fresh: %s", exc)
        return defaults


def _settle_jurisdiction(candidate: dict[str, Any]) -> None:
    # Saved and preference defaults can each contribute a pair; keep one.
    has_university = bool(candidate["university_id"])
    has_state = bool(candidate["state_code"])
    mode = candidate["selection_mode"]
    if mode == "not-applicable":
        candidate.update(university_id="", university_name="", state_code="", state_name="")
    elif has_university and has_state:
        if mode == "select-state":
            candidate.update(university_id="", university_name="")
        else:
            candidate.update(state_code="", state_name="")
    elif mode == "select-university" and has_state:
        candidate.update(state_code="", state_name="")
    elif mode == "select-state" and has_university:
        candidate.update(university_id="", university_name="")
