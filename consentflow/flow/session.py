from __future__ import annotations

"""
Event-driven entry points for one consent wizard session.

Design intent:
- Every write is a partial merge against the latest store snapshot.
- The step cursor is re-pinned whenever the topology changes shape.
- Remote failures leave FlowState exactly as it was and surface as typed errors.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from consentflow.catalog.encounter_types import get_recording_method
from consentflow.catalog.jurisdictions import state_name as lookup_state_name
from consentflow.internal_core.audit import log_event
from consentflow.internal_core.contracts import (
    ActState,
    Contact,
    DraftRecord,
    FlowState,
    PartyErrors,
    RecordingMethod,
    SelectionMode,
    UserPreferences,
)
from consentflow.internal_core.flow_store import InMemoryFlowStore, PatchSource

from . import parties as party_ops
from .acts import toggle_act
from .guard import (
    SAVE_DRAFT_MESSAGE,
    SAVE_OR_SHARE_MESSAGE,
    can_proceed,
    can_save_draft,
    can_save_or_share,
    validation_message,
)
from .hydration import (
    draft_to_state,
    dump_snapshot,
    fresh_state,
    restore_snapshot,
    snapshot_key,
    state_to_draft_payload,
)
from .ports import ContactDirectory, DraftPersistence, JurisdictionDirectory, SnapshotStorage
from .resolver import StepCursor
from .topology import StepId

logger = logging.getLogger(__name__)


class DraftLoadError(RuntimeError):
    """Raised when a draft cannot be fetched for resume."""


class DraftSaveError(RuntimeError):
    """Raised when create/update of a draft fails; FlowState is untouched."""


class SaveInProgressError(RuntimeError):
    """Raised when a save is requested while another one is in flight."""


class CollaborativeDraftError(RuntimeError):
    """Raised when saving a draft that is shared with other participants."""


class IncompleteDraftError(RuntimeError):
    """Raised when the state does not meet the gate for the requested save."""


@dataclass(frozen=True)
class RecordingHandoff:
    method: RecordingMethod
    route: str
    university_id: str
    university_name: str
    parties: list[str]
    intimate_acts: dict[str, ActState]


@dataclass(frozen=True)
class StepOutcome:
    moved: bool
    step: int
    step_id: Optional[StepId]
    message: Optional[str] = None
    handoff: Optional[RecordingHandoff] = None


@dataclass(frozen=True)
class WizardView:
    session_id: str
    state: FlowState
    step: int
    step_id: Optional[StepId]
    total_steps: int
    steps: list[str]
    can_proceed: bool
    validation_message: Optional[str]
    party_errors: PartyErrors = field(default_factory=dict)
    save_pending: bool = False
    can_save_draft: bool = False
    can_save_or_share: bool = False
    has_legal_names: bool = False


class WizardController:
    def __init__(
        self,
        store: InMemoryFlowStore,
        session_id: str,
        *,
        persistence: Optional[DraftPersistence] = None,
        contacts: Optional[ContactDirectory] = None,
        jurisdictions: Optional[JurisdictionDirectory] = None,
    ) -> None:
        self._store = store
        self._session_id = session_id
        self._persistence = persistence
        self._contacts = contacts
        self._jurisdictions = jurisdictions

    @classmethod
    def start(
        cls,
        store: InMemoryFlowStore,
        owner_id: str,
        *,
        preferences: Optional[UserPreferences] = None,
        username: str = "",
        party_slots: int = 2,
        snapshot_storage: Optional[SnapshotStorage] = None,
        **collaborators: Any,
    ) -> "WizardController":
        prefs = preferences or UserPreferences()
        if snapshot_storage is not None:
            state = restore_snapshot(
                snapshot_storage.load(snapshot_key(owner_id)),
                prefs,
                username=username,
                party_slots=party_slots,
            )
        else:
            state = fresh_state(prefs, username=username, party_slots=party_slots)

        profile = {
            "username": username,
            "party_slots": party_slots,
            "preferences": prefs.model_dump(),
        }
        session_id = store.create_session(owner_id, state, profile=profile)
        controller = cls(store, session_id, **collaborators)
        store.set_party_errors(session_id, party_ops.validate_parties(state.parties))
        # Restored drafts land on their most advanced step; new flows start at 1.
        cursor = StepCursor.resolve(state) if state.draft_id else StepCursor.start(state)
        store.set_cursor(session_id, cursor)
        if snapshot_storage is not None:
            persist_snapshots(store, session_id, snapshot_storage)
        log_event(
            store,
            session_id,
            "WIZARD_STARTED",
            "started",
            f"step={cursor.step} total_steps={cursor.topology.total_steps}",
        )
        return controller

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def owner_id(self) -> str:
        return self._store.get_owner_id(self._session_id)

    @property
    def state(self) -> FlowState:
        return self._store.get_state(self._session_id)

    @property
    def party_errors(self) -> PartyErrors:
        return self._store.get_party_errors(self._session_id)

    @property
    def cursor(self) -> StepCursor:
        cursor = self._store.get_cursor(self._session_id)
        if cursor is None:
            cursor = StepCursor.start(self.state)
            self._store.set_cursor(self._session_id, cursor)
        return cursor

    def view(self) -> WizardView:
        state = self.state
        cursor = self.cursor.repin(state)
        errors = self.party_errors
        return WizardView(
            session_id=self._session_id,
            state=state,
            step=cursor.step,
            step_id=cursor.step_id,
            total_steps=cursor.topology.total_steps,
            steps=list(cursor.topology.steps),
            can_proceed=can_proceed(state, cursor.topology, cursor.step, errors),
            validation_message=validation_message(state, cursor.topology, cursor.step, errors),
            party_errors=errors,
            save_pending=self._store.is_save_pending(self._session_id),
            can_save_draft=can_save_draft(state, cursor.step),
            can_save_or_share=can_save_or_share(state, errors),
            has_legal_names=party_ops.has_legal_names(state.parties),
        )

    # -- state writes -------------------------------------------------------

    def _merge(self, patch: PatchSource) -> FlowState:
        state = self._store.merge_state(self._session_id, patch)
        self._repin(state)
        return state

    def _repin(self, state: FlowState) -> None:
        cursor = self.cursor
        repinned = cursor.repin(state)
        if repinned != cursor:
            self._store.set_cursor(self._session_id, repinned)
            log_event(
                self._store,
                self._session_id,
                "STEP_REPINNED",
                "topology_changed",
                f"from={cursor.step}/{cursor.topology.total_steps} to={repinned.step}/{repinned.topology.total_steps}",
            )

    def _revalidate(self, state: FlowState) -> PartyErrors:
        errors = party_ops.validate_parties(state.parties)
        self._store.set_party_errors(self._session_id, errors)
        return errors

    def update(self, **fields: Any) -> FlowState:
        state = self._merge(fields)
        if "parties" in fields:
            self._revalidate(state)
        return state

    def select_encounter_type(self, encounter_type: str) -> FlowState:
        return self._merge({"encounter_type": (encounter_type or "").strip()})

    def set_selection_mode(self, mode: SelectionMode) -> FlowState:
        if mode == "not-applicable":
            patch = {
                "selection_mode": mode,
                "university_id": "",
                "university_name": "",
                "state_code": "",
                "state_name": "",
            }
        elif mode == "select-university":
            patch = {"selection_mode": mode, "state_code": "", "state_name": ""}
        elif mode == "select-state":
            patch = {"selection_mode": mode, "university_id": "", "university_name": ""}
        else:
            raise ValueError(f"Unsupported selection_mode: {mode}")
        return self._merge(patch)

    def select_university(self, university_id: str, university_name: str = "") -> FlowState:
        name = university_name
        if not name and self._jurisdictions is not None:
            match = next(
                (item for item in self._jurisdictions.list_universities() if item.id == university_id),
                None,
            )
            if match is None:
                raise LookupError(f"Unknown university_id: {university_id}")
            name = match.name
        return self._merge(
            {
                "selection_mode": "select-university",
                "university_id": university_id,
                "university_name": name,
                "state_code": "",
                "state_name": "",
            }
        )

    def select_state(self, state_code: str) -> FlowState:
        code = (state_code or "").strip().upper()
        name = lookup_state_name(code)
        if not name:
            raise LookupError(f"Unknown state_code: {state_code}")
        return self._merge(
            {
                "selection_mode": "select-state",
                "state_code": code,
                "state_name": name,
                "university_id": "",
                "university_name": "",
            }
        )

    def add_party(self) -> FlowState:
        return self._merge(lambda latest: {"parties": party_ops.add_slot(latest.parties)})

    def update_party(self, index: int, raw: str) -> bool:
        """Normalize and write one slot; returns whether that slot is now error-free."""
        state = self._merge(lambda latest: {"parties": party_ops.update_party(latest.parties, index, raw)})
        errors = self._revalidate(state)
        return index not in errors

    def remove_party(self, index: int) -> FlowState:
        state = self._merge(lambda latest: {"parties": party_ops.remove_party(latest.parties, index)})
        self._revalidate(state)
        return state

    def add_contact(self, contact: Contact) -> FlowState:
        state = self._merge(
            lambda latest: {"parties": party_ops.add_contact(latest.parties, contact.username)}
        )
        self._revalidate(state)
        return state

    def add_contact_by_id(self, contact_id: str) -> FlowState:
        if self._contacts is None:
            raise LookupError("Contact directory is not configured")
        match = next((item for item in self._contacts.list(self.owner_id) if item.id == contact_id), None)
        if match is None:
            raise LookupError(f"Unknown contact_id: {contact_id}")
        return self.add_contact(match)

    def toggle_act(self, act_name: str) -> FlowState:
        if not (act_name or "").strip():
            raise ValueError("act name is required")
        return self._merge(lambda latest: {"intimate_acts": toggle_act(latest.intimate_acts, act_name)})

    def set_duration(
        self,
        *,
        contract_start_time: Optional[str] = None,
        contract_duration: Optional[int] = None,
        contract_end_time: Optional[str] = None,
    ) -> FlowState:
        return self._merge(
            {
                "contract_start_time": contract_start_time,
                "contract_duration": contract_duration,
                "contract_end_time": contract_end_time,
            }
        )

    def set_method(self, method: Optional[RecordingMethod]) -> FlowState:
        return self._merge({"method": method})

    # -- navigation ---------------------------------------------------------

    def advance(self) -> StepOutcome:
        state = self.state
        cursor = self.cursor.repin(state)
        errors = self.party_errors
        topology = cursor.topology

        if not can_proceed(state, topology, cursor.step, errors):
            message = validation_message(state, topology, cursor.step, errors)
            log_event(self._store, self._session_id, "STEP_BLOCKED", f"blocked_{cursor.step_id}", f"step={cursor.step}")
            return StepOutcome(moved=False, step=cursor.step, step_id=cursor.step_id, message=message)

        if cursor.step == topology.recording_method and state.method:
            handoff = build_handoff(state)
            log_event(self._store, self._session_id, "HANDOFF_READY", f"handoff_{state.method}", f"route={handoff.route}")
            return StepOutcome(moved=False, step=cursor.step, step_id=cursor.step_id, handoff=handoff)

        moved = cursor.moved_to(topology.next_step(cursor.step))
        self._store.set_cursor(self._session_id, moved)
        log_event(self._store, self._session_id, "STEP_ADVANCED", f"to_{moved.step_id}", f"step={moved.step}")
        return StepOutcome(moved=True, step=moved.step, step_id=moved.step_id)

    def back(self) -> StepOutcome:
        cursor = self.cursor.repin(self.state)
        if cursor.step <= 1:
            return StepOutcome(moved=False, step=cursor.step, step_id=cursor.step_id)
        moved = cursor.moved_to(cursor.topology.previous_step(cursor.step))
        self._store.set_cursor(self._session_id, moved)
        log_event(self._store, self._session_id, "STEP_BACK", f"to_{moved.step_id}", f"step={moved.step}")
        return StepOutcome(moved=True, step=moved.step, step_id=moved.step_id)

    # -- drafts -------------------------------------------------------------

    def hydrate(self, draft: DraftRecord) -> StepCursor:
        """Replace the session state with a persisted draft and resolve its step.

        Safe to call again whenever newer draft data arrives.
        """
        state = draft_to_state(draft)
        self._store.replace_state(self._session_id, state)
        errors = self._revalidate(state)
        cursor = StepCursor.resolve(state)
        self._store.set_cursor(self._session_id, cursor)
        log_event(
            self._store,
            self._session_id,
            "DRAFT_HYDRATED",
            "hydrated",
            f"draft_id={draft.id} step={cursor.step}/{cursor.topology.total_steps} party_errors={len(errors)}",
        )
        return cursor

    def resume(self, draft_id: str) -> StepCursor:
        persistence = self._require_persistence(DraftLoadError)
        try:
            draft = persistence.fetch(draft_id, self.owner_id)
        except Exception as exc:
            logger.warning("draft fetch failed draft_id=%s: %s", draft_id, exc)
            log_event(self._store, self._session_id, "DRAFT_LOAD_FAILED", "fetch_error", str(exc))
            raise DraftLoadError(f"Failed to load draft for editing: {exc}") from exc
        if draft is None:
            log_event(self._store, self._session_id, "DRAFT_LOAD_FAILED", "not_found", f"draft_id={draft_id}")
            raise DraftLoadError(f"Draft not found: {draft_id}")

        current = self.state
        if current.draft_id and current.draft_id != draft.id:
            self.reset(reason="resume_other_draft")
        return self.hydrate(draft)

    def save_draft(self) -> DraftRecord:
        state = self.state
        if not state.encounter_type:
            raise IncompleteDraftError(SAVE_DRAFT_MESSAGE)
        record = self._persist(state, status="draft")
        self._merge({"draft_id": record.id})
        log_event(self._store, self._session_id, "DRAFT_SAVED", "saved", f"draft_id={record.id}")
        return record

    def submit(self) -> DraftRecord:
        state = self.state
        if not can_save_or_share(state, self.party_errors):
            raise IncompleteDraftError(SAVE_OR_SHARE_MESSAGE)
        record = self._persist(state, status="pending")
        log_event(self._store, self._session_id, "DRAFT_SUBMITTED", "submitted", f"draft_id={record.id}")
        self.reset(reason="submitted")
        return record

    def cancel(self) -> FlowState:
        return self.reset(reason="cancelled")

    def reset(self, *, reason: str) -> FlowState:
        profile = self._store.get_profile(self._session_id)
        state = fresh_state(
            UserPreferences.model_validate(profile.get("preferences") or {}),
            username=str(profile.get("username") or ""),
            party_slots=int(profile.get("party_slots") or 2),
        )
        self._store.replace_state(self._session_id, state)
        self._store.set_party_errors(self._session_id, {})
        self._store.set_cursor(self._session_id, StepCursor.start(state))
        log_event(self._store, self._session_id, "WIZARD_RESET", reason, "")
        return state

    def _require_persistence(self, error_type: type[RuntimeError]) -> DraftPersistence:
        if self._persistence is None:
            raise error_type("Draft persistence is not configured")
        return self._persistence

    def _persist(self, state: FlowState, *, status: str) -> DraftRecord:
        if state.is_collaborative:
            raise CollaborativeDraftError("Cannot save changes to a collaborative draft.")
        persistence = self._require_persistence(DraftSaveError)
        if not self._store.begin_save(self._session_id):
            raise SaveInProgressError("A save is already in progress for this draft")
        try:
            payload = state_to_draft_payload(state, status=status)
            owner_id = self.owner_id
            try:
                if state.draft_id:
                    record = persistence.update(state.draft_id, owner_id, payload)
                    if record is None:
                        raise DraftSaveError("Draft not found or cannot be updated")
                else:
                    record = persistence.create({**payload, "user_id": owner_id})
            except DraftSaveError as exc:
                log_event(self._store, self._session_id, "DRAFT_SAVE_FAILED", "rejected", str(exc))
                raise
            except Exception as exc:
                logger.warning("draft save failed session_id=%s: %s", self._session_id, exc)
                log_event(self._store, self._session_id, "DRAFT_SAVE_FAILED", "remote_error", str(exc))
                raise DraftSaveError(str(exc) or "Failed to save draft") from exc
            return record
        finally:
            self._store.end_save(self._session_id)


def build_handoff(state: FlowState) -> RecordingHandoff:
    if state.method is None:
        raise ValueError("A recording method is required for handoff")
    option = get_recording_method(state.method)
    return RecordingHandoff(
        method=state.method,
        route=option.route if option else "",
        university_id=state.university_id,
        university_name=state.university_name,
        parties=party_ops.valid_parties(state.parties),
        intimate_acts=dict(state.intimate_acts),
    )


def persist_snapshots(store: InMemoryFlowStore, session_id: str, storage: SnapshotStorage):
    """Mirror every committed snapshot into local storage so reloads can resume."""
    key = snapshot_key(store.get_owner_id(session_id))

    def _save(_session_id: str, state: FlowState) -> None:
        try:
            storage.save(key, dump_snapshot(state))
        except Exception as exc:
            logger.error("Failed to persist flow snapshot key=%s: %s", key, exc)

    return store.subscribe(session_id, _save)
