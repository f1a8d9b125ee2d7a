from __future__ import annotations

"""
HTTP surface for the consent wizard.

Design intent:
- Keep API orchestration thin and typed.
- Delegate every state transition to WizardController.
- Map collaborator failures to explicit HTTP errors; FlowState stays unchanged.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from consentflow.catalog.encounter_types import (
    INTIMATE_ACT_OPTIONS,
    RECORDING_METHODS,
    list_encounter_types,
)
from consentflow.catalog.jurisdictions import StaticJurisdictionDirectory, list_states
from consentflow.internal_core import InMemoryFlowStore, load_config
from consentflow.internal_core.config import project_root
from consentflow.internal_core.contracts import (
    ActState,
    DraftRecord,
    EncounterType,
    FlowState,
    RecordingMethod,
    RecordingMethodOption,
    SelectionMode,
    University,
    UserPreferences,
    UsState,
)
from consentflow.flow.session import (
    CollaborativeDraftError,
    DraftLoadError,
    DraftSaveError,
    IncompleteDraftError,
    RecordingHandoff,
    SaveInProgressError,
    StepOutcome,
    WizardController,
)
from consentflow.persistence import (
    InMemoryContactDirectory,
    InMemoryDraftPersistence,
    InMemorySnapshotStorage,
    JsonFileSnapshotStorage,
)


class StartSessionRequest(BaseModel):
    owner_id: str = Field(min_length=1, max_length=128)
    username: str = Field(default="", max_length=128)
    preferences: Optional[UserPreferences] = None


class StatePatchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    encounter_type: Optional[str] = None
    parties: Optional[list[str]] = None
    contract_start_time: Optional[str] = None
    contract_duration: Optional[int] = Field(default=None, gt=0)
    contract_end_time: Optional[str] = None
    method: Optional[RecordingMethod] = None
    contract_text: Optional[str] = None


class JurisdictionRequest(BaseModel):
    mode: SelectionMode
    university_id: Optional[str] = None
    university_name: str = ""
    state_code: Optional[str] = None


class PartyUpdateRequest(BaseModel):
    value: str = Field(default="", max_length=256)


class ActToggleRequest(BaseModel):
    act: str = Field(min_length=1, max_length=256)


class WizardSessionResponse(BaseModel):
    session_id: str
    state: FlowState
    step: int
    step_id: Optional[str]
    total_steps: int
    steps: list[str]
    can_proceed: bool
    validation_message: Optional[str] = None
    party_errors: dict[int, str] = Field(default_factory=dict)
    save_pending: bool = False
    can_save_draft: bool = False
    can_save_or_share: bool = False
    has_legal_names: bool = False


class HandoffResponse(BaseModel):
    method: RecordingMethod
    route: str
    university_id: str
    university_name: str
    parties: list[str]
    intimate_acts: dict[str, ActState]


class StepResponse(BaseModel):
    moved: bool
    step: int
    step_id: Optional[str]
    message: Optional[str] = None
    handoff: Optional[HandoffResponse] = None
    session: WizardSessionResponse


class SaveResponse(BaseModel):
    draft: DraftRecord
    session: WizardSessionResponse


app = FastAPI(title="consentflow wizard service")
logger = logging.getLogger(__name__)
_CONFIG = load_config()
logging.getLogger("consentflow").setLevel(_CONFIG.CONSENTFLOW_LOG_LEVEL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_flow_store() -> InMemoryFlowStore:
    existing = getattr(app.state, "flow_store", None)
    if isinstance(existing, InMemoryFlowStore):
        return existing
    created = InMemoryFlowStore(
        ttl_seconds=_CONFIG.CONSENTFLOW_SESSION_TTL_SECONDS,
        max_audit_events=_CONFIG.CONSENTFLOW_AUDIT_MAX_EVENTS,
    )
    setattr(app.state, "flow_store", created)
    return created


def _get_draft_persistence() -> Any:
    existing = getattr(app.state, "draft_persistence", None)
    if existing is not None:
        return existing
    created = InMemoryDraftPersistence()
    setattr(app.state, "draft_persistence", created)
    return created


def _get_contact_directory() -> Any:
    existing = getattr(app.state, "contact_directory", None)
    if existing is not None:
        return existing
    created = InMemoryContactDirectory()
    setattr(app.state, "contact_directory", created)
    return created


def _get_jurisdiction_directory() -> Any:
    existing = getattr(app.state, "jurisdiction_directory", None)
    if existing is not None:
        return existing
    seed_path = _CONFIG.CONSENTFLOW_SEED_UNIVERSITIES_PATH
    if seed_path:
        created = StaticJurisdictionDirectory.from_seed_file(seed_path)
    else:
        created = StaticJurisdictionDirectory()
    setattr(app.state, "jurisdiction_directory", created)
    return created


def _get_snapshot_storage() -> Any:
    if not _CONFIG.CONSENTFLOW_SNAPSHOT_ENABLED:
        return None
    existing = getattr(app.state, "snapshot_storage", None)
    if existing is not None:
        return existing
    if _CONFIG.CONSENTFLOW_SNAPSHOT_BACKEND == "file":
        created: Any = JsonFileSnapshotStorage(_CONFIG.snapshot_dir_path(project_root()))
    else:
        created = InMemorySnapshotStorage()
    setattr(app.state, "snapshot_storage", created)
    return created


def _controller(session_id: str) -> WizardController:
    normalized = str(session_id or "").strip()
    store = _get_flow_store()
    if not normalized or not store.has_session(normalized):
        raise HTTPException(status_code=404, detail=f"Wizard session not found: {session_id}")
    return WizardController(
        store,
        normalized,
        persistence=_get_draft_persistence(),
        contacts=_get_contact_directory(),
        jurisdictions=_get_jurisdiction_directory(),
    )


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (SaveInProgressError, CollaborativeDraftError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, IncompleteDraftError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, DraftLoadError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, DraftSaveError):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, IndexError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, LookupError):
        return HTTPException(status_code=404, detail=str(exc).strip("'\""))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.exception("unexpected wizard failure")
    return HTTPException(status_code=500, detail=str(exc))


def _serialize_session(controller: WizardController) -> WizardSessionResponse:
    view = controller.view()
    return WizardSessionResponse(
        session_id=view.session_id,
        state=view.state,
        step=view.step,
        step_id=view.step_id,
        total_steps=view.total_steps,
        steps=view.steps,
        can_proceed=view.can_proceed,
        validation_message=view.validation_message,
        party_errors=view.party_errors,
        save_pending=view.save_pending,
        can_save_draft=view.can_save_draft,
        can_save_or_share=view.can_save_or_share,
        has_legal_names=view.has_legal_names,
    )


def _serialize_handoff(handoff: Optional[RecordingHandoff]) -> Optional[HandoffResponse]:
    if handoff is None:
        return None
    return HandoffResponse(
        method=handoff.method,
        route=handoff.route,
        university_id=handoff.university_id,
        university_name=handoff.university_name,
        parties=handoff.parties,
        intimate_acts=handoff.intimate_acts,
    )


def _serialize_step(controller: WizardController, outcome: StepOutcome) -> StepResponse:
    return StepResponse(
        moved=outcome.moved,
        step=outcome.step,
        step_id=outcome.step_id,
        message=outcome.message,
        handoff=_serialize_handoff(outcome.handoff),
        session=_serialize_session(controller),
    )


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/catalog/encounter-types", response_model=list[EncounterType])
async def catalog_encounter_types() -> list[EncounterType]:
    return list_encounter_types()


@app.get("/catalog/intimate-acts", response_model=list[str])
async def catalog_intimate_acts() -> list[str]:
    return list(INTIMATE_ACT_OPTIONS)


@app.get("/catalog/recording-methods", response_model=list[RecordingMethodOption])
async def catalog_recording_methods() -> list[RecordingMethodOption]:
    return list(RECORDING_METHODS)


@app.get("/catalog/states", response_model=list[UsState])
async def catalog_states() -> list[UsState]:
    return list_states()


@app.get("/catalog/universities", response_model=list[University])
async def catalog_universities() -> list[University]:
    return list(_get_jurisdiction_directory().list_universities())


@app.post("/wizard/sessions", response_model=WizardSessionResponse)
async def start_session(payload: StartSessionRequest) -> WizardSessionResponse:
    store = _get_flow_store()
    expired = store.cleanup_expired_sessions()
    if expired:
        logger.info("dropped %d expired wizard sessions", expired)
    controller = WizardController.start(
        store,
        payload.owner_id,
        preferences=payload.preferences,
        username=payload.username,
        party_slots=_CONFIG.CONSENTFLOW_DEFAULT_PARTY_SLOTS,
        snapshot_storage=_get_snapshot_storage(),
        persistence=_get_draft_persistence(),
        contacts=_get_contact_directory(),
        jurisdictions=_get_jurisdiction_directory(),
    )
    return _serialize_session(controller)


@app.get("/wizard/sessions/{session_id}", response_model=WizardSessionResponse)
async def get_session(session_id: str) -> WizardSessionResponse:
    return _serialize_session(_controller(session_id))


@app.delete("/wizard/sessions/{session_id}", response_model=WizardSessionResponse)
async def cancel_session(session_id: str) -> WizardSessionResponse:
    controller = _controller(session_id)
    controller.cancel()
    return _serialize_session(controller)


@app.patch("/wizard/sessions/{session_id}/state", response_model=WizardSessionResponse)
async def patch_state(session_id: str, payload: StatePatchRequest) -> WizardSessionResponse:
    controller = _controller(session_id)
    fields = payload.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="Provide at least one field to update.")
    try:
        controller.update(**fields)
    except Exception as exc:
        raise _http_error(exc) from exc
    return _serialize_session(controller)


@app.post("/wizard/sessions/{session_id}/jurisdiction", response_model=WizardSessionResponse)
async def set_jurisdiction(session_id: str, payload: JurisdictionRequest) -> WizardSessionResponse:
    controller = _controller(session_id)
    try:
        if payload.mode == "select-university" and payload.university_id:
            controller.select_university(payload.university_id, payload.university_name)
        elif payload.mode == "select-state" and payload.state_code:
            controller.select_state(payload.state_code)
        else:
            controller.set_selection_mode(payload.mode)
    except Exception as exc:
        raise _http_error(exc) from exc
    return _serialize_session(controller)


@app.post("/wizard/sessions/{session_id}/parties", response_model=WizardSessionResponse)
async def add_party_slot(session_id: str) -> WizardSessionResponse:
    controller = _controller(session_id)
    controller.add_party()
    return _serialize_session(controller)


@app.put("/wizard/sessions/{session_id}/parties/{index}", response_model=WizardSessionResponse)
async def update_party(session_id: str, index: int, payload: PartyUpdateRequest) -> WizardSessionResponse:
    controller = _controller(session_id)
    try:
        controller.update_party(index, payload.value)
    except Exception as exc:
        raise _http_error(exc) from exc
    return _serialize_session(controller)


@app.delete("/wizard/sessions/{session_id}/parties/{index}", response_model=WizardSessionResponse)
async def remove_party(session_id: str, index: int) -> WizardSessionResponse:
    controller = _controller(session_id)
    try:
        controller.remove_party(index)
    except Exception as exc:
        raise _http_error(exc) from exc
    return _serialize_session(controller)


@app.post(
    "/wizard/sessions/{session_id}/parties/contacts/{contact_id}",
    response_model=WizardSessionResponse,
)
async def add_contact_party(session_id: str, contact_id: str) -> WizardSessionResponse:
    controller = _controller(session_id)
    try:
        controller.add_contact_by_id(contact_id)
    except Exception as exc:
        raise _http_error(exc) from exc
    return _serialize_session(controller)


@app.post("/wizard/sessions/{session_id}/acts/toggle", response_model=WizardSessionResponse)
async def toggle_act(session_id: str, payload: ActToggleRequest) -> WizardSessionResponse:
    controller = _controller(session_id)
    try:
        controller.toggle_act(payload.act)
    except Exception as exc:
        raise _http_error(exc) from exc
    return _serialize_session(controller)


@app.post("/wizard/sessions/{session_id}/next", response_model=StepResponse)
async def next_step(session_id: str) -> StepResponse:
    controller = _controller(session_id)
    outcome = controller.advance()
    return _serialize_step(controller, outcome)


@app.post("/wizard/sessions/{session_id}/back", response_model=StepResponse)
async def previous_step(session_id: str) -> StepResponse:
    controller = _controller(session_id)
    outcome = controller.back()
    return _serialize_step(controller, outcome)


@app.post("/wizard/sessions/{session_id}/save", response_model=SaveResponse)
async def save_draft(session_id: str) -> SaveResponse:
    controller = _controller(session_id)
    try:
        record = controller.save_draft()
    except Exception as exc:
        raise _http_error(exc) from exc
    return SaveResponse(draft=record, session=_serialize_session(controller))


@app.post("/wizard/sessions/{session_id}/submit", response_model=SaveResponse)
async def submit_draft(session_id: str) -> SaveResponse:
    controller = _controller(session_id)
    try:
        record = controller.submit()
    except Exception as exc:
        raise _http_error(exc) from exc
    return SaveResponse(draft=record, session=_serialize_session(controller))


@app.post("/wizard/sessions/{session_id}/resume/{draft_id}", response_model=WizardSessionResponse)
async def resume_draft(session_id: str, draft_id: str) -> WizardSessionResponse:
    controller = _controller(session_id)
    try:
        controller.resume(draft_id)
    except Exception as exc:
        raise _http_error(exc) from exc
    return _serialize_session(controller)
