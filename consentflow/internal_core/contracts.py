from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SelectionMode = Literal["select-university", "select-state", "not-applicable"]

RecordingMethod = Literal["signature", "voice", "photo", "biometric"]

ActState = Literal["yes", "no"]

DraftStatus = Literal["draft", "pending", "active", "paused", "completed", "rejected"]

# Position-indexed party error map; keys always address a slot in FlowState.parties.
PartyErrors = Dict[int, str]


class FlowState(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    encounter_type: str = ""
    selection_mode: Optional[SelectionMode] = None
    university_id: str = ""
    university_name: str = ""
    state_code: str = ""
    state_name: str = ""
    parties: Tuple[str, ...] = ("", "")
    intimate_acts: Dict[str, ActState] = Field(default_factory=dict)
    contract_start_time: Optional[str] = None
    contract_duration: Optional[int] = None
    contract_end_time: Optional[str] = None
    method: Optional[RecordingMethod] = None
    draft_id: Optional[str] = None
    is_collaborative: bool = False
    contract_text: Optional[str] = None
    signature_1: Optional[str] = None
    signature_2: Optional[str] = None
    photo_url: Optional[str] = None

    @field_validator("parties", mode="before")
    @classmethod
    def _coerce_parties(cls, value: Any) -> Any:
        if isinstance(value, list):
            return tuple(value)
        return value

    @model_validator(mode="after")
    def _validate_invariants(self) -> "FlowState":
        if len(self.parties) < 1:
            raise ValueError("FlowState.parties must keep at least one slot")
        has_university = bool(self.university_id or self.university_name)
        has_state = bool(self.state_code or self.state_name)
        if has_university and has_state:
            raise ValueError("university and state jurisdictions are mutually exclusive")
        if self.selection_mode == "not-applicable" and (has_university or has_state):
            raise ValueError("not-applicable selection cannot carry a university or state")
        if self.selection_mode == "select-university" and has_state:
            raise ValueError("select-university selection cannot carry a state")
        if self.selection_mode == "select-state" and has_university:
            raise ValueError("select-state selection cannot carry a university")
        if self.contract_duration is not None and self.contract_duration <= 0:
            raise ValueError("FlowState.contract_duration must be positive")
        return self


class UserPreferences(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_university_id: Optional[str] = None
    default_university_name: Optional[str] = None
    state_of_residence: Optional[str] = None
    default_encounter_type: Optional[str] = None
    default_contract_duration: Optional[int] = None


class DraftRecord(BaseModel):
    """Persisted consent contract row, snake_case as stored."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str = ""
    status: str = "draft"
    encounter_type: Optional[str] = None
    university_id: Optional[str] = None
    university_name: Optional[str] = None
    parties: Optional[List[str]] = None
    # JSON text as written by the client; older rows may hold a decoded mapping.
    intimate_acts: Optional[Any] = None
    contract_start_time: Optional[str] = None
    contract_duration: Optional[int] = None
    contract_end_time: Optional[str] = None
    method: Optional[str] = None
    is_collaborative: Optional[str] = None
    contract_text: Optional[str] = None
    signature_1: Optional[str] = None
    signature_2: Optional[str] = None
    photo_url: Optional[str] = None


class Contact(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    username: str
    nickname: Optional[str] = None


class University(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    state: str = ""


class UsState(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    code: str
    name: str


class EncounterType(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    label: str
    requires_jurisdiction: bool = False


class RecordingMethodOption(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: RecordingMethod
    label: str
    description: str
    route: str


WizardEventType = Literal[
    "WIZARD_STARTED",
    "STATE_MERGED",
    "STEP_ADVANCED",
    "STEP_BLOCKED",
    "STEP_BACK",
    "STEP_REPINNED",
    "DRAFT_HYDRATED",
    "DRAFT_LOAD_FAILED",
    "DRAFT_SAVED",
    "DRAFT_SAVE_FAILED",
    "DRAFT_SUBMITTED",
    "HANDOFF_READY",
    "WIZARD_RESET",
    "SESSION_DESTROYED",
    "ERROR",
]


class WizardEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ts_iso: str
    session_id: str
    type: WizardEventType
    code: str
    detail: str
