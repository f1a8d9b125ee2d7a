from __future__ import annotations

"""
Per-step completion gates for the consent wizard.

Design intent:
- One static table maps each step id to its predicate and message.
- Gates are side-effect free; callers decide how to surface the message.
"""

from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from consentflow.internal_core.contracts import FlowState

from .acts import selected_acts
from .parties import valid_parties
from .topology import StepId, StepTopology

ENCOUNTER_TYPE_MESSAGE = "Please select an encounter type"
JURISDICTION_MESSAGE = "Please select a university, state, or mark as not applicable"
PARTIES_MISSING_MESSAGE = "Please enter names for both parties"
PARTY_ERRORS_MESSAGE = "Please fix the errors in party names"
ACTS_MESSAGE = "Please select at least one intimate act"
METHOD_MESSAGE = "Please select a recording method"
SAVE_DRAFT_MESSAGE = "Please select an encounter type before saving"
SAVE_OR_SHARE_MESSAGE = "Please fill in encounter type, at least one party name, and select a method"

MIN_PARTIES = 2


@dataclass(frozen=True)
class GateContext:
    state: FlowState
    party_errors: Mapping[int, str]


# Returns the failure message, or None when the step is complete.
StepGate = Callable[[GateContext], Optional[str]]


def _encounter_type_gate(ctx: GateContext) -> Optional[str]:
    return None if ctx.state.encounter_type != "" else ENCOUNTER_TYPE_MESSAGE


def _university_gate(ctx: GateContext) -> Optional[str]:
    state = ctx.state
    if state.university_id != "" or state.state_code != "" or state.selection_mode == "not-applicable":
        return None
    return JURISDICTION_MESSAGE


def _parties_gate(ctx: GateContext) -> Optional[str]:
    if len(valid_parties(ctx.state.parties)) < MIN_PARTIES:
        return PARTIES_MISSING_MESSAGE
    if ctx.party_errors:
        return PARTY_ERRORS_MESSAGE
    return None


def _intimate_acts_gate(ctx: GateContext) -> Optional[str]:
    return None if selected_acts(ctx.state.intimate_acts) else ACTS_MESSAGE


def _duration_gate(ctx: GateContext) -> Optional[str]:
    return None


def _recording_method_gate(ctx: GateContext) -> Optional[str]:
    return None if ctx.state.method is not None else METHOD_MESSAGE


STEP_GATES: dict[StepId, StepGate] = {
    "encounterType": _encounter_type_gate,
    "university": _university_gate,
    "parties": _parties_gate,
    "intimateActs": _intimate_acts_gate,
    "duration": _duration_gate,
    "recordingMethod": _recording_method_gate,
}


def _failure(
    state: FlowState,
    topology: StepTopology,
    current_step: int,
    party_errors: Mapping[int, str] | None,
) -> tuple[bool, Optional[str]]:
    step_id = topology.step_at(current_step)
    if step_id is None:
        return True, None
    message = STEP_GATES[step_id](GateContext(state=state, party_errors=party_errors or {}))
    return message is not None, message


def can_proceed(
    state: FlowState,
    topology: StepTopology,
    current_step: int,
    party_errors: Mapping[int, str] | None = None,
) -> bool:
    failed, _ = _failure(state, topology, current_step, party_errors)
    return not failed


def validation_message(
    state: FlowState,
    topology: StepTopology,
    current_step: int,
    party_errors: Mapping[int, str] | None = None,
) -> Optional[str]:
    _, message = _failure(state, topology, current_step, party_errors)
    return message


def has_required_data(state: FlowState) -> bool:
    if not state.encounter_type.strip():
        return False
    return len(valid_parties(state.parties)) >= MIN_PARTIES


def can_save_draft(state: FlowState, current_step: int) -> bool:
    if current_step < 1:
        return False
    return bool(state.encounter_type)


def can_save_or_share(state: FlowState, party_errors: Mapping[int, str] | None = None) -> bool:
    if not state.encounter_type or not state.method:
        return False
    errors = party_errors or {}
    usable = [
        party
        for index, party in enumerate(state.parties)
        if party.strip() and index not in errors
    ]
    return len(usable) >= MIN_PARTIES
