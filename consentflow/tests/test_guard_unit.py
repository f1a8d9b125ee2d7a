from consentflow.flow.guard import (
    ACTS_MESSAGE,
    ENCOUNTER_TYPE_MESSAGE,
    JURISDICTION_MESSAGE,
    METHOD_MESSAGE,
    PARTIES_MISSING_MESSAGE,
    can_proceed,
    can_save_draft,
    can_save_or_share,
    has_required_data,
    validation_message,
)
from consentflow.flow.topology import build_topology
from consentflow.internal_core.contracts import FlowState


def test_encounter_type_gate() -> None:
    topology = build_topology("")
    assert can_proceed(FlowState(), topology, 1) is False
    assert validation_message(FlowState(), topology, 1) == ENCOUNTER_TYPE_MESSAGE
    assert can_proceed(FlowState(encounter_type="medical"), build_topology("medical"), 1) is True


def test_university_gate_accepts_university_state_or_not_applicable() -> None:
    topology = build_topology("intimate")
    blank = FlowState(encounter_type="intimate")
    assert validation_message(blank, topology, 2) == JURISDICTION_MESSAGE
    assert can_proceed(blank.model_copy(update={"university_id": "u1"}), topology, 2) is True
    assert can_proceed(FlowState(encounter_type="intimate", state_code="CA", state_name="California"), topology, 2) is True
    assert can_proceed(FlowState(encounter_type="intimate", selection_mode="not-applicable"), topology, 2) is True


def test_parties_gate_requires_two_non_blank_parties() -> None:
    topology = build_topology("medical")
    state = FlowState(encounter_type="medical", parties=("@me", ""))
    assert validation_message(state, topology, topology.parties) == PARTIES_MISSING_MESSAGE
    filled = state.model_copy(update={"parties": ("@me", "Jane Doe")})
    assert can_proceed(filled, topology, topology.parties, {}) is True


def test_acts_duration_and_method_gates() -> None:
    topology = build_topology("medical")
    state = FlowState(encounter_type="medical")
    assert validation_message(state, topology, topology.intimate_acts) == ACTS_MESSAGE
    assert can_proceed(state.model_copy(update={"intimate_acts": {"Kissing": "no"}}), topology, topology.intimate_acts)
    assert can_proceed(state, topology, topology.duration) is True
    assert validation_message(state, topology, topology.recording_method) == METHOD_MESSAGE
    assert can_proceed(state.model_copy(update={"method": "photo"}), topology, topology.recording_method) is True


def test_step_outside_topology_cannot_proceed() -> None:
    topology = build_topology("medical")
    state = FlowState(encounter_type="medical", method="voice")
    assert can_proceed(state, topology, 6) is False
    assert can_proceed(state, topology, 0) is False
    assert validation_message(state, topology, 6) is None


def test_has_required_data() -> None:
    assert has_required_data(FlowState(encounter_type="date", parties=("@me", "@you"))) is True
    assert has_required_data(FlowState(encounter_type="  ", parties=("@me", "@you"))) is False
    assert has_required_data(FlowState(encounter_type="date", parties=("@me", ""))) is False


def test_can_save_draft_from_first_step_once_type_is_chosen() -> None:
    state = FlowState(encounter_type="date")
    assert can_save_draft(state, 0) is False
    assert can_save_draft(state, 1) is True
    assert can_save_draft(FlowState(), 1) is False
    assert can_save_draft(state, 2) is True
    assert can_save_draft(FlowState(), 3) is False


def test_can_save_or_share_ignores_errored_parties() -> None:
    state = FlowState(encounter_type="date", parties=("@me", "@me"), method="signature")
    assert can_save_or_share(state, {1: "dup"}) is False
    assert can_save_or_share(state.model_copy(update={"parties": ("@me", "@you")}), {}) is True
    assert can_save_or_share(state.model_copy(update={"method": None}), {}) is False
