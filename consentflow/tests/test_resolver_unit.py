import pytest

from consentflow.flow.resolver import StepCursor, has_jurisdiction, resolve_step
from consentflow.flow.topology import build_topology
from consentflow.internal_core.contracts import FlowState


def test_hydrated_acts_resolve_to_duration_before_parties_rule() -> None:
    state = FlowState(
        intimate_acts={"Kissing": "yes"},
        parties=("@bob", ""),
        method=None,
        contract_duration=None,
    )
    assert resolve_step(state) == build_topology("").duration

    with_type = state.model_copy(update={"encounter_type": "intimate"})
    assert resolve_step(with_type) == 5


def test_method_or_timing_resolves_to_recording_method() -> None:
    assert resolve_step(FlowState(encounter_type="medical", method="voice")) == 5
    assert resolve_step(FlowState(encounter_type="intimate", contract_duration=60)) == 6
    assert resolve_step(FlowState(encounter_type="date", contract_start_time="2026-01-01T20:00")) == 6


def test_second_party_resolves_to_intimate_acts() -> None:
    state = FlowState(encounter_type="intimate", parties=("@me", "@alice"))
    assert resolve_step(state) == 4


def test_first_slot_alone_does_not_count_as_party_evidence() -> None:
    state = FlowState(encounter_type="medical", parties=("@me", ""))
    assert resolve_step(state) == 2


def test_jurisdiction_resolves_to_parties_only_with_university_step() -> None:
    with_university = FlowState(encounter_type="intimate", university_id="u1", university_name="State U")
    assert resolve_step(with_university) == 3

    with_state = FlowState(encounter_type="date", state_code="CA", state_name="California")
    assert resolve_step(with_state) == 3


def test_encounter_type_only_resolves_to_university_or_parties() -> None:
    assert resolve_step(FlowState(encounter_type="intimate")) == 2
    assert resolve_step(FlowState(encounter_type="professional")) == 2


def test_empty_state_resolves_to_first_step() -> None:
    assert resolve_step(FlowState()) == 1


def test_has_jurisdiction_requires_state_pair() -> None:
    assert has_jurisdiction(FlowState(university_id="u1")) is True
    assert has_jurisdiction(FlowState(state_code="CA", state_name="California")) is True
    assert has_jurisdiction(FlowState(selection_mode="not-applicable")) is False


def test_resolve_is_idempotent() -> None:
    state = FlowState(encounter_type="intimate", parties=("@me", "@alice"), intimate_acts={"Kissing": "no"})
    assert resolve_step(state) == resolve_step(state)
    assert StepCursor.resolve(state) == StepCursor.resolve(state)


def test_cursor_keeps_step_when_topology_unchanged() -> None:
    state = FlowState(encounter_type="intimate")
    cursor = StepCursor.resolve(state).moved_to(4)
    updated = state.model_copy(update={"parties": ("@me", "@x")})
    assert cursor.repin(updated) is cursor


def test_cursor_follows_step_id_across_topology_reshape() -> None:
    state = FlowState(encounter_type="intimate", parties=("@me", "@alice"))
    cursor = StepCursor.resolve(state)
    assert cursor.step_id == "intimateActs"

    reshaped = state.model_copy(update={"encounter_type": "medical"})
    repinned = cursor.repin(reshaped)
    assert repinned.step_id == "intimateActs"
    assert repinned.step == 3
    assert repinned.topology.total_steps == 5


def test_cursor_on_removed_university_step_is_re_resolved() -> None:
    state = FlowState(encounter_type="intimate")
    cursor = StepCursor.resolve(state)
    assert cursor.step_id == "university"

    repinned = cursor.repin(state.model_copy(update={"encounter_type": "medical"}))
    assert repinned.topology.has_university is False
    assert repinned.step == 2
    assert repinned.step_id == "parties"


def test_cursor_at_encounter_step_stays_put_when_type_is_picked() -> None:
    cursor = StepCursor.start(FlowState())
    repinned = cursor.repin(FlowState(encounter_type="intimate"))
    assert repinned.step == 1
    assert repinned.topology.total_steps == 6


def test_cursor_rejects_out_of_range_moves() -> None:
    cursor = StepCursor.start(FlowState(encounter_type="medical"))
    with pytest.raises(ValueError):
        cursor.moved_to(6)
