import pytest

from consentflow.flow.topology import build_topology


def test_jurisdiction_encounter_types_get_six_steps() -> None:
    for encounter_type in ("intimate", "date"):
        topology = build_topology(encounter_type)
        assert topology.total_steps == 6
        assert topology.has_university is True
        assert topology.university == 2
        assert topology.parties == 3
        assert topology.intimate_acts == 4
        assert topology.duration == 5
        assert topology.recording_method == 6


def test_medical_encounter_has_five_steps_and_no_university_step() -> None:
    topology = build_topology("medical")
    assert topology.total_steps == 5
    assert topology.has_university is False
    assert topology.university is None
    assert topology.index_of("university") is None
    assert "university" not in [topology.step_at(i) for i in range(1, topology.total_steps + 1)]
    assert topology.parties == 2
    assert topology.recording_method == 5


def test_empty_and_custom_encounter_types_skip_university() -> None:
    assert build_topology("").total_steps == 5
    assert build_topology("Picnic with friends").has_university is False


def test_topology_is_memoized_per_encounter_type() -> None:
    assert build_topology("intimate") is build_topology("intimate")
    assert build_topology("intimate") != build_topology("medical")


def test_step_navigation_is_clamped_to_topology() -> None:
    topology = build_topology("conversation")
    assert topology.encounter_type == 1
    assert topology.next_step(topology.total_steps) == topology.total_steps
    assert topology.previous_step(1) == 1
    assert topology.next_step(2) == 3
    assert topology.step_at(0) is None
    assert topology.step_at(topology.total_steps + 1) is None
    assert topology.contains(5) is True
    assert topology.contains(6) is False


def test_required_step_lookup_raises_for_missing_step() -> None:
    topology = build_topology("intimate")
    with pytest.raises(LookupError):
        topology._required("nonexistent")  # type: ignore[arg-type]
