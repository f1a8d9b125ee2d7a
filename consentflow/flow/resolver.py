from __future__ import annotations

"""
Infer the resume step from a FlowState snapshot.

Design intent:
- "Most-advanced evidence wins": the first matching rule decides the landing step.
- Safe to re-run on every hydration; there is no one-shot guard to go stale.
- A step index is stored only together with the topology it was resolved against.
"""

from dataclasses import dataclass

from consentflow.internal_core.contracts import FlowState

from .topology import StepId, StepTopology, build_topology


def has_jurisdiction(state: FlowState) -> bool:
    if state.university_id:
        return True
    return bool(state.state_code and state.state_name)


def resolve_step(state: FlowState) -> int:
    steps = build_topology(state.encounter_type)

    if state.method:
        return steps.recording_method
    if state.contract_start_time or state.contract_duration:
        return steps.recording_method
    if state.intimate_acts:
        return steps.duration
    if any(party.strip() for party in state.parties[1:]):
        return steps.intimate_acts
    if has_jurisdiction(state) and steps.has_university:
        return steps.parties
    if state.encounter_type:
        return steps.university or steps.parties
    return 1


@dataclass(frozen=True)
class StepCursor:
    """The active step, pinned to the topology it indexes into."""

    step: int
    topology: StepTopology

    @property
    def step_id(self) -> StepId | None:
        return self.topology.step_at(self.step)

    @classmethod
    def start(cls, state: FlowState) -> "StepCursor":
        return cls(step=1, topology=build_topology(state.encounter_type))

    @classmethod
    def resolve(cls, state: FlowState) -> "StepCursor":
        return cls(step=resolve_step(state), topology=build_topology(state.encounter_type))

    def moved_to(self, step: int) -> "StepCursor":
        if not self.topology.contains(step):
            raise ValueError(f"Step {step} outside topology of {self.topology.total_steps} steps")
        return StepCursor(step=step, topology=self.topology)

    def repin(self, state: FlowState) -> "StepCursor":
        """Re-validate the cursor after a state change.

        Unchanged topology keeps the cursor. A reshaped topology keeps the
        same step id when it still exists, otherwise the step is re-resolved.
        """
        topology = build_topology(state.encounter_type)
        if topology == self.topology:
            return self
        step_id = self.step_id
        if step_id is not None:
            index = topology.index_of(step_id)
            if index is not None:
                return StepCursor(step=index, topology=topology)
        return StepCursor(step=resolve_step(state), topology=topology)
