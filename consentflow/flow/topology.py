from __future__ import annotations

"""
Compute the ordered wizard steps for an encounter type.

Design intent:
- Topology is a pure function of encounter_type alone, memoized per value.
- Step indices are 1-based and only meaningful next to the topology that produced them.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from consentflow.catalog.encounter_types import requires_jurisdiction

StepId = Literal[
    "encounterType",
    "university",
    "parties",
    "intimateActs",
    "duration",
    "recordingMethod",
]

_FULL_ORDER: tuple[StepId, ...] = (
    "encounterType",
    "university",
    "parties",
    "intimateActs",
    "duration",
    "recordingMethod",
)


@dataclass(frozen=True)
class StepTopology:
    steps: tuple[StepId, ...]

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def has_university(self) -> bool:
        return "university" in self.steps

    def index_of(self, step_id: StepId) -> int | None:
        try:
            return self.steps.index(step_id) + 1
        except ValueError:
            return None

    def step_at(self, index: int) -> StepId | None:
        if 1 <= index <= self.total_steps:
            return self.steps[index - 1]
        return None

    def contains(self, index: int) -> bool:
        return 1 <= index <= self.total_steps

    def next_step(self, index: int) -> int:
        return min(max(index, 1) + 1, self.total_steps)

    def previous_step(self, index: int) -> int:
        return max(min(index, self.total_steps) - 1, 1)

    @property
    def encounter_type(self) -> int:
        return 1

    @property
    def university(self) -> int | None:
        return self.index_of("university")

    @property
    def parties(self) -> int:
        return self._required("parties")

    @property
    def intimate_acts(self) -> int:
        return self._required("intimateActs")

    @property
    def duration(self) -> int:
        return self._required("duration")

    @property
    def recording_method(self) -> int:
        return self._required("recordingMethod")

    def _required(self, step_id: StepId) -> int:
        index = self.index_of(step_id)
        if index is None:
            raise LookupError(f"Step {step_id} missing from topology {self.steps}")
        return index


@lru_cache(maxsize=64)
def build_topology(encounter_type: str) -> StepTopology:
    if requires_jurisdiction(encounter_type):
        return StepTopology(steps=_FULL_ORDER)
    return StepTopology(steps=tuple(step for step in _FULL_ORDER if step != "university"))
